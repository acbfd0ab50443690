# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI plugin.
"""

from s3retain.integrations.fastapi import (
    setup_retention_plugin,
    register_retention_routes,
    retention_lifespan,
    run_scheduled_retention,
    verify_api_key,
)

__all__ = [
    "setup_retention_plugin",
    "register_retention_routes",
    "retention_lifespan",
    "run_scheduled_retention",
    "verify_api_key",
]
