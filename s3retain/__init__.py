# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain - Restic-style retention for database backups in object storage.

Lists timestamped backups (YYYY/MM/DD/<db>_<HHMMSS>.<ext>) in an S3 bucket,
decides which to keep under an OR-combined keep-last/hourly/daily/weekly/
monthly/yearly policy, never drops below a minimum backup count, and deletes
the rest unless running as a dry run.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from s3retain.builder import create_config
from s3retain.config import RetentionConfig, RetentionPolicy

# Core functions
from s3retain.core import (
    initialize_retention_state,
    plan_retention,
    preview_retention,
    run_retention_cycle,
    get_metrics,
    shutdown_retention_state,
)

# Decision engine
from s3retain.catalog import BackupArtifact, parse_backup_path, read_catalog
from s3retain.executor import apply_safety_net
from s3retain.policy import KeepReason, RetentionDecision, Verdict, evaluate_retention

# Environment-based configuration and profiles (additional helpers)
from s3retain.env import (
    create_config_from_env,
    safe_defaults,
    aggressive_cleanup,
    compliance_friendly,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "create_config_from_env",
    "RetentionConfig",
    "RetentionPolicy",
    # Core orchestration functions
    "initialize_retention_state",
    "plan_retention",
    "preview_retention",
    "run_retention_cycle",
    "get_metrics",
    "shutdown_retention_state",
    # Engine
    "BackupArtifact",
    "parse_backup_path",
    "read_catalog",
    "evaluate_retention",
    "apply_safety_net",
    "RetentionDecision",
    "KeepReason",
    "Verdict",
]
