# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Run one retention cycle configured from the environment.

    S3_BUCKET=backups S3_ENDPOINT=http://garage:3900 \
    RETENTION_KEEP_DAILY=14 RETENTION_DRY_RUN=true python -m s3retain

Exit status is 0 when the run completes (including "nothing to do" and
tolerated deletion failures) and 1 on a configuration error or when
deletions failed with fail_on_delete_errors set.
"""

import asyncio
import logging
import os
import sys

import structlog

from s3retain.core import (
    initialize_retention_state,
    run_retention_cycle,
    shutdown_retention_state,
)
from s3retain.env import create_config_from_env
from s3retain.exceptions import ConfigurationError, DeletionError, S3RetainError


def configure_logging(level: str = "INFO") -> None:
    """Console logging with a ``[YYYY-MM-DD HH:MM:SS]`` timestamp."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=True),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


async def _run_once() -> int:
    logger = structlog.get_logger()

    try:
        config = create_config_from_env()
    except ConfigurationError as e:
        logger.error("configuration_invalid", error=str(e))
        return 1

    try:
        state = await initialize_retention_state(config)
    except S3RetainError as e:
        logger.error("retention_init_failed", error=str(e))
        return 1

    try:
        await run_retention_cycle(config, state)
    except DeletionError as e:
        logger.error("retention_deletions_failed", error=str(e))
        return 1
    except S3RetainError as e:
        logger.error("retention_run_failed", error=str(e))
        return 1
    finally:
        await shutdown_retention_state(state)

    logger.info("Cleanup finished.")
    return 0


def main() -> int:
    configure_logging(os.getenv("S3RETAIN_LOG_LEVEL", "INFO"))
    return asyncio.run(_run_once())


if __name__ == "__main__":
    sys.exit(main())
