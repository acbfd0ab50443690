# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers and safety profiles.

The backup container configures retention entirely through environment
variables; these helpers read the same variables and pass them through to
create_config(). Profiles are small wrappers around
RetentionConfig.with_updates().
"""

from __future__ import annotations

import os
from pathlib import Path

from s3retain.builder import create_config
from s3retain.config import RetentionConfig
from s3retain.errors import (
    explain_invalid_bool_env,
    explain_invalid_count_env,
    explain_invalid_schedule_env,
    explain_missing_bucket_env,
)
from s3retain.exceptions import ConfigurationError

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")

# Environment variable -> (config field, default)
COUNT_VARIABLES = {
    "RETENTION_KEEP_LAST": ("keep_last", 3),
    "RETENTION_KEEP_HOURLY": ("keep_hourly", 24),
    "RETENTION_KEEP_DAILY": ("keep_daily", 7),
    "RETENTION_KEEP_WEEKLY": ("keep_weekly", 4),
    "RETENTION_KEEP_MONTHLY": ("keep_monthly", 6),
    "RETENTION_KEEP_YEARLY": ("keep_yearly", 2),
    "RETENTION_MIN_BACKUPS": ("min_backups", 1),
}


def _parse_count(name: str, value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_count_env(name, value)) from exc
    if count < 0:
        raise ConfigurationError(explain_invalid_count_env(name, value))
    return count


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def _parse_schedule(value: str | None) -> str | None:
    if not value:
        return None
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ConfigurationError(explain_invalid_schedule_env(value))
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ConfigurationError(explain_invalid_schedule_env(value))
    return value


def create_config_from_env() -> RetentionConfig:
    """
    Create a RetentionConfig from environment variables.

    Required:
        - S3_BUCKET: Name of the bucket holding the backups

    Optional environment variables:
        - S3_REGION / AWS_REGION: Region (default: us-east-1)
        - S3_ENDPOINT: Endpoint of an S3-compatible store
        - S3_PREFIX: Namespace prefix inside the bucket
        - POSTGRES_DB: Only apply retention to this database's backups
        - RETENTION_KEEP_LAST (3), RETENTION_KEEP_HOURLY (24),
          RETENTION_KEEP_DAILY (7), RETENTION_KEEP_WEEKLY (4),
          RETENTION_KEEP_MONTHLY (6), RETENTION_KEEP_YEARLY (2)
        - RETENTION_MIN_BACKUPS: Safety floor (default: 1)
        - RETENTION_DRY_RUN: 'true' | 'false' (default: false)
        - RETENTION_AUDIT_DB: Path to a SQLite audit database
        - RETENTION_SCHEDULE: Daily run time in HH:MM (UTC)
    """

    bucket = os.getenv("S3_BUCKET")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    counts = {
        field: _parse_count(name, os.getenv(name), default)
        for name, (field, default) in COUNT_VARIABLES.items()
    }

    region = os.getenv("S3_REGION") or os.getenv("AWS_REGION", "us-east-1")
    dry_run = _parse_bool("RETENTION_DRY_RUN", os.getenv("RETENTION_DRY_RUN"), False)
    audit_env = os.getenv("RETENTION_AUDIT_DB")

    return create_config(
        bucket=bucket,
        region=region,
        endpoint_url=os.getenv("S3_ENDPOINT") or None,
        prefix=os.getenv("S3_PREFIX", ""),
        database=os.getenv("POSTGRES_DB") or None,
        dry_run=dry_run,
        audit_db_path=Path(audit_env) if audit_env else None,
        schedule_cron=_parse_schedule(os.getenv("RETENTION_SCHEDULE")),
        **counts,
    )


# ============================================================================
# Profiles
# ============================================================================

def safe_defaults(config: RetentionConfig) -> RetentionConfig:
    """
    Apply conservative, safety-first defaults.

    - Always dry run
    - Keep at least the 3 most recent backups
    - Never go below 3 surviving backups
    """

    return config.with_updates(
        dry_run=True,
        keep_last=max(config.keep_last, 3),
        min_backups=max(config.min_backups, 3),
    )


def aggressive_cleanup(config: RetentionConfig) -> RetentionConfig:
    """
    Apply a more aggressive cleanup profile.

    - Actual deletions
    - Only the most recent backup and one per day for a week
    - Floor of a single backup
    """

    return config.with_updates(
        dry_run=False,
        keep_last=min(config.keep_last, 1),
        keep_hourly=0,
        keep_daily=min(config.keep_daily, 7),
        keep_weekly=0,
        keep_monthly=0,
        keep_yearly=0,
        min_backups=1,
    )


def compliance_friendly(config: RetentionConfig) -> RetentionConfig:
    """
    Apply a compliance-friendly profile.

    - Dry run unless changed afterwards
    - At least 12 monthly and 7 yearly backups
    - Every run recorded in the audit trail
    """

    audit_path = config.audit_db_path or Path("./s3retain_audit.db")
    return config.with_updates(
        dry_run=True,
        keep_monthly=max(config.keep_monthly, 12),
        keep_yearly=max(config.keep_yearly, 7),
        audit_db_path=audit_path,
    )
