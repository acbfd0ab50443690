# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so a retention run
always evaluates against the exact policy it started with.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List
import re


TIER_FIELDS = (
    "keep_last",
    "keep_hourly",
    "keep_daily",
    "keep_weekly",
    "keep_monthly",
    "keep_yearly",
)


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    # Must be lowercase letters, numbers, hyphens, or periods
    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    # No consecutive periods
    if ".." in bucket:
        return False

    # Not IP address format
    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _validate_cron_time(time_str: str) -> bool:
    """Validate HH:MM time format."""
    if not time_str:
        return False
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return False
        hour, minute = int(parts[0]), int(parts[1])
        return 0 <= hour <= 23 and 0 <= minute <= 59
    except (ValueError, AttributeError):
        return False


def _count_errors(owner: object) -> List[str]:
    errors: List[str] = []
    for name in (*TIER_FIELDS, "min_backups"):
        value = getattr(owner, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            errors.append(f"{name} must be a non-negative integer, got {value!r}")
    return errors


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Restic-style retention policy.

    Each tier count is OR-combined with the others: a backup survives if
    any single rule keeps it. ``min_backups`` is the floor enforced by the
    safety net after the rules have run.
    """

    keep_last: int = 0
    keep_hourly: int = 0
    keep_daily: int = 0
    keep_weekly: int = 0
    keep_monthly: int = 0
    keep_yearly: int = 0
    min_backups: int = 1
    dry_run: bool = False

    def __post_init__(self) -> None:
        errors = _count_errors(self)
        if errors:
            from s3retain.exceptions import ConfigurationError

            raise ConfigurationError(
                "Retention policy validation failed",
                details={"errors": errors},
            )

    def as_dict(self) -> dict:
        return {
            "keep_last": self.keep_last,
            "keep_hourly": self.keep_hourly,
            "keep_daily": self.keep_daily,
            "keep_weekly": self.keep_weekly,
            "keep_monthly": self.keep_monthly,
            "keep_yearly": self.keep_yearly,
            "min_backups": self.min_backups,
            "dry_run": self.dry_run,
        }


@dataclass(frozen=True)
class RetentionConfig:
    """
    Immutable configuration for a backup retention run.

    Tier defaults mirror the backup container's shipped policy
    (3 last, 24 hourly, 7 daily, 4 weekly, 6 monthly, 2 yearly).
    """

    # Required: bucket holding the backups
    bucket: str

    # AWS region (default: us-east-1)
    region: str = "us-east-1"

    # Custom endpoint for S3-compatible stores (Garage, MinIO)
    endpoint_url: str | None = None

    # Namespace prefix, stored with a trailing "/"; keys below it must look
    # like YYYY/MM/DD/<db>_<HHMMSS>.<ext>
    prefix: str = ""

    # Only consider backups of this database (None = all)
    database: str | None = None

    # Retention tiers
    keep_last: int = 3
    keep_hourly: int = 24
    keep_daily: int = 7
    keep_weekly: int = 4
    keep_monthly: int = 6
    keep_yearly: int = 2

    # Never leave fewer than this many backups
    min_backups: int = 1

    # Preview only (default: True for safety)
    dry_run: bool = True

    # Maximum concurrent delete calls
    max_concurrent_ops: int = 10

    # Batch size for S3 listing
    s3_list_batch_size: int = 1000

    # Raise DeletionError after the run if any deletion failed
    fail_on_delete_errors: bool = False

    # SQLite audit trail (None = disabled)
    audit_db_path: Path | None = None

    # Schedule time in HH:MM format (UTC)
    schedule_cron: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        if self.prefix and not self.prefix.endswith("/"):
            object.__setattr__(self, "prefix", f"{self.prefix}/")

        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        errors.extend(_count_errors(self))

        if self.prefix.startswith("/"):
            errors.append(f"prefix must not start with '/', got {self.prefix!r}")

        if self.schedule_cron and not _validate_cron_time(self.schedule_cron):
            errors.append(f"Invalid schedule_cron format: {self.schedule_cron}, expected HH:MM")

        if self.max_concurrent_ops < 1:
            errors.append(f"max_concurrent_ops must be >= 1, got {self.max_concurrent_ops}")

        if not 1 <= self.s3_list_batch_size <= 1000:
            errors.append(
                f"s3_list_batch_size must be between 1 and 1000, got {self.s3_list_batch_size}"
            )

        if errors:
            from s3retain.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def policy(self) -> RetentionPolicy:
        """The retention policy carried by this configuration."""
        return RetentionPolicy(
            keep_last=self.keep_last,
            keep_hourly=self.keep_hourly,
            keep_daily=self.keep_daily,
            keep_weekly=self.keep_weekly,
            keep_monthly=self.keep_monthly,
            keep_yearly=self.keep_yearly,
            min_backups=self.min_backups,
            dry_run=self.dry_run,
        )

    def with_updates(self, **kwargs) -> "RetentionConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return RetentionConfig(**current)
