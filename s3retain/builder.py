# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Builder - Functional builder pattern for configuration.

This module provides pure functions for building RetentionConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from s3retain.config import RetentionConfig


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "bucket": "",
        "region": "us-east-1",
        "endpoint_url": None,
        "prefix": "",
        "database": None,
        "keep_last": 3,
        "keep_hourly": 24,
        "keep_daily": 7,
        "keep_weekly": 4,
        "keep_monthly": 6,
        "keep_yearly": 2,
        "min_backups": 1,
        "dry_run": True,
        "max_concurrent_ops": 10,
        "s3_list_batch_size": 1000,
        "fail_on_delete_errors": False,
        "audit_db_path": None,
        "schedule_cron": None,
    }


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """
    Set the bucket that holds the backups.

    Args:
        config: Current configuration dictionary
        bucket_name: Name of the backup bucket

    Returns:
        New configuration dictionary with bucket set
    """
    return {**config, "bucket": bucket_name}


def with_region(config: ConfigDict, region: str) -> ConfigDict:
    """
    Set the AWS region.

    Args:
        config: Current configuration dictionary
        region: AWS region (e.g., 'us-east-1', 'eu-west-1')

    Returns:
        New configuration dictionary with region set
    """
    return {**config, "region": region}


def with_endpoint(config: ConfigDict, endpoint_url: str) -> ConfigDict:
    """
    Point the client at an S3-compatible endpoint (e.g. http://garage:3900).
    """
    return {**config, "endpoint_url": endpoint_url}


def with_prefix(config: ConfigDict, prefix: str) -> ConfigDict:
    """
    Restrict listing to a namespace prefix inside the bucket.

    Keys below the prefix must follow YYYY/MM/DD/<db>_<HHMMSS>.<ext>.
    """
    return {**config, "prefix": prefix}


def for_database(config: ConfigDict, database: str) -> ConfigDict:
    """Only apply retention to backups of one database."""
    return {**config, "database": database}


def _set_count(config: ConfigDict, name: str, count: int) -> ConfigDict:
    if count < 0:
        raise ValueError(f"{name} must be >= 0, got {count}")
    return {**config, name: count}


def keep_last(config: ConfigDict, count: int) -> ConfigDict:
    """
    Keep the N most recent backups unconditionally.

    Args:
        config: Current configuration dictionary
        count: Number of most recent backups to keep

    Returns:
        New configuration dictionary with keep_last set
    """
    return _set_count(config, "keep_last", count)


def keep_hourly(config: ConfigDict, count: int) -> ConfigDict:
    """Keep one backup per hour for the last N hours."""
    return _set_count(config, "keep_hourly", count)


def keep_daily(config: ConfigDict, count: int) -> ConfigDict:
    """Keep one backup per day for the last N days."""
    return _set_count(config, "keep_daily", count)


def keep_weekly(config: ConfigDict, count: int) -> ConfigDict:
    """Keep one backup per ISO week for the last N weeks."""
    return _set_count(config, "keep_weekly", count)


def keep_monthly(config: ConfigDict, count: int) -> ConfigDict:
    """Keep one backup per month for the last N (30-day) months."""
    return _set_count(config, "keep_monthly", count)


def keep_yearly(config: ConfigDict, count: int) -> ConfigDict:
    """Keep one backup per year for the last N (365-day) years."""
    return _set_count(config, "keep_yearly", count)


def keep_at_least(config: ConfigDict, count: int) -> ConfigDict:
    """
    Set the safety floor.

    The retention run will never leave fewer than ``count`` backups,
    whatever the tier counts say. Use 0 to allow emptying the bucket.

    Args:
        config: Current configuration dictionary
        count: Minimum number of surviving backups

    Returns:
        New configuration dictionary with min_backups set
    """
    return _set_count(config, "min_backups", count)


def no_tiers(config: ConfigDict) -> ConfigDict:
    """Zero every tier count, leaving only the safety floor."""
    return {
        **config,
        "keep_last": 0,
        "keep_hourly": 0,
        "keep_daily": 0,
        "keep_weekly": 0,
        "keep_monthly": 0,
        "keep_yearly": 0,
    }


def dry_run_mode(config: ConfigDict) -> ConfigDict:
    """
    Set dry-run mode (decisions are logged, nothing is deleted).

    This is the default mode. Use this explicitly for clarity.

    Args:
        config: Current configuration dictionary

    Returns:
        New configuration dictionary with dry-run enabled
    """
    return {**config, "dry_run": True}


def execute_mode(config: ConfigDict) -> ConfigDict:
    """
    Enable actual deletion of expired backups.

    WARNING: Backups that no rule keeps will be removed from the bucket!

    Args:
        config: Current configuration dictionary

    Returns:
        New configuration dictionary with dry-run disabled
    """
    import sys

    print(
        "⚠️  WARNING: Execute mode will be enabled. Deletions will occur.",
        file=sys.stderr,
    )
    return {**config, "dry_run": False}


def strict_deletions(config: ConfigDict) -> ConfigDict:
    """Fail the run (after all attempts) when any deletion failed."""
    return {**config, "fail_on_delete_errors": True}


def enable_audit(config: ConfigDict, db_path: Path | str) -> ConfigDict:
    """
    Record every run and its decisions in a SQLite audit trail.

    Args:
        config: Current configuration dictionary
        db_path: Path to the audit database file

    Returns:
        New configuration dictionary with auditing enabled
    """
    path = Path(db_path) if isinstance(db_path, str) else db_path
    return {**config, "audit_db_path": path}


def run_daily_at(config: ConfigDict, time: str) -> ConfigDict:
    """
    Set the daily schedule time (UTC).

    Args:
        config: Current configuration dictionary
        time: Time in HH:MM format (e.g., '03:00' for 3 AM UTC)

    Returns:
        New configuration dictionary with schedule set
    """
    parts = time.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time format: {time}, expected HH:MM")
    try:
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Invalid time: {time}")
    except ValueError:
        raise ValueError(f"Invalid time format: {time}, expected HH:MM")

    return {**config, "schedule_cron": time}


def with_max_concurrent_ops(config: ConfigDict, max_ops: int) -> ConfigDict:
    """
    Set the maximum number of concurrent delete calls.

    Args:
        config: Current configuration dictionary
        max_ops: Maximum concurrent operations

    Returns:
        New configuration dictionary with max_concurrent_ops set
    """
    if max_ops < 1:
        raise ValueError(f"max_concurrent_ops must be >= 1, got {max_ops}")
    return {**config, "max_concurrent_ops": max_ops}


def with_s3_batch_size(config: ConfigDict, batch_size: int) -> ConfigDict:
    """
    Set the batch size for S3 listing operations.

    Args:
        config: Current configuration dictionary
        batch_size: Number of objects to list per request

    Returns:
        New configuration dictionary with batch size set
    """
    if batch_size < 1 or batch_size > 1000:
        raise ValueError(f"s3_list_batch_size must be 1-1000, got {batch_size}")
    return {**config, "s3_list_batch_size": batch_size}


def build_config(config_dict: ConfigDict) -> RetentionConfig:
    """
    Validate and build an immutable RetentionConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable RetentionConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("bucket"):
        from s3retain.exceptions import ConfigurationError

        raise ConfigurationError("bucket is required")

    return RetentionConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

        config = pipe(
            lambda c: with_bucket(c, "backups"),
            lambda c: keep_daily(c, 14),
            execute_mode,
        )(create_empty_config())
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> RetentionConfig:
    """
    Build config by applying a sequence of builder functions.

    Example:
        config = build_from_steps(
            lambda c: with_bucket(c, "backups"),
            lambda c: keep_last(c, 5),
            execute_mode,
        )
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    bucket: str,
    *,
    region: str = "us-east-1",
    endpoint_url: str | None = None,
    prefix: str = "",
    database: str | None = None,
    dry_run: bool = True,
    audit_db_path: str | Path | None = None,
    schedule_cron: str | None = None,
    **kwargs: Any,
) -> RetentionConfig:
    """
    Create a retention configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.
    Tier counts and the other RetentionConfig fields are accepted as
    keyword arguments; anything left out keeps its default.

    Example:
        config = create_config(
            bucket="backups",
            endpoint_url="http://garage:3900",
            keep_last=3,
            keep_daily=14,
            min_backups=2,
            dry_run=False,
        )
    """
    config_dict = create_empty_config()
    config_dict["bucket"] = bucket

    if region:
        config_dict = with_region(config_dict, region)

    if endpoint_url:
        config_dict = with_endpoint(config_dict, endpoint_url)

    if prefix:
        config_dict = with_prefix(config_dict, prefix)

    if database:
        config_dict = for_database(config_dict, database)

    if audit_db_path:
        config_dict = enable_audit(config_dict, audit_db_path)

    if schedule_cron:
        config_dict = run_daily_at(config_dict, schedule_cron)

    config_dict = dry_run_mode(config_dict) if dry_run else execute_mode(config_dict)

    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
