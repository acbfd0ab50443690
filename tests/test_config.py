# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Configuration Tests - builder, environment variables and profiles.
"""

from pathlib import Path

import pytest

from s3retain.__main__ import _run_once
from s3retain.builder import (
    build_config,
    build_from_steps,
    create_config,
    create_empty_config,
    enable_audit,
    for_database,
    keep_daily,
    keep_last,
    no_tiers,
    run_daily_at,
    strict_deletions,
    with_bucket,
    with_prefix,
    with_s3_batch_size,
)
from s3retain.config import RetentionConfig
from s3retain.env import (
    COUNT_VARIABLES,
    aggressive_cleanup,
    compliance_friendly,
    create_config_from_env,
    safe_defaults,
)
from s3retain.exceptions import ConfigurationError

ENV_VARIABLES = [
    "S3_BUCKET",
    "S3_REGION",
    "AWS_REGION",
    "S3_ENDPOINT",
    "S3_PREFIX",
    "POSTGRES_DB",
    "RETENTION_DRY_RUN",
    "RETENTION_AUDIT_DB",
    "RETENTION_SCHEDULE",
    *COUNT_VARIABLES,
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ============================================================================
# RetentionConfig validation
# ============================================================================

def test_shipped_defaults():
    config = RetentionConfig(bucket="backups")

    assert config.policy.as_dict() == {
        "keep_last": 3,
        "keep_hourly": 24,
        "keep_daily": 7,
        "keep_weekly": 4,
        "keep_monthly": 6,
        "keep_yearly": 2,
        "min_backups": 1,
        "dry_run": True,
    }


@pytest.mark.parametrize("bucket", ["", "ab", "Backups", "my..bucket", "192.168.1.1", "-backups"])
def test_invalid_bucket_names(bucket):
    with pytest.raises(ConfigurationError):
        RetentionConfig(bucket=bucket)


def test_all_count_errors_reported_together():
    with pytest.raises(ConfigurationError) as exc_info:
        RetentionConfig(bucket="backups", keep_daily=-1, min_backups=-2)

    errors = exc_info.value.details["errors"]
    assert len(errors) == 2
    assert "keep_daily" in errors[0]


@pytest.mark.parametrize(
    "overrides",
    [
        {"prefix": "/pg/"},
        {"s3_list_batch_size": 0},
        {"s3_list_batch_size": 1001},
        {"max_concurrent_ops": 0},
        {"schedule_cron": "3am"},
        {"keep_last": True},
    ],
)
def test_invalid_settings(overrides):
    with pytest.raises(ConfigurationError):
        RetentionConfig(bucket="backups", **overrides)


def test_with_updates_returns_new_config():
    config = RetentionConfig(bucket="backups")

    updated = config.with_updates(keep_daily=14)

    assert updated.keep_daily == 14
    assert config.keep_daily == 7


# ============================================================================
# Builder
# ============================================================================

def test_create_config_passes_tier_counts():
    config = create_config(
        "backups",
        endpoint_url="http://garage:3900",
        keep_last=1,
        keep_daily=14,
        min_backups=2,
        unknown_setting=True,
    )

    assert config.endpoint_url == "http://garage:3900"
    assert config.keep_last == 1
    assert config.keep_daily == 14
    assert config.keep_hourly == 24
    assert config.min_backups == 2
    assert config.dry_run is True


def test_create_config_execute_mode_warns(capsys):
    config = create_config("backups", dry_run=False)

    assert config.dry_run is False
    assert "WARNING" in capsys.readouterr().err


def test_build_from_steps():
    config = build_from_steps(
        lambda c: with_bucket(c, "backups"),
        lambda c: with_prefix(c, "pg/"),
        lambda c: for_database(c, "myapp"),
        no_tiers,
        lambda c: keep_last(c, 5),
        strict_deletions,
        lambda c: enable_audit(c, "/tmp/audit.db"),
        lambda c: run_daily_at(c, "03:30"),
    )

    assert config.prefix == "pg/"
    assert config.database == "myapp"
    assert config.keep_last == 5
    assert config.keep_daily == 0
    assert config.fail_on_delete_errors is True
    assert config.audit_db_path == Path("/tmp/audit.db")
    assert config.schedule_cron == "03:30"


def test_build_config_requires_bucket():
    with pytest.raises(ConfigurationError):
        build_config(create_empty_config())


def test_builder_rejects_bad_values():
    with pytest.raises(ValueError):
        keep_daily(create_empty_config(), -1)
    with pytest.raises(ValueError):
        run_daily_at(create_empty_config(), "24:00")
    with pytest.raises(ValueError):
        with_s3_batch_size(create_empty_config(), 5000)


# ============================================================================
# Environment
# ============================================================================

def test_env_requires_bucket(clean_env):
    with pytest.raises(ConfigurationError, match="S3_BUCKET"):
        create_config_from_env()


def test_env_defaults(clean_env):
    clean_env.setenv("S3_BUCKET", "backups")

    config = create_config_from_env()

    assert config.bucket == "backups"
    assert config.region == "us-east-1"
    assert config.keep_last == 3
    assert config.keep_yearly == 2
    assert config.min_backups == 1
    assert config.dry_run is False
    assert config.audit_db_path is None


def test_env_reads_all_variables(clean_env):
    clean_env.setenv("S3_BUCKET", "backups")
    clean_env.setenv("S3_ENDPOINT", "http://garage:3900")
    clean_env.setenv("AWS_REGION", "garage")
    clean_env.setenv("S3_PREFIX", "pg/")
    clean_env.setenv("POSTGRES_DB", "myapp")
    clean_env.setenv("RETENTION_KEEP_LAST", "5")
    clean_env.setenv("RETENTION_KEEP_HOURLY", "0")
    clean_env.setenv("RETENTION_KEEP_DAILY", "14")
    clean_env.setenv("RETENTION_MIN_BACKUPS", "2")
    clean_env.setenv("RETENTION_DRY_RUN", "yes")
    clean_env.setenv("RETENTION_AUDIT_DB", "/var/lib/s3retain/audit.db")
    clean_env.setenv("RETENTION_SCHEDULE", "02:15")

    config = create_config_from_env()

    assert config.endpoint_url == "http://garage:3900"
    assert config.region == "garage"
    assert config.prefix == "pg/"
    assert config.database == "myapp"
    assert (config.keep_last, config.keep_hourly, config.keep_daily) == (5, 0, 14)
    assert config.min_backups == 2
    assert config.dry_run is True
    assert config.audit_db_path == Path("/var/lib/s3retain/audit.db")
    assert config.schedule_cron == "02:15"


def test_env_s3_region_wins_over_aws_region(clean_env):
    clean_env.setenv("S3_BUCKET", "backups")
    clean_env.setenv("S3_REGION", "eu-west-1")
    clean_env.setenv("AWS_REGION", "us-west-2")

    assert create_config_from_env().region == "eu-west-1"


@pytest.mark.parametrize(
    "name, value",
    [
        ("RETENTION_KEEP_DAILY", "seven"),
        ("RETENTION_KEEP_LAST", "-1"),
        ("RETENTION_MIN_BACKUPS", "1.5"),
        ("RETENTION_DRY_RUN", "maybe"),
        ("RETENTION_SCHEDULE", "25:00"),
    ],
)
def test_env_invalid_values(clean_env, name, value):
    clean_env.setenv("S3_BUCKET", "backups")
    clean_env.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        create_config_from_env()


def test_env_blank_count_uses_default(clean_env):
    clean_env.setenv("S3_BUCKET", "backups")
    clean_env.setenv("RETENTION_KEEP_WEEKLY", "")

    assert create_config_from_env().keep_weekly == 4


# ============================================================================
# Profiles
# ============================================================================

def test_safe_defaults_profile():
    config = safe_defaults(RetentionConfig(bucket="backups", keep_last=1, dry_run=False))

    assert config.dry_run is True
    assert config.keep_last == 3
    assert config.min_backups == 3


def test_aggressive_cleanup_profile():
    config = aggressive_cleanup(RetentionConfig(bucket="backups", keep_daily=30))

    assert config.dry_run is False
    assert config.keep_last == 1
    assert config.keep_daily == 7
    assert config.keep_hourly == config.keep_weekly == config.keep_monthly == config.keep_yearly == 0
    assert config.min_backups == 1


def test_compliance_friendly_profile():
    config = compliance_friendly(RetentionConfig(bucket="backups"))

    assert config.keep_monthly == 12
    assert config.keep_yearly == 7
    assert config.audit_db_path == Path("./s3retain_audit.db")
    assert config.dry_run is True


# ============================================================================
# Command line
# ============================================================================

@pytest.mark.asyncio
async def test_cli_exits_nonzero_on_bad_config(clean_env):
    clean_env.setenv("RETENTION_KEEP_DAILY", "lots")

    assert await _run_once() == 1


@pytest.mark.asyncio
async def test_cli_exits_nonzero_when_audit_db_unusable(clean_env, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    clean_env.setenv("S3_BUCKET", "backups")
    clean_env.setenv("RETENTION_AUDIT_DB", str(blocker / "audit.db"))

    assert await _run_once() == 1
