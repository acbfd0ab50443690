# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for s3retain tests.

Provides an in-memory S3 client, backup key helpers, and test
configuration helpers.
"""

import os
import tempfile
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Dict, Generator, Iterable, List

import pytest
from botocore.exceptions import ClientError

# Set test environment variables
os.environ["S3RETAIN_ADMIN_API_KEY"] = "test-api-key-12345"

# Fixed evaluation instant: Monday 2026-10-19 12:00:00 UTC
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)

DB_NAME = "myapp"


def backup_key(when: datetime, db: str = DB_NAME, ext: str = "sql.gz") -> str:
    """Backup path for a capture instant: YYYY/MM/DD/<db>_<HHMMSS>.<ext>."""
    return f"{when:%Y/%m/%d}/{db}_{when:%H%M%S}.{ext}"


def days_ago(n: int, hour: int = 6, minute: int = 0) -> datetime:
    day = NOW - timedelta(days=n)
    return day.replace(hour=hour, minute=minute, second=0)


def today_at(hhmmss: str) -> datetime:
    return NOW.replace(
        hour=int(hhmmss[0:2]), minute=int(hhmmss[2:4]), second=int(hhmmss[4:6])
    )


class FakePaginator:
    """Async stand-in for the list_objects_v2 paginator."""

    def __init__(self, client: "FakeS3Client"):
        self._client = client

    async def paginate(self, Bucket: str, MaxKeys: int = 1000, Prefix: str = ""):
        self._client.list_calls += 1
        if self._client.list_error is not None:
            raise self._client.list_error

        keys = sorted(k for k in self._client.objects if k.startswith(Prefix))
        for start in range(0, len(keys), MaxKeys):
            chunk = keys[start:start + MaxKeys]
            yield {"Contents": [{"Key": k, "Size": len(self._client.objects[k])} for k in chunk]}
        if not keys:
            yield {"KeyCount": 0}


class FakeS3Client:
    """
    In-memory S3 client exposing the calls s3retain makes.

    ``fail_keys`` makes delete_object fail for those keys; ``list_error``
    makes listing raise.
    """

    def __init__(self, keys: Iterable[str] = ()):
        self.objects: Dict[str, bytes] = {k: b"-- mock backup" for k in keys}
        self.fail_keys: set[str] = set()
        self.list_error: Exception | None = None
        self.deleted: List[str] = []
        self.delete_calls: List[str] = []
        self.list_calls = 0

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "list_objects_v2"
        return FakePaginator(self)

    async def delete_object(self, Bucket: str, Key: str) -> dict:
        self.delete_calls.append(Key)
        if Key in self.fail_keys:
            raise ClientError(
                {"Error": {"Code": "InternalError", "Message": "We encountered an internal error"}},
                "DeleteObject",
            )
        self.objects.pop(Key, None)
        self.deleted.append(Key)
        return {}

    async def head_bucket(self, Bucket: str) -> dict:
        return {}

    def add(self, *keys: str) -> None:
        for key in keys:
            self.objects[key] = b"-- mock backup"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def no_tier_config():
    """Dry-run configuration with every tier disabled."""
    from s3retain.config import RetentionConfig

    return RetentionConfig(
        bucket="backups",
        keep_last=0,
        keep_hourly=0,
        keep_daily=0,
        keep_weekly=0,
        keep_monthly=0,
        keep_yearly=0,
        min_backups=1,
        dry_run=True,
    )


@pytest.fixture
def default_config():
    """The shipped default policy (3/24/7/4/6/2, floor 1), dry run."""
    from s3retain.config import RetentionConfig

    return RetentionConfig(bucket="backups", dry_run=True)


@pytest.fixture
def state():
    """Runtime state without an S3 session; tests pass their own client."""
    from s3retain.core import RetentionState

    return RetentionState(
        s3_session=None,
        audit_db_path=None,
        last_run_at=None,
        total_runs=0,
        total_deleted=0,
        total_failed=0,
        last_error=None,
    )
