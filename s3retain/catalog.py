# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Catalog - Enumerate and parse stored backup artifacts.

Backups are stored under keys of the fixed shape::

    YYYY/MM/DD/<database>_<HHMMSS>.<ext>

The capture instant is derived from the key alone (UTC, second precision).
Keys that do not match the shape are dropped with a warning and take no
further part in retention.
"""

import re
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Iterable, List

import structlog

from s3retain.config import RetentionConfig

logger = structlog.get_logger()

BACKUP_PATH_PATTERN = re.compile(
    r"^(?P<year>\d{4})/(?P<month>\d{2})/(?P<day>\d{2})/"
    r"(?P<database>[^/]+)_(?P<hour>\d{2})(?P<minute>\d{2})(?P<second>\d{2})"
    r"\.(?P<ext>[^/]+)$"
)


@dataclass(frozen=True)
class BackupArtifact:
    """A stored backup whose capture instant is encoded in its path."""

    path: str  # Relative to the namespace prefix; sort/display key
    key: str  # Full object key used for deletion
    captured_at: datetime  # UTC
    database: str

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.captured_at, self.path)


def parse_backup_path(path: str, key: str | None = None) -> BackupArtifact | None:
    """
    Parse a backup path into a BackupArtifact.

    Args:
        path: Path relative to the namespace prefix
        key: Full object key (defaults to path)

    Returns:
        The artifact, or None if the path does not have the backup shape
        or its date/time components are not a real calendar instant
    """
    match = BACKUP_PATH_PATTERN.match(path)
    if match is None:
        return None

    try:
        captured_at = datetime(
            int(match["year"]),
            int(match["month"]),
            int(match["day"]),
            int(match["hour"]),
            int(match["minute"]),
            int(match["second"]),
            tzinfo=UTC,
        )
    except ValueError:
        return None

    return BackupArtifact(
        path=path,
        key=key if key is not None else path,
        captured_at=captured_at,
        database=match["database"],
    )


def sort_newest_first(artifacts: Iterable[BackupArtifact]) -> List[BackupArtifact]:
    """
    Order artifacts newest first.

    Same-second ties are broken by path descending so the order is total
    and identical across runs.
    """
    return sorted(artifacts, key=lambda a: a.sort_key, reverse=True)


def read_catalog(
    keys: Iterable[str],
    prefix: str = "",
    database: str | None = None,
) -> List[BackupArtifact]:
    """
    Turn raw object keys into a newest-first list of artifacts.

    Args:
        keys: Object keys as returned by the listing
        prefix: Namespace prefix to strip before parsing
        database: If set, ignore artifacts of other databases

    Returns:
        Artifacts sorted newest first
    """
    if prefix and not prefix.endswith("/"):
        prefix = f"{prefix}/"

    artifacts: List[BackupArtifact] = []

    for key in keys:
        path = key[len(prefix):] if prefix and key.startswith(prefix) else key
        artifact = parse_backup_path(path, key)
        if artifact is None:
            logger.warning("unparseable_backup_key", key=key)
            continue

        if database is not None and artifact.database != database:
            logger.debug("backup_other_database_ignored", key=key, database=artifact.database)
            continue

        artifacts.append(artifact)

    return sort_newest_first(artifacts)


async def list_backup_keys(s3_client: Any, config: RetentionConfig) -> List[str]:
    """List all object keys under the configured prefix."""
    keys: List[str] = []
    paginator = s3_client.get_paginator("list_objects_v2")

    params = {"Bucket": config.bucket, "MaxKeys": config.s3_list_batch_size}
    if config.prefix:
        params["Prefix"] = config.prefix

    async for page in paginator.paginate(**params):
        for obj in page.get("Contents", []):
            keys.append(obj["Key"])

    return keys
