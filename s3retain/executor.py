# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Executor - Safety net and deletion of expired backups.

The safety net guarantees a run never leaves fewer than ``min_backups``
backups behind: if the policy would, the newest delete candidates are
rescued until the floor is met. Deletion then removes each remaining
candidate on its own; one failed delete never stops the others.
"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, List, Sequence

import structlog

from s3retain.catalog import BackupArtifact
from s3retain.policy import KeepReason, RetentionDecision, Verdict

logger = structlog.get_logger()


@dataclass
class DeletionFailure:
    """A backup that could not be deleted."""

    path: str
    key: str
    error: str


@dataclass
class DeletionReport:
    """Outcome of a deletion batch."""

    deleted: List[str] = field(default_factory=list)
    failures: List[DeletionFailure] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


def count_kept(decisions: Sequence[RetentionDecision]) -> int:
    return sum(1 for d in decisions if d.kept)


def apply_safety_net(
    decisions: Sequence[RetentionDecision],
    min_backups: int,
) -> List[RetentionDecision]:
    """
    Rescue delete candidates until at least ``min_backups`` survive.

    Candidates are rescued in the order given (newest first), so the
    backups saved are always the most recent ones the policy dropped.

    Args:
        decisions: Policy decisions, newest first
        min_backups: Safety floor

    Returns:
        New decision list; rescued entries carry min_backups_safety
    """
    surviving = count_kept(decisions)
    shortfall = min_backups - surviving
    if shortfall <= 0:
        return list(decisions)

    adjusted: List[RetentionDecision] = []
    for decision in decisions:
        if shortfall > 0 and decision.verdict == Verdict.DELETE:
            decision = replace(
                decision,
                verdict=Verdict.KEEP,
                reason=KeepReason.MIN_BACKUPS_SAFETY,
                bucket=None,
            )
            shortfall -= 1
        adjusted.append(decision)

    return adjusted


async def delete_backup(s3_client: Any, bucket: str, artifact: BackupArtifact) -> None:
    """Delete a single backup object."""
    await s3_client.delete_object(Bucket=bucket, Key=artifact.key)
    logger.info("backup_deleted", key=artifact.key)


async def execute_deletions(
    s3_client: Any,
    bucket: str,
    artifacts: Sequence[BackupArtifact],
    max_concurrent: int = 10,
) -> DeletionReport:
    """
    Delete every given backup, tolerating per-item failures.

    Deletions are independent of each other, so they run concurrently
    (bounded by ``max_concurrent``). The report lists successes and
    failures in the input order.

    Args:
        s3_client: aiobotocore S3 client
        bucket: Bucket holding the backups
        artifacts: Backups to delete
        max_concurrent: Maximum in-flight delete calls

    Returns:
        DeletionReport with deleted paths and failures
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def delete_one(artifact: BackupArtifact) -> DeletionFailure | None:
        async with semaphore:
            try:
                await delete_backup(s3_client, bucket, artifact)
                return None
            except Exception as e:
                logger.error(
                    "backup_delete_failed",
                    key=artifact.key,
                    error=str(e),
                )
                return DeletionFailure(path=artifact.path, key=artifact.key, error=str(e))

    outcomes = await asyncio.gather(*[delete_one(a) for a in artifacts])

    report = DeletionReport()
    for artifact, failure in zip(artifacts, outcomes):
        if failure is None:
            report.deleted.append(artifact.path)
        else:
            report.failures.append(failure)

    logger.info(
        "deletions_complete",
        deleted=report.deleted_count,
        failed=report.failed_count,
    )
    return report
