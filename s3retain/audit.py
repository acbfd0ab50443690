# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Audit Trail - Append-only record of retention runs.

Every run (dry or not) gets one row in ``runs`` and one row per backup in
``decisions`` describing what was decided and what actually happened to it.
The audit trail is never read back by the policy: decisions are always
recomputed from the live catalog.
"""

import json
from datetime import datetime, UTC
from pathlib import Path
from typing import Dict, List, Sequence, TypedDict

import aiosqlite
import structlog

from s3retain.exceptions import AuditError
from s3retain.policy import RetentionDecision

logger = structlog.get_logger()

# Decision outcomes stored alongside the verdict
OUTCOME_KEPT = "kept"
OUTCOME_DELETED = "deleted"
OUTCOME_DELETE_FAILED = "delete_failed"
OUTCOME_WOULD_DELETE = "would_delete"


class RunRecord(TypedDict):
    """Record of a retention run."""

    id: str  # ULID
    started_at: str  # ISO 8601
    dry_run: bool
    policy: dict
    stats: dict
    completed_at: str | None
    error: str | None


class DecisionRecord(TypedDict):
    """Record of a single backup's decision in a run."""

    run_id: str
    path: str
    s3_key: str
    captured_at: str
    verdict: str
    reason: str | None
    bucket: str | None
    outcome: str


async def init_audit_db(db_path: Path) -> None:
    """
    Initialize the audit database schema.

    Creates tables if they don't exist. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id TEXT PRIMARY KEY,
                    started_at TEXT NOT NULL,
                    dry_run INTEGER NOT NULL,
                    policy TEXT NOT NULL,
                    stats TEXT NOT NULL,
                    completed_at TEXT,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS decisions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    path TEXT NOT NULL,
                    s3_key TEXT NOT NULL,
                    captured_at TEXT NOT NULL,
                    verdict TEXT NOT NULL,
                    reason TEXT,
                    bucket TEXT,
                    outcome TEXT NOT NULL,
                    FOREIGN KEY (run_id) REFERENCES runs(id)
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_decisions_run_id
                ON decisions(run_id)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_runs_started_at
                ON runs(started_at)
            """)

            await db.commit()

        logger.info("audit_db_initialized", db_path=str(db_path))

    except Exception as e:
        raise AuditError(
            f"Failed to initialize audit database: {e}",
            details={"db_path": str(db_path)},
        )


async def record_run(
    db: aiosqlite.Connection,
    run_id: str,
    dry_run: bool,
    policy: dict,
    stats: dict,
    started_at: datetime | None = None,
) -> None:
    """
    Record the start of a retention run.

    Args:
        db: SQLite database connection
        run_id: Unique run ID (ULID)
        dry_run: Whether deletions are suppressed
        policy: Policy the run evaluated
        stats: Initial statistics
        started_at: When the run began (default: now)
    """
    started = (started_at or datetime.now(UTC)).isoformat()

    await db.execute(
        """
        INSERT INTO runs (id, started_at, dry_run, policy, stats)
        VALUES (?, ?, ?, ?, ?)
        """,
        (run_id, started, int(dry_run), json.dumps(policy), json.dumps(stats)),
    )
    await db.commit()

    logger.debug("run_recorded", run_id=run_id, dry_run=dry_run)


async def complete_run(
    db: aiosqlite.Connection,
    run_id: str,
    stats: dict,
    error: str | None = None,
) -> None:
    """
    Mark a run as completed.

    Args:
        db: SQLite database connection
        run_id: Run ID
        stats: Final statistics
        error: Error message if the run failed
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        UPDATE runs
        SET stats = ?, completed_at = ?, error = ?
        WHERE id = ?
        """,
        (json.dumps(stats), now, error, run_id),
    )
    await db.commit()


async def record_decisions(
    db: aiosqlite.Connection,
    run_id: str,
    decisions: Sequence[RetentionDecision],
    outcomes: Dict[str, str],
) -> int:
    """
    Record every decision of a run.

    Args:
        db: SQLite database connection
        run_id: Run the decisions belong to
        decisions: Final decisions (after the safety net)
        outcomes: Outcome per path (kept, deleted, delete_failed, would_delete)

    Returns:
        Number of rows written
    """
    rows = [
        (
            run_id,
            d.artifact.path,
            d.artifact.key,
            d.artifact.captured_at.isoformat(),
            d.verdict.value,
            d.reason.value if d.reason else None,
            d.bucket,
            outcomes.get(d.artifact.path, OUTCOME_KEPT),
        )
        for d in decisions
    ]

    await db.executemany(
        """
        INSERT INTO decisions
        (run_id, path, s3_key, captured_at, verdict, reason, bucket, outcome)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    await db.commit()

    logger.debug("decisions_recorded", run_id=run_id, count=len(rows))
    return len(rows)


def _run_from_row(row) -> RunRecord:
    return RunRecord(
        id=row[0],
        started_at=row[1],
        dry_run=bool(row[2]),
        policy=json.loads(row[3]),
        stats=json.loads(row[4]),
        completed_at=row[5],
        error=row[6],
    )


async def get_run(db: aiosqlite.Connection, run_id: str) -> RunRecord | None:
    """Get a run record, or None if not found."""
    async with db.execute(
        """
        SELECT id, started_at, dry_run, policy, stats, completed_at, error
        FROM runs WHERE id = ?
        """,
        (run_id,),
    ) as cursor:
        row = await cursor.fetchone()
        return _run_from_row(row) if row else None


async def list_runs(
    db: aiosqlite.Connection,
    limit: int = 50,
    offset: int = 0,
) -> List[RunRecord]:
    """
    List runs, newest first, with pagination.

    Args:
        db: SQLite database connection
        limit: Maximum number of records to return
        offset: Number of records to skip

    Returns:
        List of run records
    """
    records: List[RunRecord] = []

    async with db.execute(
        """
        SELECT id, started_at, dry_run, policy, stats, completed_at, error
        FROM runs
        ORDER BY started_at DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        (limit, offset),
    ) as cursor:
        async for row in cursor:
            records.append(_run_from_row(row))

    return records


async def get_run_decisions(
    db: aiosqlite.Connection,
    run_id: str,
) -> List[DecisionRecord]:
    """Get all decisions of a run in the order they were evaluated."""
    records: List[DecisionRecord] = []

    async with db.execute(
        """
        SELECT run_id, path, s3_key, captured_at, verdict, reason, bucket, outcome
        FROM decisions
        WHERE run_id = ?
        ORDER BY id
        """,
        (run_id,),
    ) as cursor:
        async for row in cursor:
            records.append(
                DecisionRecord(
                    run_id=row[0],
                    path=row[1],
                    s3_key=row[2],
                    captured_at=row[3],
                    verdict=row[4],
                    reason=row[5],
                    bucket=row[6],
                    outcome=row[7],
                )
            )

    return records
