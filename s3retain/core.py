# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Core - Main orchestrator functions for retention runs.

A run is a linear pipeline:

    list keys -> read catalog -> evaluate policy -> safety net
              -> log decisions -> delete (unless dry run) -> audit

Only listing and deletion touch the network. The planning step
(plan_retention) is pure and deterministic for a given ``now``.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Iterable, List, TypedDict

import structlog

from s3retain.catalog import list_backup_keys, read_catalog
from s3retain.config import RetentionConfig
from s3retain.executor import (
    DeletionFailure,
    apply_safety_net,
    count_kept,
    execute_deletions,
)
from s3retain.policy import RetentionDecision, Verdict, evaluate_retention

logger = structlog.get_logger()

NOTHING_TO_DO = "No backups found. Nothing to clean up."


@dataclass
class RetentionPlan:
    """Final keep/delete decisions for one catalog snapshot."""

    decisions: List[RetentionDecision]
    min_backups: int
    surviving_before_safety: int
    rescued_count: int = 0

    @property
    def kept(self) -> List[RetentionDecision]:
        return [d for d in self.decisions if d.kept]

    @property
    def to_delete(self) -> List[RetentionDecision]:
        return [d for d in self.decisions if d.verdict == Verdict.DELETE]

    @property
    def kept_count(self) -> int:
        return len(self.kept)

    @property
    def delete_count(self) -> int:
        return len(self.to_delete)

    @property
    def is_empty(self) -> bool:
        return not self.decisions


@dataclass
class RetentionResult:
    """Result of a retention run."""

    run_id: str  # ULID
    dry_run: bool
    total_listed: int
    total_backups: int
    kept_count: int
    delete_count: int
    deleted_count: int
    rescued_count: int
    errors: List[str]
    duration_seconds: float
    kept_paths: List[str] = field(default_factory=list)
    deleted_paths: List[str] = field(default_factory=list)
    failures: List[DeletionFailure] = field(default_factory=list)
    log_lines: List[str] = field(default_factory=list)
    listing_error: str | None = None
    started_at: datetime | None = None
    audit_error: str | None = None

    @property
    def nothing_to_do(self) -> bool:
        return self.total_backups == 0


@dataclass
class RetentionMetrics:
    """Metrics across retention runs."""

    total_runs: int
    last_run_at: datetime | None
    total_deleted: int
    total_failed: int
    audited_runs: int | None
    last_error: str | None


class RetentionState(TypedDict):
    """Runtime state for retention runs."""

    s3_session: Any  # aiobotocore session
    audit_db_path: Path | None
    last_run_at: datetime | None
    total_runs: int
    total_deleted: int
    total_failed: int
    last_error: str | None


async def initialize_retention_state(config: RetentionConfig) -> RetentionState:
    """
    Initialize runtime state for retention runs.

    Creates the S3 session and, if auditing is enabled, the audit database.

    Args:
        config: Retention configuration

    Returns:
        Initialized RetentionState dictionary
    """
    from aiobotocore.session import get_session

    from s3retain.audit import init_audit_db

    if config.audit_db_path is not None:
        await init_audit_db(config.audit_db_path)

    return RetentionState(
        s3_session=get_session(),
        audit_db_path=config.audit_db_path,
        last_run_at=None,
        total_runs=0,
        total_deleted=0,
        total_failed=0,
        last_error=None,
    )


def create_s3_client(config: RetentionConfig, state: RetentionState):
    """Client context manager for the configured bucket's endpoint."""
    return state["s3_session"].create_client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
    )


def plan_retention(
    keys: Iterable[str],
    config: RetentionConfig,
    now: datetime,
) -> RetentionPlan:
    """
    Compute final decisions for a set of object keys.

    Unparseable keys are dropped (with a warning) before evaluation; the
    safety net is applied to the policy's decisions.

    Args:
        keys: Object keys from the listing
        config: Retention configuration
        now: Evaluation instant

    Returns:
        RetentionPlan with one decision per valid backup, newest first
    """
    artifacts = read_catalog(keys, prefix=config.prefix, database=config.database)
    policy = config.policy

    decisions = evaluate_retention(artifacts, policy, now)
    surviving = count_kept(decisions)
    final = apply_safety_net(decisions, policy.min_backups)

    return RetentionPlan(
        decisions=final,
        min_backups=policy.min_backups,
        surviving_before_safety=surviving,
        rescued_count=count_kept(final) - surviving,
    )


def format_decision(decision: RetentionDecision) -> str:
    """Render one decision as a ``KEEP:``/``DELETE:`` log line."""
    if decision.verdict == Verdict.DELETE:
        return f"DELETE: {decision.path}"
    if decision.bucket:
        return f"KEEP: {decision.path} (reason: {decision.reason.value}, bucket: {decision.bucket})"
    return f"KEEP: {decision.path} (reason: {decision.reason.value})"


def render_log_lines(plan: RetentionPlan, dry_run: bool) -> List[str]:
    """
    Render the audit log for a plan.

    KEEP lines come first (newest first), then DELETE lines, then the
    summary. The wording is stable; tests and log scrapers match on it.
    """
    if plan.is_empty:
        return [NOTHING_TO_DO]

    lines: List[str] = []
    if plan.rescued_count:
        lines.append(
            f"Safety: Would leave only {plan.surviving_before_safety} backup(s), "
            f"need at least {plan.min_backups}"
        )
        lines.append(f"Saving {plan.rescued_count} additional backup(s) from deletion")

    lines.extend(format_decision(d) for d in plan.kept)
    lines.extend(format_decision(d) for d in plan.to_delete)
    lines.append(f"Summary: Keeping {plan.kept_count}, Deleting {plan.delete_count}")

    if plan.delete_count == 0:
        lines.append("No backups to delete.")
    elif dry_run:
        lines.append(f"DRY RUN: Would delete {plan.delete_count} backup(s)")

    return lines


async def preview_retention(
    config: RetentionConfig,
    state: RetentionState,
    now: datetime | None = None,
    s3_client: Any = None,
) -> RetentionPlan:
    """
    List the catalog and plan a run without deleting or counting it.

    Unlike a dry-run cycle, a preview leaves no trace in the state
    counters or the audit trail. Listing errors propagate as CatalogError.
    """
    from s3retain.exceptions import CatalogError

    if s3_client is None:
        async with create_s3_client(config, state) as client:
            return await preview_retention(config, state, now, client)

    try:
        keys = await list_backup_keys(s3_client, config)
    except Exception as e:
        raise CatalogError(
            f"Failed to list backups: {e}",
            details={"bucket": config.bucket, "prefix": config.prefix},
        )

    return plan_retention(keys, config, now or datetime.now(UTC))


async def run_retention_cycle(
    config: RetentionConfig,
    state: RetentionState,
    now: datetime | None = None,
    s3_client: Any = None,
) -> RetentionResult:
    """
    Run a complete retention cycle.

    This is the main entry point for retention. It:
    1. Lists all backup keys under the configured prefix
    2. Evaluates the retention policy and applies the safety net
    3. Logs every decision
    4. Deletes expired backups (unless dry run)
    5. Records the run in the audit trail (if enabled)

    Args:
        config: Retention configuration
        state: Runtime state
        now: Evaluation instant (default: current UTC time)
        s3_client: Existing S3 client (default: one is created from state)

    Returns:
        RetentionResult with run details

    Raises:
        DeletionError: If fail_on_delete_errors is set and any deletion failed
    """
    if s3_client is None:
        async with create_s3_client(config, state) as client:
            return await run_retention_cycle(config, state, now, client)

    from ulid import ULID

    from s3retain.exceptions import DeletionError

    run_id = str(ULID())
    start_time = datetime.now(UTC)
    now = now or start_time

    logger.info(
        "retention_cycle_started",
        run_id=run_id,
        bucket=config.bucket,
        **config.policy.as_dict(),
    )

    try:
        listing_error = None
        try:
            keys = await list_backup_keys(s3_client, config)
        except Exception as e:
            listing_error = str(e)
            keys = []
            logger.warning("catalog_listing_failed", bucket=config.bucket, error=listing_error)
        logger.info("objects_listed", total=len(keys))

        plan = plan_retention(keys, config, now)
        log_lines = render_log_lines(plan, config.dry_run)
        for line in log_lines:
            logger.info(line)

        failures: List[DeletionFailure] = []
        deleted_paths: List[str] = []

        if not config.dry_run and plan.delete_count:
            logger.info(f"Deleting {plan.delete_count} backup(s)...")
            report = await execute_deletions(
                s3_client,
                config.bucket,
                [d.artifact for d in plan.to_delete],
                max_concurrent=config.max_concurrent_ops,
            )
            failures = report.failures
            deleted_paths = report.deleted
            logger.info("Deletion complete.")

        duration = (datetime.now(UTC) - start_time).total_seconds()
        errors = [f"{f.path}: {f.error}" for f in failures]

        result = RetentionResult(
            run_id=run_id,
            dry_run=config.dry_run,
            total_listed=len(keys),
            total_backups=len(plan.decisions),
            kept_count=plan.kept_count,
            delete_count=plan.delete_count,
            deleted_count=len(deleted_paths),
            rescued_count=plan.rescued_count,
            errors=errors,
            duration_seconds=duration,
            kept_paths=[d.path for d in plan.kept],
            deleted_paths=deleted_paths,
            failures=failures,
            log_lines=log_lines,
            listing_error=listing_error,
            started_at=start_time,
        )

        state["last_run_at"] = datetime.now(UTC)
        state["total_runs"] += 1
        state["total_deleted"] += result.deleted_count
        state["total_failed"] += len(failures)

        if state["audit_db_path"] is not None:
            try:
                await _audit_run(state["audit_db_path"], config, plan, result)
            except Exception as e:
                result.audit_error = str(e)
                logger.error("audit_write_failed", run_id=run_id, error=str(e))

        logger.info(
            "retention_cycle_completed",
            run_id=run_id,
            kept=result.kept_count,
            deleted=result.deleted_count,
            failed=len(failures),
            duration=duration,
        )

        if failures and config.fail_on_delete_errors:
            raise DeletionError(
                f"{len(failures)} backup(s) could not be deleted",
                details={"run_id": run_id, "errors": errors},
            )

        return result

    except Exception as e:
        state["last_error"] = str(e)
        logger.error("retention_cycle_failed", run_id=run_id, error=str(e))
        raise


def _outcomes(plan: RetentionPlan, result: RetentionResult) -> Dict[str, str]:
    from s3retain.audit import (
        OUTCOME_DELETE_FAILED,
        OUTCOME_DELETED,
        OUTCOME_KEPT,
        OUTCOME_WOULD_DELETE,
    )

    failed = {f.path for f in result.failures}
    deleted = set(result.deleted_paths)
    outcomes: Dict[str, str] = {}
    for decision in plan.decisions:
        if decision.kept:
            outcomes[decision.path] = OUTCOME_KEPT
        elif decision.path in deleted:
            outcomes[decision.path] = OUTCOME_DELETED
        elif decision.path in failed:
            outcomes[decision.path] = OUTCOME_DELETE_FAILED
        else:
            outcomes[decision.path] = OUTCOME_WOULD_DELETE
    return outcomes


async def _audit_run(
    audit_db_path: Path,
    config: RetentionConfig,
    plan: RetentionPlan,
    result: RetentionResult,
) -> None:
    """Write the run and its decisions to the audit trail."""
    import aiosqlite

    from s3retain.audit import complete_run, record_decisions, record_run

    stats = {
        "total_backups": result.total_backups,
        "kept": result.kept_count,
        "delete_candidates": result.delete_count,
        "deleted": result.deleted_count,
        "rescued": result.rescued_count,
        "failed": len(result.failures),
    }

    async with aiosqlite.connect(audit_db_path) as db:
        await record_run(
            db,
            result.run_id,
            config.dry_run,
            config.policy.as_dict(),
            stats,
            started_at=result.started_at,
        )
        await record_decisions(db, result.run_id, plan.decisions, _outcomes(plan, result))
        await complete_run(
            db,
            result.run_id,
            stats,
            error="; ".join(result.errors) or result.listing_error,
        )


async def get_metrics(config: RetentionConfig, state: RetentionState) -> RetentionMetrics:
    """Get current retention metrics."""
    import aiosqlite

    audited_runs = None
    if state["audit_db_path"] is not None:
        async with aiosqlite.connect(state["audit_db_path"]) as db:
            async with db.execute("SELECT COUNT(*) FROM runs") as cursor:
                row = await cursor.fetchone()
                audited_runs = row[0] if row else 0

    return RetentionMetrics(
        total_runs=state["total_runs"],
        last_run_at=state["last_run_at"],
        total_deleted=state["total_deleted"],
        total_failed=state["total_failed"],
        audited_runs=audited_runs,
        last_error=state["last_error"],
    )


async def shutdown_retention_state(state: RetentionState) -> None:
    """Release resources held by the state."""
    state["s3_session"] = None
    logger.info("retention_state_shutdown_complete")
