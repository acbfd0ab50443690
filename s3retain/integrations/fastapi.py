# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain FastAPI Integration - Plugin for FastAPI applications.

This module provides a complete integration with FastAPI including:
- Lifespan management (startup/shutdown)
- Protected admin endpoints
- Scheduled retention runs
- Health checks
"""

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, UTC
from typing import Any

import aiosqlite
import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from s3retain.audit import get_run_decisions, list_runs
from s3retain.config import RetentionConfig
from s3retain.core import (
    RetentionResult,
    RetentionState,
    create_s3_client,
    format_decision,
    get_metrics,
    initialize_retention_state,
    preview_retention,
    render_log_lines,
    run_retention_cycle,
    shutdown_retention_state,
)
from s3retain.exceptions import CatalogError, DeletionError

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the S3RETAIN_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("S3RETAIN_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="S3RETAIN_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def register_retention_routes(
    app: FastAPI,
    config: RetentionConfig,
    state: RetentionState,
    prefix: str = "/admin/retention",
    s3_client: Any = None,
    run_lock: asyncio.Lock | None = None,
) -> None:
    """
    Register retention admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication. Runs never
    overlap: a run requested while another one (manual or scheduled)
    holds ``run_lock`` is rejected with 409.

    Args:
        app: FastAPI application
        config: Retention configuration
        state: Runtime state
        prefix: URL prefix for endpoints (default: /admin/retention)
        s3_client: Existing S3 client (default: one per request)
        run_lock: Lock shared with the scheduled job (default: a new one)
    """
    if run_lock is None:
        run_lock = asyncio.Lock()

    @app.post(f"{prefix}/run", dependencies=[Depends(verify_api_key)])
    async def trigger_run(dry_run: bool | None = None) -> dict:
        """
        Manually trigger a retention run.

        Args:
            dry_run: Override the configured dry-run flag for this run
        """
        if run_lock.locked():
            raise HTTPException(status_code=409, detail="A retention run is already in progress")

        run_config = config if dry_run is None else config.with_updates(dry_run=dry_run)
        async with run_lock:
            try:
                result = await run_retention_cycle(run_config, state, s3_client=s3_client)
            except DeletionError as e:
                raise HTTPException(status_code=500, detail=str(e))
        return asdict(result)

    @app.get(f"{prefix}/preview", dependencies=[Depends(verify_api_key)])
    async def preview() -> dict:
        """
        Show what a run would do right now, without deleting anything.
        """
        try:
            plan = await preview_retention(config, state, s3_client=s3_client)
        except CatalogError as e:
            raise HTTPException(status_code=502, detail=str(e))

        return {
            "total_backups": len(plan.decisions),
            "kept": plan.kept_count,
            "to_delete": plan.delete_count,
            "rescued": plan.rescued_count,
            "decisions": [
                {
                    "path": d.path,
                    "verdict": d.verdict.value,
                    "reason": d.reason.value if d.reason else None,
                    "bucket": d.bucket,
                    "line": format_decision(d),
                }
                for d in plan.decisions
            ],
            "log": render_log_lines(plan, dry_run=True),
        }

    @app.get(f"{prefix}/status", dependencies=[Depends(verify_api_key)])
    async def get_status() -> dict:
        """
        Get current retention status.

        Returns last run time, total runs, and the active policy.
        """
        return {
            "last_run_at": (
                state["last_run_at"].isoformat() if state["last_run_at"] else None
            ),
            "total_runs": state["total_runs"],
            "total_deleted": state["total_deleted"],
            "total_failed": state["total_failed"],
            "running": run_lock.locked(),
            "dry_run": config.dry_run,
            "bucket": config.bucket,
            "policy": config.policy.as_dict(),
        }

    @app.get(f"{prefix}/metrics", dependencies=[Depends(verify_api_key)])
    async def get_retention_metrics() -> dict:
        """
        Get retention metrics.
        """
        metrics = await get_metrics(config, state)
        return {
            "total_runs": metrics.total_runs,
            "last_run_at": (
                metrics.last_run_at.isoformat() if metrics.last_run_at else None
            ),
            "total_deleted": metrics.total_deleted,
            "total_failed": metrics.total_failed,
            "audited_runs": metrics.audited_runs,
            "last_error": metrics.last_error,
        }

    @app.get(f"{prefix}/runs", dependencies=[Depends(verify_api_key)])
    async def list_retention_runs(limit: int = 50, offset: int = 0) -> list:
        """
        List audited runs with pagination.

        Args:
            limit: Maximum number of runs to return
            offset: Number of runs to skip
        """
        if state["audit_db_path"] is None:
            raise HTTPException(status_code=404, detail="Audit trail is not enabled")
        async with aiosqlite.connect(state["audit_db_path"]) as db:
            return await list_runs(db, limit, offset)

    @app.get(f"{prefix}/runs/{{run_id}}", dependencies=[Depends(verify_api_key)])
    async def get_retention_run(run_id: str) -> list:
        """
        Get the decisions recorded for one run.
        """
        if state["audit_db_path"] is None:
            raise HTTPException(status_code=404, detail="Audit trail is not enabled")
        async with aiosqlite.connect(state["audit_db_path"]) as db:
            decisions = await get_run_decisions(db, run_id)
        if not decisions:
            raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
        return decisions

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Verifies bucket reachability and the audit database.
        """
        audit_ok = None
        if state["audit_db_path"] is not None:
            audit_ok = state["audit_db_path"].exists()

        s3_ok = False
        s3_error = None
        try:
            if s3_client is not None:
                await s3_client.head_bucket(Bucket=config.bucket)
            else:
                async with create_s3_client(config, state) as client:
                    await client.head_bucket(Bucket=config.bucket)
            s3_ok = True
        except Exception as e:
            s3_error = str(e)

        status = "healthy"
        if not s3_ok or audit_ok is False:
            status = "degraded"
        if not s3_ok and audit_ok is False:
            status = "unhealthy"

        return {
            "status": status,
            "s3_reachable": s3_ok,
            "s3_error": s3_error,
            "audit_accessible": audit_ok,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get(f"{prefix}/config", dependencies=[Depends(verify_api_key)])
    async def get_config() -> dict:
        """
        Get current configuration (endpoint details redacted).
        """
        return {
            "bucket": config.bucket,
            "region": config.region,
            "prefix": config.prefix,
            "database": config.database,
            "dry_run": config.dry_run,
            "policy": config.policy.as_dict(),
            "max_concurrent_ops": config.max_concurrent_ops,
            "fail_on_delete_errors": config.fail_on_delete_errors,
            "audit_enabled": config.audit_db_path is not None,
            "schedule_cron": config.schedule_cron,
        }


def setup_retention_plugin(
    app: FastAPI,
    config: RetentionConfig,
    prefix: str = "/admin/retention",
) -> None:
    """
    Set up the retention plugin with startup/shutdown hooks.

    It sets up:
    - State initialization on startup
    - Admin endpoints
    - Scheduled daily runs if configured

    Manual and scheduled runs share one lock, so they never overlap.

    Args:
        app: FastAPI application
        config: Retention configuration
        prefix: URL prefix for admin endpoints
    """
    app.state.retention_config = config
    app.state.retention_state = None
    app.state.retention_scheduler = None
    app.state.retention_run_lock = asyncio.Lock()

    @app.on_event("startup")
    async def startup():
        """Initialize retention on app startup."""
        logger.info("retention_plugin_starting", bucket=config.bucket, dry_run=config.dry_run)

        state = await initialize_retention_state(config)
        app.state.retention_state = state
        run_lock = app.state.retention_run_lock

        register_retention_routes(app, config, state, prefix, run_lock=run_lock)

        if config.schedule_cron:
            app.state.retention_scheduler = _setup_scheduled_task(config, state, run_lock)

        logger.info("retention_plugin_started")

    @app.on_event("shutdown")
    async def shutdown():
        """Clean up on app shutdown."""
        logger.info("retention_plugin_stopping")

        if app.state.retention_scheduler is not None:
            app.state.retention_scheduler.shutdown(wait=False)

        state = app.state.retention_state
        if state:
            await shutdown_retention_state(state)

        logger.info("retention_plugin_stopped")


async def run_scheduled_retention(
    config: RetentionConfig,
    state: RetentionState,
    run_lock: asyncio.Lock,
    s3_client: Any = None,
) -> RetentionResult | None:
    """
    Body of the scheduled job.

    Skips the run (returns None) when another run holds ``run_lock``.
    Errors are logged, never raised into the scheduler.
    """
    if run_lock.locked():
        logger.warning("scheduled_retention_skipped", reason="run_in_progress")
        return None

    async with run_lock:
        logger.info("scheduled_retention_starting")
        try:
            result = await run_retention_cycle(config, state, s3_client=s3_client)
        except Exception as e:
            logger.error("scheduled_retention_failed", error=str(e))
            return None

    logger.info(
        "scheduled_retention_completed",
        deleted=result.deleted_count,
        errors=len(result.errors),
    )
    return result


def _setup_scheduled_task(
    config: RetentionConfig,
    state: RetentionState,
    run_lock: asyncio.Lock,
) -> Any:
    """Set up APScheduler for daily retention runs."""
    try:
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.cron import CronTrigger

        scheduler = AsyncIOScheduler(timezone="UTC")

        hour, minute = map(int, config.schedule_cron.split(":"))

        scheduler.add_job(
            run_scheduled_retention,
            trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
            args=[config, state, run_lock],
            id="s3retain_scheduled",
            replace_existing=True,
            max_instances=1,
        )
        scheduler.start()

        logger.info("scheduler_started", schedule=config.schedule_cron)
        return scheduler

    except ImportError:
        logger.warning(
            "apscheduler_not_installed",
            message="Install apscheduler for scheduled retention runs",
        )
    except Exception as e:
        logger.error("scheduler_setup_failed", error=str(e))
    return None


@asynccontextmanager
async def retention_lifespan(app: FastAPI, config: RetentionConfig):
    """
    Lifespan context manager for FastAPI.

    Use this instead of setup_retention_plugin if you prefer the
    lifespan pattern:

        app = FastAPI(lifespan=lambda app: retention_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Retention configuration
    """
    logger.info("retention_lifespan_starting")

    state = await initialize_retention_state(config)
    run_lock = asyncio.Lock()
    app.state.retention_state = state
    app.state.retention_config = config
    app.state.retention_run_lock = run_lock

    register_retention_routes(app, config, state, run_lock=run_lock)

    scheduler = None
    if config.schedule_cron:
        scheduler = _setup_scheduled_task(config, state, run_lock)
    app.state.retention_scheduler = scheduler

    logger.info("retention_lifespan_started")

    try:
        yield
    finally:
        logger.info("retention_lifespan_stopping")
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await shutdown_retention_state(state)
        logger.info("retention_lifespan_stopped")


def get_retention_state(app: FastAPI) -> RetentionState:
    """
    Get retention state from a FastAPI app.

    Raises:
        RuntimeError: If the plugin is not initialized
    """
    state = getattr(app.state, "retention_state", None)
    if not state:
        raise RuntimeError("s3retain not initialized. Call setup_retention_plugin first.")
    return state
