"""Celery tasks for durable workflow runs.

A run that reaches a long Wait step is checkpointed by the engine's
DurableSuspender, which schedules ``resume_workflow_run`` with an ETA at
the resume time. The worker then loads the checkpoint and continues the
run where it stopped. A periodic sweep re-dispatches checkpoints whose
resume task was lost (broker restart, purged queue).
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from app.config import get_settings
from core.exceptions import CheckpointNotFoundError
from workflow.checkpoint import CheckpointStore, RedisCheckpointStore, RunCheckpoint
from workflow.engine import WorkflowEngine
from workflow.suspension import DurableSuspender, ResumeScheduler
from worker.celery_app import celery_app

logger = structlog.get_logger(__name__)


class CeleryResumeScheduler(ResumeScheduler):
    """Schedules the resume task for a checkpoint's resume time.

    Waits longer than ``max_eta_seconds`` are queued in hops: the task
    arrives early, finds the run not yet due and schedules itself again.
    """

    def __init__(self, max_eta_seconds: Optional[int] = None):
        self.max_eta_seconds = max_eta_seconds or get_settings().RESUME_ETA_MAX_SECONDS

    def eta_for(self, checkpoint: RunCheckpoint, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return min(checkpoint.resume_at, now + timedelta(seconds=self.max_eta_seconds))

    async def schedule(self, checkpoint: RunCheckpoint) -> None:
        eta = self.eta_for(checkpoint)
        resume_workflow_run.apply_async(args=[checkpoint.run_id], eta=eta)
        logger.info(
            "Resume scheduled",
            run_id=checkpoint.run_id,
            resume_at=checkpoint.resume_at.isoformat(),
            eta=eta.isoformat(),
        )


def build_durable_engine(store: CheckpointStore, scheduler: Optional[ResumeScheduler] = None) -> WorkflowEngine:
    """Engine whose long waits are checkpointed in ``store``."""
    settings = get_settings()
    return WorkflowEngine(
        suspender=DurableSuspender(
            store,
            scheduler or CeleryResumeScheduler(),
            inline_max_ms=settings.WAIT_INLINE_MAX_SECONDS * 1000,
        )
    )


def _is_transient_error(exc: Exception) -> bool:
    """Check if an error is transient (worth retrying)."""
    transient_types = (ConnectionError, TimeoutError, OSError)
    error_msg = str(exc).lower()
    transient_keywords = ["connection", "timeout", "unavailable", "reset"]
    return isinstance(exc, transient_types) or any(kw in error_msg for kw in transient_keywords)


def _open_store() -> RedisCheckpointStore:
    settings = get_settings()
    return RedisCheckpointStore.from_url(settings.REDIS_URL, settings.CHECKPOINT_TTL_SECONDS)


# ─── Async bodies (run inside the worker's event loop) ───────────

async def resume_run(
    run_id: str,
    store: CheckpointStore,
    engine: WorkflowEngine,
    scheduler: ResumeScheduler,
    now: Optional[datetime] = None,
) -> dict:
    """Continue a checkpointed run.

    A task delivered before the resume time re-schedules itself. A due
    run is claimed from the store before it continues, so a duplicate
    delivery (sweep re-dispatch, broker redelivery) finds nothing to do.
    A run that suspends again saves a fresh checkpoint.
    """
    try:
        checkpoint = await store.load(run_id)
    except CheckpointNotFoundError:
        logger.warning("No checkpoint for run, already resumed?", run_id=run_id)
        return {"run_id": run_id, "status": "missing"}

    now = now or datetime.now(timezone.utc)
    if not checkpoint.is_due(now):
        await scheduler.schedule(checkpoint)
        return {"run_id": run_id, "status": "rescheduled", "resume_at": checkpoint.resume_at.isoformat()}

    claimed = await store.claim(run_id)
    if claimed is None:
        logger.info("Run already claimed by another worker", run_id=run_id)
        return {"run_id": run_id, "status": "claimed"}

    result = await engine.resume(claimed)

    logger.info("Run segment finished", run_id=run_id, status=result.status.value)
    return result.to_dict()


async def start_run(definition: dict, trigger_payload, run_id: Optional[str], engine: WorkflowEngine) -> dict:
    result = await engine.run_definition(definition, trigger_payload, run_id)
    return result.to_dict()


async def find_overdue_runs(store: CheckpointStore, now: datetime, grace_seconds: int) -> list[str]:
    return await store.list_due(now - timedelta(seconds=grace_seconds))


def _run_with_store(build_coro):
    """Run ``build_coro(store)`` on a fresh event loop with a fresh store."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    store = _open_store()
    try:
        return loop.run_until_complete(build_coro(store))
    finally:
        loop.run_until_complete(store.close())
        loop.close()


# ─── Tasks ───────────────────────────────────────────────────────

@celery_app.task(
    name="worker.tasks.workflow.run_workflow",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    acks_late=True,
    queue="workflows",
)
def run_workflow(self, definition: dict, trigger_payload=None, run_id: Optional[str] = None):
    """Run a workflow definition on the worker with durable waits."""
    logger.info("Starting workflow run", workflow_id=definition.get("id"), run_id=run_id)
    try:
        return _run_with_store(
            lambda store: start_run(definition, trigger_payload, run_id, build_durable_engine(store))
        )
    except Exception as exc:
        logger.error("Workflow run task failed", workflow_id=definition.get("id"), error=str(exc))
        if self.request.retries < self.max_retries and _is_transient_error(exc):
            raise self.retry(exc=exc)
        raise


@celery_app.task(
    name="worker.tasks.workflow.resume_workflow_run",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    acks_late=True,
    queue="workflows",
)
def resume_workflow_run(self, run_id: str):
    """Resume a suspended run from its checkpoint."""
    logger.info("Resuming workflow run", run_id=run_id)
    scheduler = CeleryResumeScheduler()
    try:
        return _run_with_store(
            lambda store: resume_run(run_id, store, build_durable_engine(store, scheduler), scheduler)
        )
    except Exception as exc:
        logger.error("Resume task failed", run_id=run_id, error=str(exc))
        if self.request.retries < self.max_retries and _is_transient_error(exc):
            raise self.retry(exc=exc)
        raise


@celery_app.task(
    name="worker.tasks.workflow.resume_due_runs",
    queue="workflows",
)
def resume_due_runs():
    """Re-dispatch checkpoints that are overdue by more than the grace period."""
    grace = get_settings().CHECKPOINT_SWEEP_GRACE_SECONDS
    run_ids = _run_with_store(
        lambda store: find_overdue_runs(store, datetime.now(timezone.utc), grace)
    )
    for run_id in run_ids:
        resume_workflow_run.delay(run_id)
    if run_ids:
        logger.info("Overdue runs re-dispatched", count=len(run_ids))
    return {"dispatched": len(run_ids)}
