"""Suspension policies for Wait steps.

The engine hands every positive wait to a suspender:

- InlineSuspender sleeps in the running task and the loop continues.
- DurableSuspender sleeps inline only for short waits. Longer waits
  store a RunCheckpoint and schedule a resume job, and the current run
  returns as suspended. The process may stop in between; the resume job
  rehydrates the run from the checkpoint.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

import structlog

from core.exceptions import StepExecutionError
from workflow.checkpoint import CheckpointStore, RunCheckpoint

logger = structlog.get_logger(__name__)

CheckpointFactory = Callable[[datetime], RunCheckpoint]
Sleep = Callable[[float], Awaitable[None]]


class ResumeScheduler(ABC):
    """Arranges for a checkpointed run to be resumed at its resume time."""

    @abstractmethod
    async def schedule(self, checkpoint: RunCheckpoint) -> None:
        ...


class Suspender(ABC):
    @abstractmethod
    async def suspend(
        self,
        wait_ms: int,
        now: datetime,
        build_checkpoint: CheckpointFactory,
    ) -> Optional[datetime]:
        """Wait ``wait_ms`` milliseconds or checkpoint the run.

        Returns:
            None when the wait has elapsed and the run can continue, or
            the resume time when the run was checkpointed.
        """


class InlineSuspender(Suspender):
    """Sleep for the whole wait inside the running task."""

    def __init__(self, sleep: Sleep = asyncio.sleep):
        self._sleep = sleep

    async def suspend(
        self,
        wait_ms: int,
        now: datetime,
        build_checkpoint: CheckpointFactory,
    ) -> Optional[datetime]:
        logger.info("Sleeping inline", wait_ms=wait_ms)
        await self._sleep(wait_ms / 1000)
        return None


class DurableSuspender(Suspender):
    """Checkpoint waits longer than ``inline_max_ms`` and resume them later."""

    def __init__(
        self,
        store: CheckpointStore,
        scheduler: ResumeScheduler,
        inline_max_ms: int = 30_000,
        sleep: Sleep = asyncio.sleep,
    ):
        self._store = store
        self._scheduler = scheduler
        self._inline_max_ms = inline_max_ms
        self._sleep = sleep

    async def suspend(
        self,
        wait_ms: int,
        now: datetime,
        build_checkpoint: CheckpointFactory,
    ) -> Optional[datetime]:
        if wait_ms <= self._inline_max_ms:
            await self._sleep(wait_ms / 1000)
            return None

        resume_at = now + timedelta(milliseconds=wait_ms)
        checkpoint = build_checkpoint(resume_at)
        await self._store.save(checkpoint)
        try:
            await self._scheduler.schedule(checkpoint)
        except Exception as e:
            # An unscheduled checkpoint must not be picked up by the overdue sweep
            await self._store.delete(checkpoint.run_id)
            logger.error("Could not schedule resume", run_id=checkpoint.run_id, error=str(e))
            raise StepExecutionError(f"could not schedule resume: {e}") from e

        logger.info(
            "Run suspended",
            run_id=checkpoint.run_id,
            wait_ms=wait_ms,
            resume_at=resume_at.isoformat(),
        )
        return resume_at
