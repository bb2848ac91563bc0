"""
Run checkpoints for suspended workflow runs.

When a wait is too long to sleep through, the engine stores everything
needed to continue the run later: the workflow definition as it was when
the run started, the data context, the position of the next step and the
step journal so far. A resume job loads the checkpoint at ``resume_at``
and re-enters the run loop.

Stores:
- InMemoryCheckpointStore: process-local, for tests and single-process use
- RedisCheckpointStore: survives restarts; keyed by run id with a TTL,
  plus a sorted set of resume times to find overdue runs
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from core.exceptions import CheckpointNotFoundError
from workflow.models import Workflow

logger = structlog.get_logger(__name__)


class RunCheckpoint(BaseModel):
    """Serialisable snapshot of a suspended run."""

    run_id: str
    workflow: Workflow
    context: dict[str, Any] = Field(default_factory=dict)
    # Index, in evaluation order, of the next step to execute
    cursor: int
    resume_at: datetime
    steps: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def workflow_id(self) -> str:
        return self.workflow.id

    def is_due(self, now: datetime) -> bool:
        return self.resume_at <= now


class CheckpointStore(ABC):
    """Persistence for run checkpoints."""

    @abstractmethod
    async def save(self, checkpoint: RunCheckpoint) -> None:
        """Store (or replace) the checkpoint of a run."""

    @abstractmethod
    async def load(self, run_id: str) -> RunCheckpoint:
        """Load a checkpoint. Raises CheckpointNotFoundError when absent."""

    @abstractmethod
    async def claim(self, run_id: str) -> Optional[RunCheckpoint]:
        """Atomically remove and return a checkpoint.

        Only one caller gets the checkpoint; every other concurrent or later
        caller gets None. The run segment that follows is owned by the
        winner alone.
        """

    @abstractmethod
    async def delete(self, run_id: str) -> None:
        """Forget a checkpoint without resuming it."""

    @abstractmethod
    async def list_due(self, now: datetime) -> list[str]:
        """Run ids whose resume time is at or before ``now``."""


class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self):
        self._checkpoints: dict[str, str] = {}

    async def save(self, checkpoint: RunCheckpoint) -> None:
        # Stored as JSON so loading always yields an independent copy
        self._checkpoints[checkpoint.run_id] = checkpoint.model_dump_json()
        logger.debug("Checkpoint saved", run_id=checkpoint.run_id, cursor=checkpoint.cursor)

    async def load(self, run_id: str) -> RunCheckpoint:
        raw = self._checkpoints.get(run_id)
        if raw is None:
            raise CheckpointNotFoundError(run_id)
        return RunCheckpoint.model_validate_json(raw)

    async def claim(self, run_id: str) -> Optional[RunCheckpoint]:
        raw = self._checkpoints.pop(run_id, None)
        return None if raw is None else RunCheckpoint.model_validate_json(raw)

    async def delete(self, run_id: str) -> None:
        self._checkpoints.pop(run_id, None)

    async def list_due(self, now: datetime) -> list[str]:
        due = []
        for run_id, raw in self._checkpoints.items():
            if RunCheckpoint.model_validate_json(raw).is_due(now):
                due.append(run_id)
        return due


class RedisCheckpointStore(CheckpointStore):
    """Checkpoints in Redis.

    Each checkpoint is stored as JSON under ``pulse:checkpoint:{run_id}``
    and indexed by resume time in the ``pulse:checkpoints:due`` sorted set.
    """

    REDIS_PREFIX = "pulse:checkpoint:"
    DUE_INDEX = "pulse:checkpoints:due"

    def __init__(self, redis_client, ttl_seconds: int):
        self._redis = redis_client
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int) -> "RedisCheckpointStore":
        import redis.asyncio as aioredis

        return cls(aioredis.from_url(url, decode_responses=True), ttl_seconds)

    def _key(self, run_id: str) -> str:
        return f"{self.REDIS_PREFIX}{run_id}"

    async def save(self, checkpoint: RunCheckpoint) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(checkpoint.run_id), checkpoint.model_dump_json(), ex=self._ttl)
            pipe.zadd(self.DUE_INDEX, {checkpoint.run_id: checkpoint.resume_at.timestamp()})
            await pipe.execute()
        logger.info(
            "Checkpoint saved",
            run_id=checkpoint.run_id,
            workflow_id=checkpoint.workflow_id,
            resume_at=checkpoint.resume_at.isoformat(),
        )

    async def load(self, run_id: str) -> RunCheckpoint:
        raw = await self._redis.get(self._key(run_id))
        if raw is None:
            raise CheckpointNotFoundError(run_id)
        return RunCheckpoint.model_validate_json(raw)

    async def claim(self, run_id: str) -> Optional[RunCheckpoint]:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.get(self._key(run_id))
            pipe.delete(self._key(run_id))
            pipe.zrem(self.DUE_INDEX, run_id)
            raw, _, _ = await pipe.execute()
        if raw is None:
            return None
        logger.info("Checkpoint claimed", run_id=run_id)
        return RunCheckpoint.model_validate_json(raw)

    async def delete(self, run_id: str) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(run_id))
            pipe.zrem(self.DUE_INDEX, run_id)
            await pipe.execute()

    async def list_due(self, now: datetime) -> list[str]:
        return list(await self._redis.zrangebyscore(self.DUE_INDEX, "-inf", now.timestamp()))

    async def close(self):
        await self._redis.aclose()


_store: Optional[CheckpointStore] = None


def get_checkpoint_store() -> CheckpointStore:
    """Get or create the process-wide checkpoint store (Redis backed)."""
    global _store
    if _store is None:
        from app.config import get_settings

        settings = get_settings()
        _store = RedisCheckpointStore.from_url(settings.REDIS_URL, settings.CHECKPOINT_TTL_SECONDS)
    return _store
