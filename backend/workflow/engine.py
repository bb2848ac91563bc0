"""Workflow Execution Engine — sequential step interpreter.

Takes a validated workflow and a trigger payload and runs the steps one
after another, threading a growing data context through them:

- The trigger step seeds ``context["trigger"]``
- Every other step runs in evaluation order through its executor
- Step outputs are written to ``context[step.id]``, once
- Condition steps may jump forward to a configured step
- Wait steps suspend the run (inline sleep or checkpoint + resume)
- The first executor error fails the whole run
- An End step finishes the run early

States: Initializing -> Running(cursor) -> Completed | Failed | Suspended

Example::

    engine = WorkflowEngine()
    result = await engine.run(workflow, trigger_payload={"email": "a@b.com"})
    result.success, result.message, result.final_context
"""

import copy
import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterator, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError

from core.constants import RunStatus, StepKind, StepStatus
from core.exceptions import ContextWriteError, StepExecutionError
from core.logging_config import bind_run_context, clear_run_context
from steps.base_step import ExecutionServices, StepOutcome
from steps.registry import StepRegistry, get_step_registry
from workflow.checkpoint import RunCheckpoint
from workflow.models import TriggerStep, Workflow
from workflow.suspension import InlineSuspender, Suspender

logger = structlog.get_logger(__name__)

TRIGGER_KEY = "trigger"
SUCCESS_MESSAGE = "Workflow executed successfully."
NO_TRIGGER_MESSAGE = "Workflow has no trigger step."


# ─── Data Context ─────────────────────────────────────────────

class DataContext(Mapping):
    """Step id -> step output, plus the reserved ``trigger`` entry.

    Keys are written once and never replaced. Steps receive the context
    as a read-only mapping; only the run loop writes to it.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data: dict[str, Any] = dict(initial or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"DataContext({self._data!r})"

    def write(self, key: str, value: Any) -> None:
        if key in self._data:
            raise ContextWriteError(key)
        self._data[key] = value

    def to_dict(self) -> dict[str, Any]:
        """Detached copy for results and checkpoints."""
        return copy.deepcopy(self._data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DataContext":
        return cls(copy.deepcopy(dict(data)))


# ─── Results ──────────────────────────────────────────────────

@dataclass
class StepRecord:
    """Journal entry for one step of a run."""
    step_id: str
    title: str
    kind: str
    status: StepStatus
    started_at: Optional[str] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "StepRecord":
        return cls(
            step_id=data["step_id"],
            title=data.get("title", ""),
            kind=data.get("kind", ""),
            status=StepStatus(data["status"]),
            started_at=data.get("started_at"),
            duration_ms=data.get("duration_ms", 0),
            error=data.get("error"),
        )


@dataclass
class RunResult:
    """Terminal output of one run (or one resumed segment of it)."""
    success: bool
    message: str
    final_context: dict[str, Any]
    status: RunStatus
    run_id: str
    workflow_id: str
    resume_at: Optional[str] = None
    steps: list[StepRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "final_context": self.final_context,
            "status": self.status.value,
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "resume_at": self.resume_at,
            "steps": [s.to_dict() for s in self.steps],
        }


StepCallback = Callable[[StepRecord, DataContext], Awaitable[None]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def trigger_payload_for(trigger: TriggerStep, payload: Any = None) -> Any:
    """The value stored under ``context["trigger"]`` for a run.

    An explicit payload wins, then the trigger's selected event, then ``{}``.
    """
    if payload is not None:
        return copy.deepcopy(payload)
    event = trigger.config.selected_event()
    if event is not None:
        return event.model_dump(mode="json", by_alias=True)
    return {}


# ─── Workflow Engine ──────────────────────────────────────────

class WorkflowEngine:
    """Runs workflows step by step.

    Collaborators are injected: the step registry picks executors by
    kind, ``services`` carries transports and stores for the executors,
    and the suspender decides how waits are served.
    """

    def __init__(
        self,
        registry: Optional[StepRegistry] = None,
        services: Optional[ExecutionServices] = None,
        suspender: Optional[Suspender] = None,
        on_step_complete: Optional[StepCallback] = None,
    ):
        self._registry = registry or get_step_registry()
        self._services = services or ExecutionServices()
        self._suspender = suspender or InlineSuspender()
        self._on_step_complete = on_step_complete

    @property
    def services(self) -> ExecutionServices:
        return self._services

    async def run(
        self,
        workflow: Workflow,
        trigger_payload: Any = None,
        run_id: Optional[str] = None,
    ) -> RunResult:
        """Execute a workflow from its trigger.

        Args:
            workflow: Validated workflow definition
            trigger_payload: External event data; defaults to the trigger's selected event
            run_id: Identifier for this run, generated when omitted

        Returns:
            RunResult with status, message, final context and step journal
        """
        run_id = run_id or str(uuid4())
        bind_run_context(run_id, workflow.id)
        try:
            trigger = workflow.trigger
            if trigger is None:
                logger.warning("Workflow has no trigger step")
                return RunResult(
                    success=False,
                    message=NO_TRIGGER_MESSAGE,
                    final_context={},
                    status=RunStatus.FAILED,
                    run_id=run_id,
                    workflow_id=workflow.id,
                )

            logger.info("Starting workflow run", steps=len(workflow.steps))

            context = DataContext()
            payload = trigger_payload_for(trigger, trigger_payload)
            context.write(TRIGGER_KEY, payload)
            if trigger.id != TRIGGER_KEY:
                context.write(trigger.id, copy.deepcopy(payload))

            journal = [
                StepRecord(
                    step_id=trigger.id,
                    title=trigger.label,
                    kind=trigger.kind,
                    status=StepStatus.COMPLETED,
                    started_at=_now_iso(),
                )
            ]
            return await self._run_loop(workflow, context, journal, cursor=0, run_id=run_id)
        finally:
            clear_run_context()

    async def resume(self, checkpoint: RunCheckpoint) -> RunResult:
        """Continue a suspended run from its checkpoint."""
        bind_run_context(checkpoint.run_id, checkpoint.workflow_id)
        try:
            logger.info("Resuming workflow run", cursor=checkpoint.cursor)
            context = DataContext.from_dict(checkpoint.context)
            journal = [StepRecord.from_dict(s) for s in checkpoint.steps]
            return await self._run_loop(
                checkpoint.workflow,
                context,
                journal,
                cursor=checkpoint.cursor,
                run_id=checkpoint.run_id,
            )
        finally:
            clear_run_context()

    async def run_definition(
        self,
        definition: dict,
        trigger_payload: Any = None,
        run_id: Optional[str] = None,
    ) -> RunResult:
        """Validate a raw definition and run it.

        Structural errors (duplicate ids, several triggers, backward
        branches, bad step config) produce a failed result instead of
        an exception.
        """
        try:
            workflow = Workflow.model_validate(definition)
        except ValidationError as e:
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'workflow'}: {err['msg']}"
                for err in e.errors()
            )
            logger.warning("Invalid workflow definition", errors=e.error_count())
            return RunResult(
                success=False,
                message=f"Invalid workflow definition: {reasons}",
                final_context={},
                status=RunStatus.FAILED,
                run_id=run_id or str(uuid4()),
                workflow_id=str(definition.get("id", "")),
            )
        return await self.run(workflow, trigger_payload, run_id)

    async def _run_loop(
        self,
        workflow: Workflow,
        context: DataContext,
        journal: list[StepRecord],
        cursor: int,
        run_id: str,
    ) -> RunResult:
        ordered = workflow.ordered_steps()
        positions = {step.id: index for index, step in enumerate(ordered)}

        def _result(success: bool, message: str, status: RunStatus, resume_at: Optional[str] = None):
            return RunResult(
                success=success,
                message=message,
                final_context=context.to_dict(),
                status=status,
                run_id=run_id,
                workflow_id=workflow.id,
                resume_at=resume_at,
                steps=list(journal),
            )

        while cursor < len(ordered):
            step = ordered[cursor]
            if step.kind == StepKind.TRIGGER:
                cursor += 1
                continue

            record = StepRecord(
                step_id=step.id,
                title=step.label,
                kind=step.kind,
                status=StepStatus.COMPLETED,
                started_at=_now_iso(),
            )
            start = time.monotonic()

            try:
                outcome = await self._execute_step(step, context, record)
                if outcome.output is not None:
                    context.write(step.id, outcome.output)
            except Exception as e:
                error = str(e) or e.__class__.__name__
                record.status = StepStatus.FAILED
                record.error = error
                record.duration_ms = int((time.monotonic() - start) * 1000)
                journal.append(record)
                await self._notify(record, context)

                logger.error("Step failed", step_id=step.id, kind=step.kind, error=error, exc_info=True)
                return _result(
                    False,
                    f"Workflow failed at step: {step.label}. Reason: {error}",
                    RunStatus.FAILED,
                )

            record.duration_ms = int((time.monotonic() - start) * 1000)
            journal.append(record)
            await self._notify(record, context)
            logger.info("Step completed", step_id=step.id, kind=step.kind, status=record.status.value)

            if outcome.halt:
                logger.info("Run halted by step", step_id=step.id)
                break

            next_cursor = cursor + 1
            if outcome.next_step_id is not None:
                target = positions.get(outcome.next_step_id)
                if target is None or target <= cursor:
                    # Model validation rejects such targets; guard resumed checkpoints too
                    return _result(
                        False,
                        f"Workflow failed at step: {step.label}. "
                        f"Reason: invalid branch target {outcome.next_step_id}",
                        RunStatus.FAILED,
                    )
                for skipped in ordered[next_cursor:target]:
                    journal.append(
                        StepRecord(
                            step_id=skipped.id,
                            title=skipped.label,
                            kind=skipped.kind,
                            status=StepStatus.SKIPPED,
                        )
                    )
                next_cursor = target

            if outcome.suspend_ms > 0:
                try:
                    resume_at = await self._suspender.suspend(
                        outcome.suspend_ms,
                        self._services.clock(),
                        lambda at, _cursor=next_cursor: RunCheckpoint(
                            run_id=run_id,
                            workflow=workflow,
                            context=context.to_dict(),
                            cursor=_cursor,
                            resume_at=at,
                            steps=[r.to_dict() for r in journal],
                        ),
                    )
                except Exception as e:
                    error = str(e) or e.__class__.__name__
                    record.status = StepStatus.FAILED
                    record.error = error
                    logger.error("Suspension failed", step_id=step.id, error=error)
                    return _result(
                        False,
                        f"Workflow failed at step: {step.label}. Reason: {error}",
                        RunStatus.FAILED,
                    )
                if resume_at is not None:
                    return _result(
                        True,
                        f"Workflow suspended until {resume_at.isoformat()}.",
                        RunStatus.SUSPENDED,
                        resume_at=resume_at.isoformat(),
                    )

            cursor = next_cursor

        logger.info("Workflow run finished", steps_run=len(journal))
        return _result(True, SUCCESS_MESSAGE, RunStatus.COMPLETED)

    async def _execute_step(self, step, context: DataContext, record: StepRecord) -> StepOutcome:
        executor = self._registry.create_instance(step.kind)
        if executor is None:
            logger.info("Skipping step, execution not implemented", step_id=step.id, kind=step.kind)
            record.status = StepStatus.NOT_IMPLEMENTED
            return StepOutcome(output={"note": f"execution not implemented for {step.kind}"})
        outcome = await executor.execute(step, context, self._services)
        if not isinstance(outcome, StepOutcome):
            raise StepExecutionError(
                f"{step.kind} executor returned {type(outcome).__name__}, expected StepOutcome"
            )
        return outcome

    async def _notify(self, record: StepRecord, context: DataContext) -> None:
        if not self._on_step_complete:
            return
        try:
            await self._on_step_complete(record, context)
        except Exception as e:
            logger.warning("on_step_complete callback failed", error=str(e))


# ─── Singleton ─────────────────────────────────────────────────

_engine: Optional[WorkflowEngine] = None


def get_workflow_engine() -> WorkflowEngine:
    """Get or create the singleton WorkflowEngine."""
    global _engine
    if _engine is None:
        _engine = WorkflowEngine()
    return _engine
