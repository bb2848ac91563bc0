"""Workflow definition storage.

The engine never reads storage directly; callers resolve workflows
through a WorkflowRepository and hand the definition to the engine.
Every read returns an independent copy, so callers may not mutate
stored definitions in place.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from uuid import uuid4

import structlog

from core.constants import MAX_TRIGGER_EVENTS, WorkflowStatus
from workflow.models import TriggerEvent, TriggerStep, Workflow, WorkflowStep, WorkflowVersion

logger = structlog.get_logger(__name__)


def _new_workflow_id() -> str:
    return f"wf_{uuid4().hex[:12]}"


class WorkflowRepository(ABC):
    """Storage of workflow definitions."""

    @abstractmethod
    async def get_workflow_by_id(self, workflow_id: str) -> Optional[Workflow]:
        ...

    @abstractmethod
    async def list_workflows(self) -> list[Workflow]:
        ...

    @abstractmethod
    async def add_workflow(
        self,
        name: str,
        description: str = "",
        steps: Optional[list[WorkflowStep]] = None,
    ) -> Workflow:
        ...

    @abstractmethod
    async def update_workflow(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[WorkflowStatus] = None,
        steps: Optional[list[WorkflowStep]] = None,
    ) -> Optional[Workflow]:
        ...

    @abstractmethod
    async def delete_workflow(self, workflow_id: str) -> bool:
        ...

    @abstractmethod
    async def duplicate_workflow(self, workflow_id: str) -> Optional[Workflow]:
        ...

    @abstractmethod
    async def record_trigger_event(
        self,
        workflow_id: str,
        step_id: str,
        event: TriggerEvent,
    ) -> Optional[Workflow]:
        ...


class InMemoryWorkflowRepository(WorkflowRepository):
    """Process-local repository, seeded from an iterable of workflows."""

    def __init__(self, workflows: Iterable[Workflow] = ()):
        self._workflows: dict[str, Workflow] = {}
        for workflow in workflows:
            self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow_by_id(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    async def list_workflows(self) -> list[Workflow]:
        return [wf.model_copy(deep=True) for wf in self._workflows.values()]

    async def add_workflow(
        self,
        name: str,
        description: str = "",
        steps: Optional[list[WorkflowStep]] = None,
    ) -> Workflow:
        workflow = Workflow(
            id=_new_workflow_id(),
            name=name,
            description=description,
            status=WorkflowStatus.DRAFT,
            steps=steps or [],
            version=1,
            history=[],
        )
        self._workflows[workflow.id] = workflow
        logger.info("Workflow created", workflow_id=workflow.id, name=name)
        return workflow.model_copy(deep=True)

    async def update_workflow(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[WorkflowStatus] = None,
        steps: Optional[list[WorkflowStep]] = None,
    ) -> Optional[Workflow]:
        """Apply changes; edits to steps, name or description bump the version.

        The previous steps are archived in ``history`` before a
        versioned change, unless the workflow had no steps yet.
        """
        current = self._workflows.get(workflow_id)
        if current is None:
            return None

        relevant = steps is not None or name is not None or description is not None
        history = list(current.history)
        if relevant and current.steps:
            history.append(
                WorkflowVersion(
                    version=current.version,
                    date=datetime.now(timezone.utc).isoformat(),
                    steps=[s.model_copy(deep=True) for s in current.steps],
                )
            )

        changes: dict[str, Any] = {"history": history}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if status is not None:
            changes["status"] = status
        if steps is not None:
            changes["steps"] = steps
        if relevant:
            changes["version"] = current.version + 1

        # Re-validate so structural rules hold for the new steps
        updated = Workflow.model_validate({**dict(current), **changes})
        self._workflows[workflow_id] = updated
        logger.info("Workflow updated", workflow_id=workflow_id, version=updated.version)
        return updated.model_copy(deep=True)

    async def delete_workflow(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    async def duplicate_workflow(self, workflow_id: str) -> Optional[Workflow]:
        original = self._workflows.get(workflow_id)
        if original is None:
            return None

        copy = original.model_copy(
            deep=True,
            update={
                "id": _new_workflow_id(),
                "name": f"Copy of {original.name}",
                "status": WorkflowStatus.DRAFT,
                "version": 1,
                "history": [],
            },
        )
        self._workflows[copy.id] = copy
        return copy.model_copy(deep=True)

    async def record_trigger_event(
        self,
        workflow_id: str,
        step_id: str,
        event: TriggerEvent,
    ) -> Optional[Workflow]:
        """Capture an event on a trigger step and select it as the run payload.

        Newest events come first and only the last few are kept. Does not
        create a new version.
        """
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            return None

        step = workflow.get_step(step_id)
        if not isinstance(step, TriggerStep):
            return None

        config = step.config
        config.events = [event, *config.events][:MAX_TRIGGER_EVENTS]
        config.selected_event_id = event.id

        logger.info("Trigger event recorded", workflow_id=workflow_id, step_id=step_id, event_id=event.id)
        return workflow.model_copy(deep=True)
