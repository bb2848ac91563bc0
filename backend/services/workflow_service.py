"""Workflow service: definitions from the repository, runs through the engine."""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

import structlog

from core.constants import TriggerSource
from core.exceptions import NotFoundError, WorkflowNotFoundError
from integrations.claude_client import CodeGenerator, get_code_generator
from services.workflow_repository import InMemoryWorkflowRepository, WorkflowRepository
from workflow.engine import RunResult, WorkflowEngine, get_workflow_engine
from workflow.models import TriggerEvent, Workflow
from workflow.schedule import next_scheduled_run

logger = structlog.get_logger(__name__)


class WorkflowService:
    """Resolves workflows by id, dispatches them to the engine and drafts Custom Code steps."""

    def __init__(
        self,
        repository: Optional[WorkflowRepository] = None,
        engine: Optional[WorkflowEngine] = None,
        code_generator: Optional[CodeGenerator] = None,
    ):
        self.repository = repository or InMemoryWorkflowRepository()
        self.engine = engine or get_workflow_engine()
        self.code_generator = code_generator or get_code_generator()

    async def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = await self.repository.get_workflow_by_id(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def run(
        self,
        workflow_id: str,
        trigger_payload: Any = None,
        run_id: Optional[str] = None,
    ) -> RunResult:
        """Run a stored workflow.

        Args:
            workflow_id: Workflow to execute
            trigger_payload: External event data; defaults to the trigger's selected event
            run_id: Identifier for this run, generated when omitted

        Raises:
            WorkflowNotFoundError: the repository does not know ``workflow_id``
        """
        workflow = await self.get_workflow(workflow_id)
        result = await self.engine.run(workflow, trigger_payload, run_id)
        logger.info(
            "Workflow run dispatched",
            workflow_id=workflow_id,
            run_id=result.run_id,
            status=result.status.value,
        )
        return result

    async def capture_event(
        self,
        workflow_id: str,
        body: Any,
        method: str = "POST",
        headers: Optional[dict[str, str]] = None,
    ) -> TriggerEvent:
        """Store an incoming request on the workflow's trigger as its selected event."""
        workflow = await self.get_workflow(workflow_id)
        trigger = workflow.trigger
        if trigger is None:
            raise NotFoundError(f"Workflow {workflow_id} has no trigger step")

        event = TriggerEvent(
            id=f"evt_{uuid4().hex[:12]}",
            method=method,
            headers=headers or {},
            body=body,
        )
        await self.repository.record_trigger_event(workflow_id, trigger.id, event)
        return event

    async def next_run_at(self, workflow_id: str, now: datetime) -> Optional[datetime]:
        """Next fire time of a cron-job trigger, None for other sources."""
        workflow = await self.get_workflow(workflow_id)
        trigger = workflow.trigger
        if trigger is None or trigger.config.source != TriggerSource.CRON:
            return None
        return next_scheduled_run(trigger.config, now)

    async def generate_function(self, intent: str, language: str = "typescript") -> str:
        """Draft the body of a Custom Code step from a plain-language intent.

        Raises:
            CodeGenerationError: unsupported language, missing API key or no usable code
        """
        code = await self.code_generator.generate_function_from_intent(intent, language)
        logger.info("Function generated", language=language, chars=len(code))
        return code
