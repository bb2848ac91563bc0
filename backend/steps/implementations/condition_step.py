"""Condition and Filter step executors.

Both kinds evaluate one condition group against the data context and
record ``{"match": bool}``. When the step configures a target for the
outcome, the run jumps forward to it; otherwise it advances linearly.
"""

from typing import Any, Mapping

import structlog

from core.constants import StepKind
from steps.base_step import BaseStepExecutor, ExecutionServices, StepOutcome
from workflow.conditions import evaluate_group
from workflow.models import ConditionConfig, ConditionStep

logger = structlog.get_logger(__name__)


class ConditionStepExecutor(BaseStepExecutor):
    """Evaluate a condition group and pick the branch for the outcome."""

    kinds = (StepKind.CONDITION, StepKind.FILTER)
    display_name = "Condition"
    description = "Check rules against earlier step data"
    config_model = ConditionConfig

    async def execute(
        self,
        step: ConditionStep,
        context: Mapping[str, Any],
        services: ExecutionServices,
    ) -> StepOutcome:
        match = evaluate_group(step.config.group, context)
        next_step_id = step.config.branch_target(match)

        logger.info(
            "Condition evaluated",
            step_id=step.id,
            match=match,
            conditions=len(step.config.group.conditions),
            next_step_id=next_step_id,
        )
        return StepOutcome(output={"match": match}, next_step_id=next_step_id)


CONDITION_STEP_TYPES = {
    StepKind.CONDITION: ConditionStepExecutor,
    StepKind.FILTER: ConditionStepExecutor,
}
