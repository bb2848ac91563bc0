"""End step executor: stops the run successfully."""

from typing import Any, Mapping

from core.constants import StepKind
from steps.base_step import BaseStepExecutor, ExecutionServices, StepOutcome
from workflow.models import EndStep


class EndStepExecutor(BaseStepExecutor):
    kinds = (StepKind.END,)
    display_name = "End"
    description = "Finish the workflow here"

    async def execute(
        self,
        step: EndStep,
        context: Mapping[str, Any],
        services: ExecutionServices,
    ) -> StepOutcome:
        return StepOutcome(halt=True)


END_STEP_TYPES = {
    StepKind.END: EndStepExecutor,
}
