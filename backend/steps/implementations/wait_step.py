"""Wait step executor.

Computes the delay and hands it to the engine as ``suspend_ms``; the
engine's suspender decides whether to sleep or checkpoint the run.
"""

from typing import Any, Mapping

import structlog

from core.constants import StepKind
from steps.base_step import BaseStepExecutor, ExecutionServices, StepOutcome
from workflow.models import WaitConfig, WaitStep
from workflow.wait_calculator import compute_wait_milliseconds

logger = structlog.get_logger(__name__)


class WaitStepExecutor(BaseStepExecutor):
    """Suspend the run for a duration, until a datetime, or until office hours.

    Config:
        mode: duration | datetime | office_hours | timestamp | specific_day
        duration_value / duration_unit: for duration mode
        target_datetime: ISO datetime for datetime mode
        timestamp: ISO datetime, may contain {{placeholders}}
        office_hours_days / office_hours_start / office_hours_end / office_hours_action
        specific_days / specific_time: for specific_day mode
    """

    kinds = (StepKind.WAIT,)
    display_name = "Wait"
    description = "Pause the workflow before the next step"
    config_model = WaitConfig

    async def execute(
        self,
        step: WaitStep,
        context: Mapping[str, Any],
        services: ExecutionServices,
    ) -> StepOutcome:
        now = services.clock()
        wait_ms = compute_wait_milliseconds(step.config, now, context)

        logger.info("Wait computed", step_id=step.id, mode=step.config.mode.value, wait_ms=wait_ms)
        return StepOutcome(output={"waitedMilliseconds": wait_ms}, suspend_ms=wait_ms)


WAIT_STEP_TYPES = {
    StepKind.WAIT: WaitStepExecutor,
}
