"""Next-run computation for cron-job triggers.

Daily, weekly and monthly schedules are expressed as cron expressions
and evaluated with croniter, like raw cron strings. Interval schedules
are counted from ``now``.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog
from croniter import croniter

from core.constants import DURATION_UNIT_MS, ScheduleMode, TriggerSource
from workflow.models import TriggerConfig

logger = structlog.get_logger(__name__)

DEFAULT_SCHEDULE_TIME = "00:00"


def schedule_to_cron(config: TriggerConfig) -> Optional[str]:
    """Express a daily / weekly / monthly / cron schedule as a cron string."""
    mode = config.schedule_mode
    if mode == ScheduleMode.CRON:
        return (config.cron_string or "").strip() or None

    hours, minutes = (config.schedule_time or DEFAULT_SCHEDULE_TIME).split(":")
    prefix = f"{int(minutes)} {int(hours)}"

    if mode == ScheduleMode.DAILY:
        return f"{prefix} * * *"
    if mode == ScheduleMode.WEEKLY:
        if not config.weekly_days:
            return None
        # croniter numbers weekdays Sunday=0 like the editor does
        days = ",".join(str(d) for d in sorted(set(config.weekly_days)))
        return f"{prefix} * * {days}"
    if mode == ScheduleMode.MONTHLY:
        dates = sorted({d for d in config.monthly_dates or [] if 1 <= d <= 31})
        if not dates:
            return None
        return f"{prefix} {','.join(str(d) for d in dates)} * *"
    return None


def next_scheduled_run(config: TriggerConfig, now: datetime) -> Optional[datetime]:
    """Next time a cron-job trigger fires strictly after ``now``.

    Returns ``None`` for non-scheduled triggers and for schedules that
    cannot be evaluated (invalid cron string, missing fields).
    """
    if config.source != TriggerSource.CRON or config.schedule_mode is None:
        return None

    if config.schedule_mode == ScheduleMode.INTERVAL:
        if not config.interval_value:
            return None
        step_ms = config.interval_value * DURATION_UNIT_MS[config.interval_unit]
        return now + timedelta(milliseconds=step_ms)

    expression = schedule_to_cron(config)
    if not expression:
        logger.warning("Schedule is missing fields", mode=config.schedule_mode.value)
        return None

    if not croniter.is_valid(expression):
        logger.warning("Invalid cron expression", cron=expression)
        return None

    return croniter(expression, now).get_next(datetime)
