"""Wait time calculation for Wait steps.

Every mode reduces to a single number: how many milliseconds the run
should stay suspended, counted from ``now``. Misconfigured waits never
raise; they resolve to 0 and the run proceeds immediately.

Office hours and specific-day waits are computed on the wall clock of
``now``, so pass ``now`` in the workflow's timezone. Differences between
aware datetimes are taken in UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import structlog

from core.constants import DURATION_UNIT_MS, DurationUnit, OfficeHoursAction, WaitMode
from workflow.models import WaitConfig
from workflow.resolver import substitute

logger = structlog.get_logger(__name__)

# Upper bound on the forward scan for the next office day
MAX_DAY_SCAN = 8

_ONE_MS = timedelta(milliseconds=1)


def weekday_index(moment: datetime) -> int:
    """Weekday of a datetime with Sunday=0 .. Saturday=6."""
    return (moment.weekday() + 1) % 7


def parse_time_of_day(value: str) -> tuple[int, int]:
    hours, minutes = value.split(":")
    return int(hours), int(minutes)


def _at_time(moment: datetime, value: str) -> datetime:
    hours, minutes = parse_time_of_day(value)
    return moment.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def milliseconds_between(start: datetime, end: datetime) -> int:
    """Signed whole milliseconds from ``start`` to ``end``."""
    return (_as_utc(end) - _as_utc(start)) // _ONE_MS


def parse_instant(value: Any, now: datetime) -> Optional[datetime]:
    """Parse an ISO-8601 instant. Naive values take ``now``'s timezone.

    Returns ``None`` when the value cannot be parsed.
    """
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None and now.tzinfo is not None:
        parsed = parsed.replace(tzinfo=now.tzinfo)
    return parsed


# ─── Modes ────────────────────────────────────────────────────

def _duration_ms(config: WaitConfig) -> int:
    value = config.duration_value or 0
    unit = config.duration_unit or DurationUnit.MINUTES
    return int(round(value * DURATION_UNIT_MS[unit]))


def _until_instant_ms(raw: Optional[str], now: datetime, mode: WaitMode) -> int:
    if not raw:
        return 0

    target = parse_instant(raw, now)
    if target is None:
        logger.warning("Unparseable wait target, proceeding immediately", mode=mode.value, value=raw)
        return 0
    return milliseconds_between(now, target)


def _office_hours_ms(config: WaitConfig, now: datetime) -> int:
    if (
        not config.office_hours_days
        or not config.office_hours_start
        or not config.office_hours_end
        or not config.office_hours_action
    ):
        return 0

    if config.office_hours_action == OfficeHoursAction.PROCEED:
        return 0

    office_days = set(config.office_hours_days)
    today_start = _at_time(now, config.office_hours_start)
    today_end = _at_time(now, config.office_hours_end)
    is_office_day = weekday_index(now) in office_days

    # Start inclusive, end exclusive
    if is_office_day and today_start <= now < today_end:
        return 0

    if is_office_day and now < today_start:
        return milliseconds_between(now, today_start)

    next_day = now + timedelta(days=1)
    attempts = 0
    while weekday_index(next_day) not in office_days and attempts < MAX_DAY_SCAN:
        next_day += timedelta(days=1)
        attempts += 1

    return milliseconds_between(now, _at_time(next_day, config.office_hours_start))


def _specific_day_ms(config: WaitConfig, now: datetime) -> int:
    if not config.specific_days or not config.specific_time:
        return 0

    days = set(config.specific_days)
    for offset in range(MAX_DAY_SCAN):
        candidate = _at_time(now + timedelta(days=offset), config.specific_time)
        if weekday_index(candidate) in days and candidate > now:
            return milliseconds_between(now, candidate)
    return 0


def compute_wait_milliseconds(
    config: WaitConfig,
    now: datetime,
    context: Optional[Mapping[str, Any]] = None,
) -> int:
    """Compute how long a wait step suspends the run, in milliseconds.

    Args:
        config: Wait step configuration
        now: Current time, ideally aware and in the workflow timezone
        context: Data context used to resolve placeholders in timestamp mode

    Returns:
        Non-negative wait in milliseconds
    """
    if config.mode == WaitMode.DURATION:
        wait_ms = _duration_ms(config)
    elif config.mode == WaitMode.DATETIME:
        wait_ms = _until_instant_ms(config.target_datetime, now, config.mode)
    elif config.mode == WaitMode.TIMESTAMP:
        raw = substitute(config.timestamp, context or {}) if config.timestamp else None
        wait_ms = _until_instant_ms(raw, now, config.mode)
    elif config.mode == WaitMode.OFFICE_HOURS:
        wait_ms = _office_hours_ms(config, now)
    elif config.mode == WaitMode.SPECIFIC_DAY:
        wait_ms = _specific_day_ms(config, now)
    else:
        logger.warning("Unknown wait mode", mode=str(config.mode))
        wait_ms = 0

    return max(0, wait_ms)
