"""Tests for cron-job trigger schedules."""

from datetime import datetime, timedelta, timezone

import pytest

from workflow.models import TriggerConfig
from workflow.schedule import next_scheduled_run, schedule_to_cron


def cron_trigger(**fields) -> TriggerConfig:
    return TriggerConfig(source="cron", **fields)


@pytest.mark.unit
class TestScheduleToCron:

    def test_daily(self):
        assert schedule_to_cron(cron_trigger(schedule_mode="daily", schedule_time="09:30")) == "30 9 * * *"

    def test_daily_default_time(self):
        assert schedule_to_cron(cron_trigger(schedule_mode="daily")) == "0 0 * * *"

    def test_weekly(self):
        config = cron_trigger(schedule_mode="weekly", schedule_time="08:00", weekly_days=["wed", "mon"])
        assert schedule_to_cron(config) == "0 8 * * 1,3"

    def test_weekly_without_days(self):
        assert schedule_to_cron(cron_trigger(schedule_mode="weekly")) is None

    def test_monthly(self):
        config = cron_trigger(schedule_mode="monthly", schedule_time="08:00", monthly_dates=[15, 1, 40])
        assert schedule_to_cron(config) == "0 8 1,15 * *"

    def test_raw_cron(self):
        assert schedule_to_cron(cron_trigger(schedule_mode="cron", cron_string=" */5 * * * * ")) == "*/5 * * * *"


@pytest.mark.unit
class TestNextScheduledRun:

    def test_webhook_trigger_has_no_schedule(self, fixed_now):
        assert next_scheduled_run(TriggerConfig(source="webhook"), fixed_now) is None

    def test_interval(self, fixed_now):
        config = cron_trigger(schedule_mode="interval", interval_value=15, interval_unit="minutes")
        assert next_scheduled_run(config, fixed_now) == fixed_now + timedelta(minutes=15)

    def test_daily_after_todays_time(self, fixed_now):
        config = cron_trigger(schedule_mode="daily", schedule_time="09:30")
        assert next_scheduled_run(config, fixed_now) == datetime(2024, 6, 2, 9, 30, tzinfo=timezone.utc)

    def test_weekly_next_monday(self, fixed_now):
        config = cron_trigger(schedule_mode="weekly", schedule_time="08:00", weekly_days=["mon"])
        assert next_scheduled_run(config, fixed_now) == datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)

    def test_cron_string(self, fixed_now):
        config = cron_trigger(schedule_mode="cron", cron_string="0 * * * *")
        assert next_scheduled_run(config, fixed_now) == datetime(2024, 6, 1, 11, 0, tzinfo=timezone.utc)

    def test_invalid_cron_string(self, fixed_now):
        config = cron_trigger(schedule_mode="cron", cron_string="every tuesday")
        assert next_scheduled_run(config, fixed_now) is None

    def test_editor_aliases(self, fixed_now):
        config = TriggerConfig.model_validate({
            "source": "cron",
            "scheduleMode": "interval",
            "scheduleIntervalValue": 2,
            "scheduleIntervalUnit": "hours",
        })
        assert next_scheduled_run(config, fixed_now) == fixed_now + timedelta(hours=2)
