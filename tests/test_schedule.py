"""Tests for the schedule configuration and trigger."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from manga_sync.core.enums import ScheduleInterval
from manga_sync.core.schema import ScheduleConfig
from manga_sync.ingestion.schedule import ScheduleTrigger, sunday_based_weekday

ARMED = datetime(2026, 10, 19, 0, 0, tzinfo=UTC)  # a Monday


def _at(day: int, hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, second, tzinfo=UTC)


class TestScheduleConfig:
    """Tests for ScheduleConfig validation."""

    def test_defaults(self) -> None:
        config = ScheduleConfig()
        assert config.enabled is False
        assert config.interval == ScheduleInterval.DAILY
        assert config.time == "02:00"
        assert config.hour_minute == (2, 0)
        assert config.sources == []

    @pytest.mark.parametrize("value", ["24:00", "2:00", "02:60", "noon"])
    def test_invalid_time(self, value) -> None:
        with pytest.raises(ValidationError):
            ScheduleConfig(time=value)

    def test_weekly_requires_day(self) -> None:
        with pytest.raises(ValidationError, match="day_of_week"):
            ScheduleConfig(interval=ScheduleInterval.WEEKLY, time="03:00")

    def test_day_of_week_range(self) -> None:
        with pytest.raises(ValidationError):
            ScheduleConfig(interval=ScheduleInterval.WEEKLY, day_of_week=7)

    def test_daily_requires_time(self) -> None:
        with pytest.raises(ValidationError, match="require a time"):
            ScheduleConfig(interval=ScheduleInterval.DAILY, time=None)

    def test_custom_interval_positive(self) -> None:
        with pytest.raises(ValidationError):
            ScheduleConfig(interval=ScheduleInterval.CUSTOM, custom_interval=0)


class TestSundayBasedWeekday:
    def test_values(self) -> None:
        assert sunday_based_weekday(_at(18, 12, 0)) == 0  # Sunday
        assert sunday_based_weekday(_at(19, 12, 0)) == 1  # Monday
        assert sunday_based_weekday(_at(24, 12, 0)) == 6  # Saturday


class TestDailyTrigger:
    """Tests for the daily policy."""

    @pytest.fixture
    def trigger(self) -> ScheduleTrigger:
        return ScheduleTrigger(ScheduleConfig(enabled=True, time="02:00"), now=ARMED)

    def test_fires_once_per_minute(self, trigger) -> None:
        """Test that ticks inside the configured minute fire exactly once."""
        assert trigger.check(_at(19, 1, 59)) is False
        assert trigger.check(_at(19, 2, 0)) is True
        assert trigger.check(_at(19, 2, 0, 30)) is False
        assert trigger.check(_at(19, 2, 1)) is False

    def test_fires_next_day(self, trigger) -> None:
        assert trigger.check(_at(19, 2, 0)) is True
        assert trigger.check(_at(20, 2, 0, 15)) is True

    def test_disabled(self) -> None:
        trigger = ScheduleTrigger(ScheduleConfig(enabled=False, time="02:00"), now=ARMED)
        assert trigger.check(_at(19, 2, 0)) is False

    def test_timezone(self) -> None:
        """Test that the time is interpreted in the schedule timezone."""
        config = ScheduleConfig(enabled=True, time="02:00", timezone="Asia/Riyadh")
        trigger = ScheduleTrigger(config, now=ARMED)
        assert trigger.check(_at(19, 2, 0)) is False
        assert trigger.check(_at(19, 23, 0)) is True  # 02:00 on the 20th in UTC+3

    def test_unknown_timezone_falls_back_to_utc(self) -> None:
        config = ScheduleConfig(enabled=True, time="02:00", timezone="Mars/Olympus")
        trigger = ScheduleTrigger(config, now=ARMED)
        assert trigger.check(_at(19, 2, 0)) is True

    def test_is_due_does_not_record(self, trigger) -> None:
        assert trigger.is_due(_at(19, 2, 0)) is True
        assert trigger.is_due(_at(19, 2, 0)) is True
        assert trigger.last_fired_at is None


class TestWeeklyTrigger:
    """Tests for the weekly policy."""

    def test_fires_on_configured_day(self) -> None:
        config = ScheduleConfig(
            enabled=True, interval=ScheduleInterval.WEEKLY, time="03:30", day_of_week=0
        )
        trigger = ScheduleTrigger(config, now=_at(17, 0, 0))

        assert trigger.check(_at(17, 3, 30)) is False  # Saturday
        assert trigger.check(_at(18, 3, 30)) is True  # Sunday
        assert trigger.check(_at(19, 3, 30)) is False  # Monday
        assert trigger.check(_at(25, 3, 30)) is True  # next Sunday


class TestIntervalTriggers:
    """Tests for hourly and custom policies."""

    def test_hourly(self) -> None:
        trigger = ScheduleTrigger(
            ScheduleConfig(enabled=True, interval=ScheduleInterval.HOURLY), now=_at(19, 10, 0)
        )
        assert trigger.check(_at(19, 10, 59)) is False
        assert trigger.check(_at(19, 11, 0)) is True
        assert trigger.check(_at(19, 11, 30)) is False
        assert trigger.check(_at(19, 12, 0, 10)) is True

    def test_custom(self) -> None:
        config = ScheduleConfig(
            enabled=True, interval=ScheduleInterval.CUSTOM, custom_interval=90
        )
        trigger = ScheduleTrigger(config, now=_at(19, 10, 0))
        assert trigger.check(_at(19, 11, 29)) is False
        assert trigger.check(_at(19, 11, 30)) is True
        assert trigger.check(_at(19, 13, 0)) is True

    def test_custom_without_interval(self) -> None:
        config = ScheduleConfig(enabled=True, interval=ScheduleInterval.CUSTOM)
        trigger = ScheduleTrigger(config, now=_at(19, 10, 0))
        assert trigger.check(_at(20, 10, 0)) is False

    def test_rearm_resets(self) -> None:
        """Test that a new configuration starts counting from the re-arm time."""
        trigger = ScheduleTrigger(
            ScheduleConfig(enabled=True, interval=ScheduleInterval.HOURLY), now=_at(19, 10, 0)
        )
        trigger.rearm(
            _at(19, 10, 45),
            ScheduleConfig(enabled=True, interval=ScheduleInterval.CUSTOM, custom_interval=30),
        )
        assert trigger.check(_at(19, 11, 0)) is False
        assert trigger.check(_at(19, 10, 45) + timedelta(minutes=30)) is True

    def test_edit_inside_fired_slot(self) -> None:
        """Test that changing only the sources mid-slot does not fire the slot again."""
        trigger = ScheduleTrigger(ScheduleConfig(enabled=True, time="02:00"), now=ARMED)
        assert trigger.check(_at(19, 2, 0)) is True

        trigger.rearm(_at(19, 2, 0, 20), ScheduleConfig(enabled=True, time="02:00", sources=["a"]))

        assert trigger.check(_at(19, 2, 0, 30)) is False
        assert trigger.check(_at(20, 2, 0)) is True

    def test_new_time_inside_fired_slot(self) -> None:
        """Test that moving the time re-arms the slot."""
        trigger = ScheduleTrigger(ScheduleConfig(enabled=True, time="02:00"), now=ARMED)
        assert trigger.check(_at(19, 2, 0)) is True

        trigger.rearm(_at(19, 2, 0, 20), ScheduleConfig(enabled=True, time="02:01"))

        assert trigger.check(_at(19, 2, 1)) is True
