"""
Schedule Trigger Module
=======================

Pure evaluation of the sync schedule against wall-clock time.

Policies:
- hourly: every 60 minutes since the last fire (or since arming)
- custom: every `custom_interval` minutes, same rule
- daily: when local HH:MM equals the configured time
- weekly: as daily, on the configured weekday (0 = Sunday)

Daily and weekly fire at most once per matching minute, however many
ticks land inside it.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from manga_sync.core.enums import ScheduleInterval
from manga_sync.core.schema import ScheduleConfig

logger = logging.getLogger(__name__)

HOURLY_MINUTES = 60


def sunday_based_weekday(moment: datetime) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday."""
    return moment.isoweekday() % 7


class ScheduleTrigger:
    """
    Decides on each tick whether a scheduled sync is due.

    The trigger only keeps the time it was armed and the last time (or
    slot) it fired; call rearm() whenever the configuration changes.
    """

    def __init__(self, config: ScheduleConfig | None = None, now: datetime | None = None) -> None:
        self.config = config or ScheduleConfig()
        self.armed_at = now or datetime.now(UTC)
        self.last_fired_at: datetime | None = None
        self._last_slot: str | None = None
        self._zone = self._resolve_zone(self.config.timezone)

    @staticmethod
    def _resolve_zone(name: str) -> ZoneInfo:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown schedule timezone '{name}', falling back to UTC")
            return ZoneInfo("UTC")

    def rearm(self, now: datetime, config: ScheduleConfig | None = None) -> None:
        """
        Reset state, optionally switching to a new configuration.

        The last fired daily/weekly slot survives when the new
        configuration keeps the same time, weekday and timezone, so an
        edit made within a slot that already fired does not fire it again.
        """
        same_slot = config is not None and self._slot_key(config) == self._slot_key(self.config)
        if config is not None:
            self.config = config
            self._zone = self._resolve_zone(config.timezone)
        self.armed_at = now
        self.last_fired_at = None
        if not same_slot:
            self._last_slot = None

    @staticmethod
    def _slot_key(config: ScheduleConfig) -> tuple:
        return (config.interval, config.time, config.day_of_week, config.timezone)

    def local_time(self, now: datetime) -> datetime:
        """`now` converted to the schedule's timezone."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return now.astimezone(self._zone)

    def interval_minutes(self) -> int | None:
        """Minutes between fires for interval-based policies."""
        if self.config.interval == ScheduleInterval.HOURLY:
            return HOURLY_MINUTES
        if self.config.interval == ScheduleInterval.CUSTOM:
            return self.config.custom_interval
        return None

    def is_due(self, now: datetime) -> bool:
        """Whether a sync should fire at `now`, without recording it."""
        if not self.config.enabled:
            return False

        minutes = self.interval_minutes()
        if self.config.interval in (ScheduleInterval.HOURLY, ScheduleInterval.CUSTOM):
            if minutes is None:
                return False
            since = self.last_fired_at or self.armed_at
            return now - since >= timedelta(minutes=minutes)

        local = self.local_time(now)
        hour_minute = self.config.hour_minute
        if hour_minute is None or (local.hour, local.minute) != hour_minute:
            return False
        if (
            self.config.interval == ScheduleInterval.WEEKLY
            and sunday_based_weekday(local) != self.config.day_of_week
        ):
            return False
        return self._slot(local) != self._last_slot

    def check(self, now: datetime) -> bool:
        """
        Evaluate the schedule at `now` and record a fire if due.

        Returns:
            True exactly once per due occurrence
        """
        if not self.is_due(now):
            return False
        self.last_fired_at = now
        self._last_slot = self._slot(self.local_time(now))
        logger.info(f"Scheduled sync due ({self.config.interval.value}) at {now.isoformat()}")
        return True

    @staticmethod
    def _slot(local: datetime) -> str:
        return local.strftime("%Y-%m-%d %H:%M")
