"""Pydantic v2 models for manga-sync.

These models are the boundary types of the sync subsystem:
- Source, SourceSettings, SourceCreate, SourceUpdate (source administration)
- Work, Chapter (stored catalog rows)
- ScheduleConfig (process-wide sync schedule)
- SyncJob, JobProgress, JobResult (job lifecycle and history)
- ReviewQueueItem, ReviewQueueStats (approval queue)
- SyncLogEntry, SystemStats (observability read models)
"""

import re
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from manga_sync.core.enums import (
    ApprovalStatus,
    ContentKind,
    FetchKind,
    JobStatus,
    JobTrigger,
    LogLevel,
    ScheduleInterval,
)

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_id() -> str:
    """Generate a UUID string."""
    return str(uuid4())


# ============================================================================
# Sources
# ============================================================================


class SourceSettings(BaseModel):
    """Per-source fetch configuration."""

    api_key: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    rate_limit: float | None = None  # requests per minute
    selectors: dict[str, str] = Field(default_factory=dict)
    catalog_path: str = "/api/manga"

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("rate_limit must be greater than 0")
        return v


class Source(BaseModel):
    """An external provider of catalog and chapter data."""

    id: str = Field(default_factory=_generate_id)
    name: str
    base_url: str
    fetch_kind: FetchKind = FetchKind.API
    is_active: bool = True
    last_sync_at: datetime | None = None
    settings: SourceSettings = Field(default_factory=SourceSettings)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")


class SourceCreate(BaseModel):
    """Payload for adding a source."""

    name: str
    base_url: str
    fetch_kind: FetchKind = FetchKind.API
    is_active: bool = True
    settings: SourceSettings = Field(default_factory=SourceSettings)


class SourceUpdate(BaseModel):
    """Partial update of a source. Unset fields are left untouched."""

    name: str | None = None
    base_url: str | None = None
    fetch_kind: FetchKind | None = None
    is_active: bool | None = None
    settings: SourceSettings | None = None


# ============================================================================
# Catalog
# ============================================================================


class Work(BaseModel):
    """A stored work, as seen by duplicate detection and review."""

    id: str
    title: str
    description: str | None = None
    author: str | None = None
    source_id: str | None = None
    source_manga_id: str | None = None
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED


class Chapter(BaseModel):
    """A stored chapter of a work."""

    id: str
    manga_id: str
    chapter_number: float
    title: str | None = None
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED


# ============================================================================
# Schedule
# ============================================================================


class ScheduleConfig(BaseModel):
    """
    Process-wide sync schedule.

    `time` applies to daily and weekly policies, `day_of_week` (0 = Sunday)
    to weekly, `custom_interval` (minutes) to custom. An empty `sources`
    list means all active sources.
    """

    enabled: bool = False
    interval: ScheduleInterval = ScheduleInterval.DAILY
    time: str | None = "02:00"
    day_of_week: int | None = None
    custom_interval: int | None = None
    sources: list[str] = Field(default_factory=list)
    timezone: str = "UTC"

    @field_validator("time")
    @classmethod
    def valid_time(cls, v: str | None) -> str | None:
        if v is not None and not _TIME_PATTERN.match(v):
            raise ValueError(f"time must be HH:MM, got {v!r}")
        return v

    @field_validator("day_of_week")
    @classmethod
    def valid_day_of_week(cls, v: int | None) -> int | None:
        if v is not None and not 0 <= v <= 6:
            raise ValueError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("custom_interval")
    @classmethod
    def valid_custom_interval(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("custom_interval must be a positive number of minutes")
        return v

    @model_validator(mode="after")
    def policy_fields_present(self) -> "ScheduleConfig":
        if self.interval in (ScheduleInterval.DAILY, ScheduleInterval.WEEKLY) and not self.time:
            raise ValueError(f"{self.interval.value} schedules require a time")
        if self.interval == ScheduleInterval.WEEKLY and self.day_of_week is None:
            raise ValueError("weekly schedules require day_of_week")
        return self

    @property
    def hour_minute(self) -> tuple[int, int] | None:
        """Configured (hour, minute), if any."""
        if not self.time:
            return None
        hour, minute = self.time.split(":")
        return int(hour), int(minute)


# ============================================================================
# Sync Jobs
# ============================================================================


class JobProgress(BaseModel):
    """Progress of a running sync job."""

    current_step: str = "Preparing sync"
    processed_works: int = 0
    total_works: int | None = None
    processed_chapters: int = 0
    errors: int = 0


class JobResult(BaseModel):
    """Outcome counters of a sync job."""

    new_works: int = 0
    new_chapters: int = 0
    duplicates_skipped: int = 0
    pending_review: int = 0
    errors: list[str] = Field(default_factory=list)


class SyncJob(BaseModel):
    """One execution of the ingestion pipeline."""

    id: str = Field(default_factory=_generate_id)
    status: JobStatus = JobStatus.PENDING
    trigger: JobTrigger = JobTrigger.MANUAL
    source_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    progress: JobProgress = Field(default_factory=JobProgress)
    result: JobResult | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


# ============================================================================
# Approval Queue
# ============================================================================


class ReviewQueueItem(BaseModel):
    """A work or chapter submission awaiting (or past) human review."""

    id: str = Field(default_factory=_generate_id)
    content_kind: ContentKind
    content_id: str
    title: str = ""
    priority: int = 0
    submitted_by: str = "system"
    submitted_at: datetime = Field(default_factory=_utc_now)
    status: ApprovalStatus = ApprovalStatus.PENDING
    reviewer_id: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None


class ReviewQueueStats(BaseModel):
    """Aggregate statistics of the approval queue."""

    pending_works: int = 0
    pending_chapters: int = 0
    total_pending: int = 0
    approved_today: int = 0
    rejected_today: int = 0
    oldest_pending_days: int = 0


# ============================================================================
# Observability
# ============================================================================


class SyncLogEntry(BaseModel):
    """A structured sync log entry."""

    id: str
    level: LogLevel
    message: str
    details: dict[str, Any] | None = None
    source: str = "system"
    source_id: str | None = None
    created_at: datetime


class SystemStats(BaseModel):
    """Catalog and sync health counters."""

    total_works: int = 0
    total_chapters: int = 0
    auto_added_works: int = 0
    auto_added_chapters: int = 0
    active_sources: int = 0
    total_sources: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    last_sync_at: datetime | None = None
