"""Enums for catalog, review and sync job fields."""

from enum import Enum


class WorkStatus(str, Enum):
    """Publication status of a work."""

    ONGOING = "ongoing"
    COMPLETED = "completed"
    HIATUS = "hiatus"
    CANCELLED = "cancelled"


class WorkKind(str, Enum):
    """Work kind, by country of origin."""

    MANGA = "manga"
    MANHWA = "manhwa"
    MANHUA = "manhua"


class FetchKind(str, Enum):
    """How a source is fetched."""

    API = "api"
    SCRAPING = "scraping"


class ApprovalStatus(str, Enum):
    """Approval status of an automatically added work or chapter."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ContentKind(str, Enum):
    """Kind of content referenced by a review queue row."""

    MANGA = "manga"
    CHAPTER = "chapter"


class JobStatus(str, Enum):
    """Status of a sync job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobTrigger(str, Enum):
    """What requested a sync job."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class ScheduleInterval(str, Enum):
    """Interval policy of the sync schedule."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class LogLevel(str, Enum):
    """Level of a structured sync log entry."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
