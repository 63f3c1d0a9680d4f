"""
Manga Sync Ingestion Framework
==============================

This package provides the complete pipeline for pulling manga catalogs
from external sources into the approval queue.

Pipeline Stages:
1. Registry - Sources and pipeline settings from YAML and the database
2. Fetch - Catalog fetcher applies per-source rate limits and timeouts
3. Normalize - Source payloads become canonical catalog entries
4. Detect - Duplicate detector matches entries against stored works
5. Queue - New works and chapters are stored as pending and queued for review
6. Notify - Reviewers get one notification per sync pass
7. Schedule - Jobs run one at a time, manually or on a schedule
"""

from manga_sync.ingestion.registry import (
    SourceRegistry,
    SourceConfig,
    DetectionConfig,
    GlobalConfig,
    SchedulerConfig,
    NotificationConfig,
    get_default_registry,
    reset_default_registry,
)
from manga_sync.ingestion.fetcher import (
    CatalogFetcher,
    FetchResult,
    TokenBucket,
)
from manga_sync.ingestion.normalizer import (
    Normalizer,
    CatalogEntry,
    ChapterEntry,
)
from manga_sync.ingestion.detector import (
    DuplicateDetector,
    DuplicateResult,
    ChapterDuplicateResult,
    MatchedWork,
)
from manga_sync.ingestion.review_queue import ApprovalQueue
from manga_sync.ingestion.notifications import (
    NotificationSink,
    DatabaseNotificationSink,
    ReviewerNotifier,
)
from manga_sync.ingestion.events import EventLog, measure
from manga_sync.ingestion.orchestrator import (
    IngestionOrchestrator,
    SyncResult,
)
from manga_sync.ingestion.schedule import ScheduleTrigger
from manga_sync.ingestion.scheduler import SyncScheduler
from manga_sync.ingestion.exceptions import (
    IngestionError,
    SyncInProgressError,
    NoActiveSourcesError,
    SyncConflictError,
    JobNotFoundError,
    JobStateError,
    SourceNotFoundError,
    ReviewStateError,
    ReviewItemNotFoundError,
)

__all__ = [
    # Registry
    "SourceRegistry",
    "SourceConfig",
    "DetectionConfig",
    "GlobalConfig",
    "SchedulerConfig",
    "NotificationConfig",
    "get_default_registry",
    "reset_default_registry",
    # Fetcher
    "CatalogFetcher",
    "FetchResult",
    "TokenBucket",
    # Normalizer
    "Normalizer",
    "CatalogEntry",
    "ChapterEntry",
    # Detector
    "DuplicateDetector",
    "DuplicateResult",
    "ChapterDuplicateResult",
    "MatchedWork",
    # Review
    "ApprovalQueue",
    "NotificationSink",
    "DatabaseNotificationSink",
    "ReviewerNotifier",
    # Observability
    "EventLog",
    "measure",
    # Orchestration
    "IngestionOrchestrator",
    "SyncResult",
    "ScheduleTrigger",
    "SyncScheduler",
    # Errors
    "IngestionError",
    "SyncInProgressError",
    "NoActiveSourcesError",
    "SyncConflictError",
    "JobNotFoundError",
    "JobStateError",
    "SourceNotFoundError",
    "ReviewStateError",
    "ReviewItemNotFoundError",
]
