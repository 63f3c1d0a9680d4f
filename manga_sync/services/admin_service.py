"""Administrative service for the sync subsystem.

This service provides business logic for:
- Adding, updating and removing sources (database and registry together)
- Triggering manual syncs and inspecting job history
- Reading and changing the sync schedule
- Testing a source without storing anything
- Listing and deciding review queue items
- Reading sync logs and system statistics
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from manga_sync.core.enums import ApprovalStatus, LogLevel
from manga_sync.core.schema import (
    ReviewQueueItem,
    ReviewQueueStats,
    ScheduleConfig,
    Source,
    SourceCreate,
    SourceUpdate,
    SyncJob,
    SyncLogEntry,
    SystemStats,
)
from manga_sync.db.repositories import SourceRepository
from manga_sync.ingestion.exceptions import (
    JobNotFoundError,
    ReviewItemNotFoundError,
    SourceNotFoundError,
)
from manga_sync.ingestion.registry import SourceConfig, SourceRegistry
from manga_sync.ingestion.review_queue import ApprovalQueue
from manga_sync.ingestion.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


class AdminService:
    """Service behind the admin API and CLI."""

    def __init__(
        self,
        scheduler: SyncScheduler,
        session_factory: sessionmaker[Session] | None = None,
        registry: SourceRegistry | None = None,
    ):
        """
        Initialize the admin service.

        Args:
            scheduler: The running sync scheduler
            session_factory: Session factory (defaults to the scheduler's)
            registry: Source registry (defaults to the orchestrator's)
        """
        self.scheduler = scheduler
        self.session_factory = session_factory or scheduler.session_factory
        self.registry = registry or scheduler.orchestrator.registry

    @property
    def events(self):
        return self.scheduler.events

    # =========================================================================
    # Sources
    # =========================================================================

    def list_sources(self) -> list[Source]:
        """All sources in registry order."""
        return [s.to_source() for s in self.registry.list_sources()]

    def get_source(self, source_id: str) -> Source:
        """Get a source, raising SourceNotFoundError if unknown."""
        source = self.registry.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source.to_source()

    def add_source(self, payload: SourceCreate) -> Source:
        """Store a new source and register it at the end of the registry."""
        source = Source(**payload.model_dump())
        with self.session_factory() as session:
            created = SourceRepository(session).create(source)
            session.commit()

        self.registry.add(SourceConfig.from_source(created))
        self.events.info(f"Source added: {created.name}", {"base_url": created.base_url}, "system", created.id)
        return created

    def update_source(self, source_id: str, payload: SourceUpdate) -> Source:
        """
        Apply a partial update to a source.

        Sources that only exist in the YAML configuration are updated in
        the registry alone.
        """
        current = self.get_source(source_id)
        changes = payload.model_dump(exclude_unset=True)
        updated = Source.model_validate({**current.model_dump(), **changes})

        with self.session_factory() as session:
            repo = SourceRepository(session)
            if repo.get_by_id(source_id) is not None:
                updated = repo.update(updated)
                session.commit()

        self.registry.update(SourceConfig.from_source(updated))
        self.events.info(
            f"Source updated: {updated.name}", {"fields": sorted(changes)}, "system", source_id
        )
        return updated

    def delete_source(self, source_id: str) -> None:
        """Remove a source from the database and the registry."""
        with self.session_factory() as session:
            deleted = SourceRepository(session).delete(source_id)
            session.commit()

        removed = self.registry.remove(source_id)
        if not deleted and not removed:
            raise SourceNotFoundError(source_id)
        self.events.info("Source removed", {}, "system", source_id)

    def set_source_active(self, source_id: str, active: bool) -> Source:
        """Enable or disable a source."""
        return self.update_source(source_id, SourceUpdate(is_active=active))

    async def test_source(self, source_id: str) -> dict[str, Any]:
        """Fetch a source and return a sample without storing anything."""
        return await self.scheduler.orchestrator.test_source(source_id)

    # =========================================================================
    # Jobs and Schedule
    # =========================================================================

    def trigger_sync(self, source_ids: list[str] | None = None) -> str:
        """Queue a manual sync, optionally limited to some sources."""
        for source_id in source_ids or []:
            if self.registry.get_source(source_id) is None:
                raise SourceNotFoundError(source_id)
        return self.scheduler.request_manual_sync(source_ids)

    def get_job(self, job_id: str) -> SyncJob:
        job = self.scheduler.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, limit: int = 20) -> list[SyncJob]:
        return self.scheduler.list_recent_jobs(limit)

    def cancel_job(self, job_id: str) -> SyncJob:
        return self.scheduler.cancel_job(job_id)

    def get_schedule(self) -> ScheduleConfig:
        return self.scheduler.get_schedule()

    def update_schedule(self, config: ScheduleConfig) -> ScheduleConfig:
        return self.scheduler.update_schedule(config)

    # =========================================================================
    # Review Queue
    # =========================================================================

    def list_review_items(
        self,
        status: ApprovalStatus | None = ApprovalStatus.PENDING,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ReviewQueueItem]:
        with self.session_factory() as session:
            return ApprovalQueue(session).list_items(status=status, limit=limit, offset=offset)

    def review_stats(self, now: datetime | None = None) -> ReviewQueueStats:
        with self.session_factory() as session:
            return ApprovalQueue(session).stats(now)

    def approve(self, queue_id: str, reviewer_id: str, notes: str | None = None) -> ReviewQueueItem:
        """Approve a queued work or chapter."""
        with self.session_factory() as session:
            queue = ApprovalQueue(session)
            if queue.get_item(queue_id) is None:
                raise ReviewItemNotFoundError(queue_id)
            item = queue.approve(queue_id, reviewer_id, notes)
            session.commit()
        self.events.info(f"Approved: {item.title}", {"queue_id": queue_id, "reviewer_id": reviewer_id}, "review")
        return item

    def reject(self, queue_id: str, reviewer_id: str, notes: str) -> ReviewQueueItem:
        """Reject a queued work or chapter; a reason is required."""
        with self.session_factory() as session:
            queue = ApprovalQueue(session)
            if queue.get_item(queue_id) is None:
                raise ReviewItemNotFoundError(queue_id)
            item = queue.reject(queue_id, reviewer_id, notes)
            session.commit()
        self.events.info(
            f"Rejected: {item.title}",
            {"queue_id": queue_id, "reviewer_id": reviewer_id, "notes": item.review_notes},
            "review",
        )
        return item

    # =========================================================================
    # Observability
    # =========================================================================

    def recent_logs(
        self, limit: int = 50, level: LogLevel | None = None, source: str | None = None
    ) -> list[SyncLogEntry]:
        return self.events.recent(limit=limit, level=level, source=source)

    def system_stats(self) -> SystemStats:
        return self.events.system_stats()

    def cleanup_logs(self, days: int = 30) -> int:
        return self.events.cleanup(days=days)
