"""Repository classes for sync subsystem database operations."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from manga_sync.core.enums import (
    ApprovalStatus,
    ContentKind,
    FetchKind,
    JobStatus,
    JobTrigger,
    LogLevel,
)
from manga_sync.core.schema import (
    Chapter,
    JobProgress,
    JobResult,
    ReviewQueueItem,
    ReviewQueueStats,
    Source,
    SourceSettings,
    SyncJob,
    SyncLogEntry,
    Work,
)
from manga_sync.core.text import normalize_text
from manga_sync.db.models import (
    ChapterDB,
    MangaDB,
    NotificationDB,
    ProfileDB,
    ReviewQueueDB,
    SourceDB,
    SyncJobDB,
    SyncLogDB,
    SystemSettingDB,
)

if TYPE_CHECKING:
    from manga_sync.ingestion.normalizer import CatalogEntry, ChapterEntry

SYSTEM_SUBMITTER = "system"


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _to_db_time(value: datetime | None) -> datetime | None:
    """Convert to the naive UTC form stored in the database."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value


def _from_db_time(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime read from the database."""
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


# ============================================================================
# Catalog Repositories
# ============================================================================


class MangaRepository:
    """Repository for catalog work lookups and pending inserts."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, manga_id: str) -> Work | None:
        """Get a work by ID."""
        db_item = self.session.get(MangaDB, manga_id)
        return self._to_domain(db_item) if db_item else None

    def get_by_source_ref(self, source_id: str, source_manga_id: str) -> Work | None:
        """Get a work by its (source id, source-native id) pair."""
        stmt = (
            select(MangaDB)
            .where(MangaDB.source_id == source_id)
            .where(MangaDB.source_manga_id == source_manga_id)
            .limit(1)
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def search_candidates(
        self, keywords: list[str], author: str | None = None, limit: int = 20
    ) -> list[Work]:
        """
        Search works whose normalized title contains any of the keywords.

        Keywords are expected in normalized form (see
        manga_sync.core.text), so "D.Gray-man" is found by "dgrayman".
        When an author is given the candidates are further narrowed to
        works by a matching author.
        """
        if not keywords:
            return []
        stmt = select(MangaDB).where(
            or_(*[MangaDB.normalized_title.ilike(f"%{keyword}%") for keyword in keywords])
        )
        if author:
            stmt = stmt.where(MangaDB.author.ilike(f"%{author}%"))
        stmt = stmt.order_by(MangaDB.created_at).limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(m) for m in result]

    def create(
        self,
        title: str,
        author: str | None = None,
        description: str | None = None,
        source_id: str | None = None,
        source_manga_id: str | None = None,
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
    ) -> Work:
        """Insert a work directly (operator-added content)."""
        db_item = MangaDB(
            title=title,
            normalized_title=normalize_text(title),
            author=author,
            description=description,
            source_id=source_id,
            source_manga_id=source_manga_id,
            approval_status=approval_status.value,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def create_pending(self, entry: CatalogEntry) -> Work:
        """Insert a work from a catalog entry, awaiting approval."""
        db_item = MangaDB(
            title=entry.title,
            normalized_title=normalize_text(entry.title),
            description=entry.description,
            author=entry.author,
            artist=entry.artist,
            genres_json=json.dumps(sorted(entry.genres)),
            status=entry.status.value,
            cover_image_url=entry.cover_image_url,
            manga_type=entry.work_kind.value,
            source_id=entry.source_id,
            source_manga_id=entry.source_manga_id,
            auto_added=True,
            approval_status=ApprovalStatus.PENDING.value,
            created_by=SYSTEM_SUBMITTER,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def set_approval_status(self, manga_id: str, status: ApprovalStatus) -> None:
        """Update the approval status of a work."""
        db_item = self.session.get(MangaDB, manga_id)
        if db_item is None:
            raise ValueError(f"Work with id {manga_id} not found")
        db_item.approval_status = status.value
        self.session.flush()

    def count(self, auto_added: bool | None = None) -> int:
        """Count works, optionally only those added by the pipeline."""
        stmt = select(func.count()).select_from(MangaDB)
        if auto_added is not None:
            stmt = stmt.where(MangaDB.auto_added == auto_added)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: MangaDB) -> Work:
        """Convert database model to domain model."""
        return Work(
            id=db_item.id,
            title=db_item.title,
            description=db_item.description,
            author=db_item.author,
            source_id=db_item.source_id,
            source_manga_id=db_item.source_manga_id,
            approval_status=ApprovalStatus(db_item.approval_status),
        )


class ChapterRepository:
    """Repository for chapter lookups and pending inserts."""

    def __init__(self, session: Session):
        self.session = session

    def find_in_range(self, manga_id: str, low: float, high: float) -> list[Chapter]:
        """Get chapters of a work with low <= number <= high."""
        stmt = (
            select(ChapterDB)
            .where(ChapterDB.manga_id == manga_id)
            .where(ChapterDB.chapter_number >= low)
            .where(ChapterDB.chapter_number <= high)
            .order_by(ChapterDB.chapter_number)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(c) for c in result]

    def list_for_manga(self, manga_id: str) -> list[Chapter]:
        """Get all chapters of a work ordered by number."""
        stmt = (
            select(ChapterDB)
            .where(ChapterDB.manga_id == manga_id)
            .order_by(ChapterDB.chapter_number)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(c) for c in result]

    def create(
        self,
        manga_id: str,
        chapter_number: float,
        title: str | None = None,
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
    ) -> Chapter:
        """Insert a chapter directly (operator-added content)."""
        db_item = ChapterDB(
            manga_id=manga_id,
            chapter_number=chapter_number,
            title=title,
            approval_status=approval_status.value,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def create_pending(self, manga_id: str, chapter: ChapterEntry) -> Chapter:
        """Insert a chapter from a catalog entry, awaiting approval."""
        db_item = ChapterDB(
            manga_id=manga_id,
            chapter_number=chapter.number,
            title=chapter.title,
            description=chapter.description,
            pages_json=json.dumps(chapter.pages),
            source_chapter_id=chapter.source_chapter_id,
            auto_added=True,
            approval_status=ApprovalStatus.PENDING.value,
            created_by=SYSTEM_SUBMITTER,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def set_approval_status(self, chapter_id: str, status: ApprovalStatus) -> None:
        """Update the approval status of a chapter."""
        db_item = self.session.get(ChapterDB, chapter_id)
        if db_item is None:
            raise ValueError(f"Chapter with id {chapter_id} not found")
        db_item.approval_status = status.value
        self.session.flush()

    def count(self, auto_added: bool | None = None) -> int:
        """Count chapters, optionally only those added by the pipeline."""
        stmt = select(func.count()).select_from(ChapterDB)
        if auto_added is not None:
            stmt = stmt.where(ChapterDB.auto_added == auto_added)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: ChapterDB) -> Chapter:
        """Convert database model to domain model."""
        return Chapter(
            id=db_item.id,
            manga_id=db_item.manga_id,
            chapter_number=db_item.chapter_number,
            title=db_item.title,
            approval_status=ApprovalStatus(db_item.approval_status),
        )


# ============================================================================
# Source Repository
# ============================================================================


class SourceRepository:
    """Repository for Source CRUD operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, source: Source) -> Source:
        """Create a new source, appended after existing ones."""
        position = self.session.execute(select(func.max(SourceDB.position))).scalar()
        db_item = SourceDB(
            id=source.id,
            name=source.name,
            base_url=source.base_url,
            fetch_kind=source.fetch_kind.value,
            is_active=source.is_active,
            last_sync_at=_to_db_time(source.last_sync_at),
            config_json=source.settings.model_dump_json(),
            position=(position or 0) + 1,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, source_id: str) -> Source | None:
        """Get a source by ID."""
        db_item = self.session.get(SourceDB, source_id)
        return self._to_domain(db_item) if db_item else None

    def list_all(self, active_only: bool = False) -> list[Source]:
        """List sources in registry order."""
        stmt = select(SourceDB).order_by(SourceDB.position, SourceDB.created_at)
        if active_only:
            stmt = stmt.where(SourceDB.is_active.is_(True))
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(s) for s in result]

    def update(self, source: Source) -> Source:
        """Update an existing source."""
        db_item = self.session.get(SourceDB, source.id)
        if db_item is None:
            raise ValueError(f"Source with id {source.id} not found")

        db_item.name = source.name
        db_item.base_url = source.base_url
        db_item.fetch_kind = source.fetch_kind.value
        db_item.is_active = source.is_active
        db_item.last_sync_at = _to_db_time(source.last_sync_at)
        db_item.config_json = source.settings.model_dump_json()

        self.session.flush()
        return self._to_domain(db_item)

    def delete(self, source_id: str) -> bool:
        """Delete a source by ID."""
        db_item = self.session.get(SourceDB, source_id)
        if db_item is None:
            return False
        self.session.delete(db_item)
        self.session.flush()
        return True

    def touch_last_sync(self, source_id: str, when: datetime | None = None) -> None:
        """Record the last successful sync time of a source."""
        db_item = self.session.get(SourceDB, source_id)
        if db_item is None:
            raise ValueError(f"Source with id {source_id} not found")
        db_item.last_sync_at = _to_db_time(when or _utc_now())
        self.session.flush()

    def count(self, active_only: bool = False) -> int:
        """Count sources."""
        stmt = select(func.count()).select_from(SourceDB)
        if active_only:
            stmt = stmt.where(SourceDB.is_active.is_(True))
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: SourceDB) -> Source:
        """Convert database model to domain model."""
        return Source(
            id=db_item.id,
            name=db_item.name,
            base_url=db_item.base_url,
            fetch_kind=FetchKind(db_item.fetch_kind),
            is_active=db_item.is_active,
            last_sync_at=_from_db_time(db_item.last_sync_at),
            settings=SourceSettings.model_validate_json(db_item.config_json or "{}"),
        )


# ============================================================================
# Review Queue Repository
# ============================================================================


class ReviewQueueRepository:
    """Repository for the content review queue."""

    def __init__(self, session: Session):
        self.session = session

    def enqueue(
        self,
        content_kind: ContentKind,
        content_id: str,
        title: str = "",
        priority: int = 0,
        submitted_by: str = SYSTEM_SUBMITTER,
    ) -> ReviewQueueItem:
        """Add a pending review row for a work or chapter."""
        db_item = ReviewQueueDB(
            content_kind=content_kind.value,
            content_id=content_id,
            title=title,
            priority=priority,
            submitted_by=submitted_by,
            status=ApprovalStatus.PENDING.value,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, queue_id: str) -> ReviewQueueItem | None:
        """Get a review row by ID."""
        db_item = self.session.get(ReviewQueueDB, queue_id)
        return self._to_domain(db_item) if db_item else None

    def list_by_status(
        self,
        status: ApprovalStatus | None = ApprovalStatus.PENDING,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ReviewQueueItem]:
        """List review rows, highest priority first, oldest first within a priority."""
        stmt = select(ReviewQueueDB)
        if status is not None:
            stmt = stmt.where(ReviewQueueDB.status == status.value)
        stmt = (
            stmt.order_by(ReviewQueueDB.priority.desc(), ReviewQueueDB.submitted_at.asc())
            .limit(limit)
            .offset(offset)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(r) for r in result]

    def count_by_status(
        self, status: ApprovalStatus, content_kind: ContentKind | None = None
    ) -> int:
        """Count review rows with a given status."""
        stmt = (
            select(func.count())
            .select_from(ReviewQueueDB)
            .where(ReviewQueueDB.status == status.value)
        )
        if content_kind is not None:
            stmt = stmt.where(ReviewQueueDB.content_kind == content_kind.value)
        return self.session.execute(stmt).scalar() or 0

    def stats(self, now: datetime | None = None) -> ReviewQueueStats:
        """Aggregate statistics of the queue as of `now`."""
        now = now or _utc_now()
        start_of_day = _to_db_time(now.replace(hour=0, minute=0, second=0, microsecond=0))

        pending_works = self.count_by_status(ApprovalStatus.PENDING, ContentKind.MANGA)
        pending_chapters = self.count_by_status(ApprovalStatus.PENDING, ContentKind.CHAPTER)

        def decided_since(status: ApprovalStatus) -> int:
            stmt = (
                select(func.count())
                .select_from(ReviewQueueDB)
                .where(ReviewQueueDB.status == status.value)
                .where(ReviewQueueDB.reviewed_at >= start_of_day)
            )
            return self.session.execute(stmt).scalar() or 0

        oldest = self.session.execute(
            select(func.min(ReviewQueueDB.submitted_at)).where(
                ReviewQueueDB.status == ApprovalStatus.PENDING.value
            )
        ).scalar()
        oldest_days = 0
        if oldest is not None:
            oldest_days = max(0, (_to_db_time(now) - oldest).days)

        return ReviewQueueStats(
            pending_works=pending_works,
            pending_chapters=pending_chapters,
            total_pending=pending_works + pending_chapters,
            approved_today=decided_since(ApprovalStatus.APPROVED),
            rejected_today=decided_since(ApprovalStatus.REJECTED),
            oldest_pending_days=oldest_days,
        )

    def set_decision(
        self,
        queue_id: str,
        status: ApprovalStatus,
        reviewer_id: str,
        notes: str | None = None,
        reviewed_at: datetime | None = None,
    ) -> ReviewQueueItem:
        """
        Record a reviewer decision.

        The approval status of the underlying work or chapter is updated
        in the same session.
        """
        db_item = self.session.get(ReviewQueueDB, queue_id)
        if db_item is None:
            raise ValueError(f"Review queue item with id {queue_id} not found")

        db_item.status = status.value
        db_item.reviewer_id = reviewer_id
        db_item.review_notes = notes
        db_item.reviewed_at = _to_db_time(reviewed_at or _utc_now())

        if db_item.content_kind == ContentKind.MANGA.value:
            MangaRepository(self.session).set_approval_status(db_item.content_id, status)
        else:
            ChapterRepository(self.session).set_approval_status(db_item.content_id, status)

        self.session.flush()
        return self._to_domain(db_item)

    def _to_domain(self, db_item: ReviewQueueDB) -> ReviewQueueItem:
        """Convert database model to domain model."""
        return ReviewQueueItem(
            id=db_item.id,
            content_kind=ContentKind(db_item.content_kind),
            content_id=db_item.content_id,
            title=db_item.title,
            priority=db_item.priority,
            submitted_by=db_item.submitted_by,
            submitted_at=_from_db_time(db_item.submitted_at),
            status=ApprovalStatus(db_item.status),
            reviewer_id=db_item.reviewer_id,
            reviewed_at=_from_db_time(db_item.reviewed_at),
            review_notes=db_item.review_notes,
        )


# ============================================================================
# Sync Job Repository
# ============================================================================


class SyncJobRepository:
    """Repository for sync job records."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        source_ids: list[str] | None = None,
        trigger: JobTrigger = JobTrigger.MANUAL,
        created_at: datetime | None = None,
    ) -> SyncJob:
        """Create a pending job."""
        db_item = SyncJobDB(
            status=JobStatus.PENDING.value,
            trigger=trigger.value,
            source_ids_json=json.dumps(source_ids or []),
            created_at=_to_db_time(created_at or _utc_now()),
            progress_json=JobProgress().model_dump_json(),
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get(self, job_id: str) -> SyncJob | None:
        """Get a job by ID."""
        db_item = self.session.get(SyncJobDB, job_id)
        return self._to_domain(db_item) if db_item else None

    def list_recent(self, limit: int = 20) -> list[SyncJob]:
        """List jobs, newest first."""
        stmt = select(SyncJobDB).order_by(SyncJobDB.created_at.desc()).limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(j) for j in result]

    def list_by_status(self, status: JobStatus, limit: int | None = None) -> list[SyncJob]:
        """List jobs with a given status, oldest first."""
        stmt = (
            select(SyncJobDB)
            .where(SyncJobDB.status == status.value)
            .order_by(SyncJobDB.created_at.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(j) for j in result]

    def count_running(self) -> int:
        """Count jobs currently in the running state."""
        stmt = (
            select(func.count())
            .select_from(SyncJobDB)
            .where(SyncJobDB.status == JobStatus.RUNNING.value)
        )
        return self.session.execute(stmt).scalar() or 0

    def transition(
        self,
        job_id: str,
        from_status: JobStatus,
        to_status: JobStatus,
        *,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        progress: JobProgress | None = None,
        result: JobResult | None = None,
    ) -> bool:
        """
        Move a job from one status to another.

        The update only applies while the row is still in `from_status`.

        Returns:
            True if the row was updated, False if it had already moved on
        """
        values: dict[str, Any] = {"status": to_status.value}
        if started_at is not None:
            values["started_at"] = _to_db_time(started_at)
        if completed_at is not None:
            values["completed_at"] = _to_db_time(completed_at)
        if progress is not None:
            values["progress_json"] = progress.model_dump_json()
        if result is not None:
            values["result_json"] = result.model_dump_json()

        stmt = (
            update(SyncJobDB)
            .where(SyncJobDB.id == job_id)
            .where(SyncJobDB.status == from_status.value)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return self.session.execute(stmt).rowcount == 1

    def update_progress(self, job_id: str, progress: JobProgress) -> bool:
        """Store a progress snapshot for a running job."""
        stmt = (
            update(SyncJobDB)
            .where(SyncJobDB.id == job_id)
            .where(SyncJobDB.status == JobStatus.RUNNING.value)
            .values(progress_json=progress.model_dump_json())
            .execution_options(synchronize_session="fetch")
        )
        return self.session.execute(stmt).rowcount == 1

    def find_stale(self, cutoff: datetime) -> list[SyncJob]:
        """Get running jobs that started before `cutoff`."""
        stmt = (
            select(SyncJobDB)
            .where(SyncJobDB.status == JobStatus.RUNNING.value)
            .where(SyncJobDB.started_at < _to_db_time(cutoff))
            .order_by(SyncJobDB.started_at)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(j) for j in result]

    def _to_domain(self, db_item: SyncJobDB) -> SyncJob:
        """Convert database model to domain model."""
        return SyncJob(
            id=db_item.id,
            status=JobStatus(db_item.status),
            trigger=JobTrigger(db_item.trigger),
            source_ids=json.loads(db_item.source_ids_json or "[]"),
            created_at=_from_db_time(db_item.created_at),
            started_at=_from_db_time(db_item.started_at),
            completed_at=_from_db_time(db_item.completed_at),
            progress=JobProgress.model_validate_json(db_item.progress_json or "{}"),
            result=JobResult.model_validate_json(db_item.result_json)
            if db_item.result_json
            else None,
        )


# ============================================================================
# Settings Repository
# ============================================================================


class SettingsRepository:
    """Key/value settings with JSON values."""

    def __init__(self, session: Session):
        self.session = session

    def get_json(self, key: str) -> Any | None:
        """Get a decoded setting value, or None if unset."""
        db_item = self.session.get(SystemSettingDB, key)
        return json.loads(db_item.value_json) if db_item else None

    def set_json(self, key: str, value: Any) -> None:
        """Insert or replace a setting value."""
        db_item = self.session.get(SystemSettingDB, key)
        if db_item is None:
            db_item = SystemSettingDB(key=key, value_json=json.dumps(value))
            self.session.add(db_item)
        else:
            db_item.value_json = json.dumps(value)
            db_item.updated_at = _to_db_time(_utc_now())
        self.session.flush()


# ============================================================================
# Observability Repositories
# ============================================================================


class SyncLogRepository:
    """Repository for structured sync log entries."""

    def __init__(self, session: Session):
        self.session = session

    def add(
        self,
        level: LogLevel,
        message: str,
        details: dict[str, Any] | None = None,
        source: str = "system",
        source_id: str | None = None,
        created_at: datetime | None = None,
    ) -> SyncLogEntry:
        """Append a log entry."""
        db_item = SyncLogDB(
            level=level.value,
            message=message,
            details_json=json.dumps(details, default=str) if details is not None else None,
            source=source,
            source_id=source_id,
            created_at=_to_db_time(created_at or _utc_now()),
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def recent(
        self, limit: int = 50, level: LogLevel | None = None, source: str | None = None
    ) -> list[SyncLogEntry]:
        """Get the most recent entries, newest first."""
        stmt = select(SyncLogDB)
        if level is not None:
            stmt = stmt.where(SyncLogDB.level == level.value)
        if source is not None:
            stmt = stmt.where(SyncLogDB.source == source)
        stmt = stmt.order_by(SyncLogDB.created_at.desc()).limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(e) for e in result]

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete entries created before `cutoff`. Returns rows deleted."""
        stmt = delete(SyncLogDB).where(SyncLogDB.created_at < _to_db_time(cutoff))
        return self.session.execute(stmt).rowcount or 0

    def status_counts(self, window: int = 100) -> tuple[int, int, datetime | None]:
        """
        Summarize the most recent per-source sync outcomes.

        Returns:
            (successful, failed, last successful sync time) over the
            last `window` entries tagged "sync"
        """
        stmt = (
            select(SyncLogDB)
            .where(SyncLogDB.source == "sync")
            .order_by(SyncLogDB.created_at.desc())
            .limit(window)
        )
        entries = self.session.execute(stmt).scalars().all()

        successful = 0
        failed = 0
        last_success: datetime | None = None
        for entry in entries:
            action = json.loads(entry.details_json).get("action") if entry.details_json else None
            if action == "sync_complete":
                successful += 1
                if last_success is None:
                    last_success = _from_db_time(entry.created_at)
            elif action == "sync_error":
                failed += 1
        return successful, failed, last_success

    def _to_domain(self, db_item: SyncLogDB) -> SyncLogEntry:
        """Convert database model to domain model."""
        return SyncLogEntry(
            id=db_item.id,
            level=LogLevel(db_item.level),
            message=db_item.message,
            details=json.loads(db_item.details_json) if db_item.details_json else None,
            source=db_item.source,
            source_id=db_item.source_id,
            created_at=_from_db_time(db_item.created_at),
        )


class NotificationRepository:
    """Repository for operator notifications."""

    def __init__(self, session: Session):
        self.session = session

    def add_many(
        self,
        user_ids: list[str],
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
        notification_type: str = "content_review",
    ) -> int:
        """Insert one notification per recipient. Returns rows inserted."""
        data_json = json.dumps(data or {})
        for user_id in user_ids:
            self.session.add(
                NotificationDB(
                    user_id=user_id,
                    type=notification_type,
                    title=title,
                    message=message,
                    data_json=data_json,
                )
            )
        self.session.flush()
        return len(user_ids)

    def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """List notifications for a user, newest first."""
        stmt = (
            select(NotificationDB)
            .where(NotificationDB.user_id == user_id)
            .order_by(NotificationDB.created_at.desc())
        )
        result = self.session.execute(stmt).scalars().all()
        return [
            {
                "id": n.id,
                "type": n.type,
                "title": n.title,
                "message": n.message,
                "data": json.loads(n.data_json or "{}"),
                "is_read": n.is_read,
                "created_at": _from_db_time(n.created_at),
            }
            for n in result
        ]

    def count(self) -> int:
        """Count all notifications."""
        stmt = select(func.count()).select_from(NotificationDB)
        return self.session.execute(stmt).scalar() or 0


class ProfileRepository:
    """Read access to the operator directory."""

    def __init__(self, session: Session):
        self.session = session

    def user_ids_with_roles(self, roles: list[str]) -> list[str]:
        """Get user ids whose role is one of `roles`."""
        if not roles:
            return []
        stmt = select(ProfileDB.user_id).where(ProfileDB.role.in_(roles)).order_by(ProfileDB.user_id)
        return list(self.session.execute(stmt).scalars().all())
