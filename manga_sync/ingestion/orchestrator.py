"""
Ingestion Orchestrator Module
=============================

Runs one sync pass over the registered sources:

1. Fetch - CatalogFetcher pulls and normalizes each source catalog
2. Detect - DuplicateDetector classifies every entry
3. Queue - new works and chapters are stored as pending and queued
   for review; known works only contribute chapters not yet stored
4. Notify - reviewers get one aggregate notification per pass

Only one pass may run at a time per orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from manga_sync.core.schema import JobProgress, JobResult
from manga_sync.db.repositories import ChapterRepository, MangaRepository, SourceRepository
from manga_sync.ingestion.detector import DuplicateDetector
from manga_sync.ingestion.events import EventLog
from manga_sync.ingestion.exceptions import (
    NoActiveSourcesError,
    SourceNotFoundError,
    SyncInProgressError,
)
from manga_sync.ingestion.fetcher import CatalogFetcher
from manga_sync.ingestion.normalizer import CatalogEntry
from manga_sync.ingestion.notifications import ReviewerNotifier
from manga_sync.ingestion.registry import DetectionConfig, SourceConfig, SourceRegistry
from manga_sync.ingestion.review_queue import ApprovalQueue

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[JobProgress], None]


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


@dataclass
class SyncResult:
    """Aggregate result of a sync pass (or of a single source)."""

    new_works: int = 0
    new_chapters: int = 0
    duplicates_skipped: int = 0
    pending_review: int = 0
    errors: list[str] = field(default_factory=list)

    def merge(self, other: SyncResult) -> None:
        """Add another result's counts and errors to this one."""
        self.new_works += other.new_works
        self.new_chapters += other.new_chapters
        self.duplicates_skipped += other.duplicates_skipped
        self.pending_review += other.pending_review
        self.errors.extend(other.errors)

    def to_job_result(self) -> JobResult:
        """Convert to the persisted job result model."""
        return JobResult(**asdict(self))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class _EntryOutcome:
    is_new: bool = False
    is_duplicate: bool = False
    reason: str = ""
    new_chapters: int = 0


class IngestionOrchestrator:
    """
    Coordinates fetching, duplicate detection and queueing for all
    active sources.

    Each catalog entry is processed in its own database session and
    transaction, so a failing entry is rolled back and recorded without
    affecting the rest of the source.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        session_factory: sessionmaker[Session],
        fetcher: CatalogFetcher | None = None,
        events: EventLog | None = None,
        notifier: ReviewerNotifier | None = None,
        detection: DetectionConfig | None = None,
        default_source_delay: float | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.events = events or EventLog(session_factory)
        self.fetcher = fetcher or CatalogFetcher.from_config(
            registry.global_config, events=self.events
        )
        self.notifier = notifier or ReviewerNotifier(
            session_factory, config=registry.notifications, events=self.events
        )
        self.detection = detection or registry.detection
        self.default_source_delay = (
            default_source_delay
            if default_source_delay is not None
            else registry.global_config.default_source_delay
        )
        self.clock = clock

        self._state_lock = threading.Lock()
        self._running = False
        self._shutdown = asyncio.Event()

    @property
    def is_running(self) -> bool:
        """Whether a sync pass is in progress."""
        with self._state_lock:
            return self._running

    def shutdown(self) -> None:
        """Interrupt the inter-source wait of a running pass and stop it."""
        self._shutdown.set()

    def resume(self) -> None:
        """Allow passes to run again after shutdown()."""
        self._shutdown.clear()

    def source_delay(self, source: SourceConfig) -> float:
        """Seconds to wait after a source before moving to the next one."""
        if source.rate_limit:
            return 60.0 / source.rate_limit
        return self.default_source_delay

    async def sync_all(
        self,
        source_ids: list[str] | None = None,
        progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """
        Run one sync pass.

        Args:
            source_ids: Optional subset of sources to sync
            progress: Called with a JobProgress snapshot as the pass advances

        Returns:
            Aggregate SyncResult

        Raises:
            SyncInProgressError: Another pass is already running
            NoActiveSourcesError: No active source matches the request
        """
        with self._state_lock:
            if self._running:
                self.events.warn("Sync is already running", {}, "sync")
                raise SyncInProgressError()
            self._running = True

        try:
            return await self._run(source_ids, progress)
        finally:
            with self._state_lock:
                self._running = False

    async def _run(
        self, source_ids: list[str] | None, progress: ProgressCallback | None
    ) -> SyncResult:
        sources = self._select_sources(source_ids)
        if not sources:
            raise NoActiveSourcesError()

        self.events.info(
            "Sync of all sources started", {"sources": [s.id for s in sources]}, "sync"
        )
        total = SyncResult()
        state = JobProgress(current_step="Starting sync", total_works=0)
        self._report(progress, state)

        for index, source in enumerate(sources):
            state.current_step = f"Syncing {source.name}"
            self._report(progress, state)

            self.events.sync_start(source.id, source.name)
            try:
                source_result = await self._sync_source(source, state, progress)
            except Exception as e:
                logger.exception(f"Sync of source '{source.name}' failed")
                total.errors.append(f"{source.name}: {e}")
                self.events.sync_error(source.id, source.name, e)
            else:
                total.merge(source_result)
                self.events.sync_success(
                    source.id,
                    source.name,
                    source_result.new_works,
                    source_result.new_chapters,
                    source_result.duplicates_skipped,
                )
                if source_result.pending_review > 0:
                    self.events.info(
                        f"{source_result.pending_review} new items from {source.name} "
                        "are awaiting review",
                        {"pending_items": source_result.pending_review},
                        "review",
                        source.id,
                    )

            state.errors = len(total.errors)
            self._report(progress, state)

            if index < len(sources) - 1:
                if await self._pause(self.source_delay(source)):
                    total.errors.append("Sync interrupted by shutdown")
                    self.events.warn("Sync interrupted by shutdown", {}, "sync")
                    break

        if total.pending_review > 0:
            self.notifier.notify_pending(total.pending_review)

        state.current_step = "Completed"
        state.errors = len(total.errors)
        self._report(progress, state)
        self.events.info("Sync of all sources completed", total.to_dict(), "sync")
        return total

    def _select_sources(self, source_ids: list[str] | None) -> list[SourceConfig]:
        """Sources to visit, in registry order, skipping inactive ones."""
        wanted = set(source_ids) if source_ids else None
        selected = []
        for source in self.registry.list_sources():
            if wanted is not None and source.id not in wanted:
                continue
            if not source.active:
                self.events.debug(f"Skipping inactive source: {source.name}", {}, "sync", source.id)
                continue
            selected.append(source)
        return selected

    async def _sync_source(
        self,
        source: SourceConfig,
        state: JobProgress,
        progress: ProgressCallback | None,
    ) -> SyncResult:
        result = SyncResult()
        entries = await self.fetcher.fetch(source)
        state.total_works = (state.total_works or 0) + len(entries)
        self.events.info(
            f"Fetched {len(entries)} works from source: {source.name}",
            {"count": len(entries)},
            "sync",
            source.id,
        )

        for entry in entries:
            try:
                outcome = self._process_entry(entry)
            except Exception as e:
                logger.exception(f"Failed to process '{entry.title}' from '{source.name}'")
                result.errors.append(f"Error processing {entry.title}: {e}")
                self.events.error(
                    f"Failed to process work: {entry.title}",
                    {"error": str(e)},
                    "manga",
                    source.id,
                )
            else:
                if outcome.is_new:
                    result.new_works += 1
                    result.pending_review += 1
                    self.events.work_queued(entry.title, source.id)
                elif outcome.is_duplicate:
                    result.duplicates_skipped += 1
                    self.events.duplicate_skipped(entry.title, outcome.reason, source.id)
                result.new_chapters += outcome.new_chapters
                result.pending_review += outcome.new_chapters

            state.processed_works += 1
            state.processed_chapters += len(entry.chapters)
            state.errors = len(result.errors)
            self._report(progress, state)

        self._mark_synced(source)
        return result

    def _process_entry(self, entry: CatalogEntry) -> _EntryOutcome:
        """Classify one entry and store whatever is new, in one transaction."""
        with self.session_factory() as session:
            try:
                outcome = self._process_entry_in_session(session, entry)
                session.commit()
            except Exception:
                session.rollback()
                raise
        return outcome

    def _process_entry_in_session(self, session: Session, entry: CatalogEntry) -> _EntryOutcome:
        detector = DuplicateDetector.from_config(session, self.detection)
        queue = ApprovalQueue(session)
        chapters = ChapterRepository(session)

        check = detector.check_entry(entry)
        if check.is_duplicate:
            outcome = _EntryOutcome(
                is_duplicate=True,
                reason=", ".join(check.reasons) or "work already exists",
            )
            matched = check.matched_work
            if matched is not None:
                for chapter in entry.chapters:
                    if detector.check_chapter(matched.id, chapter.number, chapter.title).is_duplicate:
                        continue
                    stored = chapters.create_pending(matched.id, chapter)
                    queue.enqueue_chapter(stored, matched.title)
                    self.events.chapter_queued(matched.title, chapter.number, entry.source_id)
                    outcome.new_chapters += 1
            return outcome

        work = MangaRepository(session).create_pending(entry)
        queue.enqueue_work(work)
        for chapter in entry.chapters:
            stored = chapters.create_pending(work.id, chapter)
            queue.enqueue_chapter(stored, work.title)
        return _EntryOutcome(is_new=True, new_chapters=len(entry.chapters))

    def _mark_synced(self, source: SourceConfig) -> None:
        """Record the last sync time in the database (if stored there) and the registry."""
        now = self.clock()
        with self.session_factory() as session:
            repo = SourceRepository(session)
            if repo.get_by_id(source.id) is not None:
                repo.touch_last_sync(source.id, now)
                session.commit()
        self.registry.mark_synced(source.id, now)

    async def _pause(self, seconds: float) -> bool:
        """
        Wait between sources.

        Returns:
            True if shutdown was requested during (or before) the wait
        """
        if self._shutdown.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _report(self, progress: ProgressCallback | None, state: JobProgress) -> None:
        if progress is None:
            return
        try:
            progress(state.model_copy())
        except Exception:
            logger.exception("Progress callback failed")

    async def test_source(self, source_id: str) -> dict[str, Any]:
        """
        Fetch a source without storing anything.

        Returns:
            {"success": True, "count": n, "sample": [...]} or
            {"success": False, "error": "..."}

        Raises:
            SourceNotFoundError: The source is not registered
        """
        source = self.registry.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)

        self.events.info(f"Testing source: {source.name}", {}, "test", source.id)
        result = await self.fetcher.fetch_raw(source)
        if not result.success:
            self.events.error(
                f"Source test failed: {source.name}", {"error": result.error}, "test", source.id
            )
            return {"success": False, "error": result.error}

        entries = self.fetcher.normalizer.parse_response(result.payload, source)
        outcome = {
            "success": True,
            "count": len(entries),
            "sample": [_entry_summary(e) for e in entries[:3]],
        }
        self.events.info(
            f"Source test succeeded: {source.name}", {"count": len(entries)}, "test", source.id
        )
        return outcome


def _entry_summary(entry: CatalogEntry) -> dict[str, Any]:
    return {
        "title": entry.title,
        "source_manga_id": entry.source_manga_id,
        "author": entry.author,
        "genres": sorted(entry.genres),
        "status": entry.status.value,
        "work_kind": entry.work_kind.value,
        "chapters": len(entry.chapters),
    }
