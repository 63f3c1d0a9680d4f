"""
Sync Event Log Module
=====================

Structured event log for the sync pipeline. Every entry goes to the
Python logger and, when a session factory is configured, to the
sync_logs table so operators can review sync history.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from manga_sync.core.enums import LogLevel
from manga_sync.core.schema import SyncLogEntry, SystemStats
from manga_sync.db.repositories import (
    ChapterRepository,
    MangaRepository,
    SourceRepository,
    SyncLogRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PYTHON_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class EventLog:
    """
    Structured log sink used by the fetcher, orchestrator and scheduler.

    Entries carry (level, message, details, source tag, source id,
    timestamp). Persisting an entry never raises: storage failures are
    reported through the Python logger and the entry is dropped.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        persist_debug: bool = False,
    ) -> None:
        self.session_factory = session_factory
        self.persist_debug = persist_debug

    def log(
        self,
        level: LogLevel,
        message: str,
        details: dict[str, Any] | None = None,
        source: str = "system",
        source_id: str | None = None,
    ) -> None:
        """Record one entry."""
        logger.log(_PYTHON_LEVELS[level], f"[{source}] {message}")

        if self.session_factory is None:
            return
        if level == LogLevel.DEBUG and not self.persist_debug:
            return

        try:
            with self.session_factory() as session:
                SyncLogRepository(session).add(
                    level=level,
                    message=message,
                    details=details,
                    source=source,
                    source_id=source_id,
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist sync log entry '{message}': {e}")

    def info(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        source: str = "system",
        source_id: str | None = None,
    ) -> None:
        self.log(LogLevel.INFO, message, details, source, source_id)

    def warn(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        source: str = "system",
        source_id: str | None = None,
    ) -> None:
        self.log(LogLevel.WARN, message, details, source, source_id)

    def error(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        source: str = "system",
        source_id: str | None = None,
    ) -> None:
        self.log(LogLevel.ERROR, message, details, source, source_id)

    def debug(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        source: str = "system",
        source_id: str | None = None,
    ) -> None:
        self.log(LogLevel.DEBUG, message, details, source, source_id)

    # ------------------------------------------------------------------
    # Sync helpers
    # ------------------------------------------------------------------

    def sync_start(self, source_id: str, source_name: str) -> None:
        self.info(
            f"Sync started for source: {source_name}",
            {"action": "sync_start"},
            "sync",
            source_id,
        )

    def sync_success(
        self,
        source_id: str,
        source_name: str,
        new_works: int,
        new_chapters: int,
        duplicates: int,
    ) -> None:
        self.info(
            f"Sync completed for source: {source_name}",
            {
                "action": "sync_complete",
                "stats": {
                    "new_works": new_works,
                    "new_chapters": new_chapters,
                    "duplicates": duplicates,
                },
            },
            "sync",
            source_id,
        )

    def sync_error(
        self, source_id: str | None, source_name: str, error: BaseException | str
    ) -> None:
        self.error(
            f"Sync failed for source: {source_name}",
            {"action": "sync_error", "error": str(error)},
            "sync",
            source_id,
        )

    def work_queued(self, title: str, source_id: str | None = None) -> None:
        self.info(
            f"New work queued for review: {title}",
            {"action": "manga_added", "title": title},
            "manga",
            source_id,
        )

    def chapter_queued(self, title: str, number: float, source_id: str | None = None) -> None:
        self.info(
            f"New chapter queued for review: {title} - chapter {number:g}",
            {"action": "chapter_added", "manga": title, "chapter": number},
            "chapter",
            source_id,
        )

    def duplicate_skipped(self, title: str, reason: str, source_id: str | None = None) -> None:
        self.warn(
            f"Duplicate work skipped: {title}",
            {"action": "duplicate_skipped", "title": title, "reason": reason},
            "duplicate",
            source_id,
        )

    def performance(self, operation: str, duration_ms: float, error: str | None = None) -> None:
        details: dict[str, Any] = {"operation": operation, "duration": round(duration_ms, 2)}
        if error is None:
            self.info(f"Operation {operation} took {duration_ms:.0f}ms", details, "performance")
        else:
            details["error"] = error
            self.error(
                f"Operation {operation} failed after {duration_ms:.0f}ms",
                details,
                "performance",
            )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def recent(
        self, limit: int = 50, level: LogLevel | None = None, source: str | None = None
    ) -> list[SyncLogEntry]:
        """Most recent persisted entries, newest first."""
        if self.session_factory is None:
            return []
        with self.session_factory() as session:
            return SyncLogRepository(session).recent(limit=limit, level=level, source=source)

    def cleanup(self, days: int = 30, now: datetime | None = None) -> int:
        """
        Delete persisted entries older than `days`.

        Returns:
            Number of entries deleted
        """
        if self.session_factory is None:
            return 0
        cutoff = (now or _utc_now()) - timedelta(days=days)
        with self.session_factory() as session:
            deleted = SyncLogRepository(session).delete_older_than(cutoff)
            session.commit()
        self.info(f"Removed {deleted} log entries older than {days} days", {"deleted": deleted})
        return deleted

    def system_stats(self) -> SystemStats:
        """Catalog and sync health counters."""
        if self.session_factory is None:
            return SystemStats()
        with self.session_factory() as session:
            works = MangaRepository(session)
            chapters = ChapterRepository(session)
            sources = SourceRepository(session)
            successful, failed, last_sync_at = SyncLogRepository(session).status_counts()
            return SystemStats(
                total_works=works.count(),
                total_chapters=chapters.count(),
                auto_added_works=works.count(auto_added=True),
                auto_added_chapters=chapters.count(auto_added=True),
                active_sources=sources.count(active_only=True),
                total_sources=sources.count(),
                successful_syncs=successful,
                failed_syncs=failed,
                last_sync_at=last_sync_at,
            )


async def measure(
    operation: str,
    call: Callable[[], Awaitable[T]],
    events: EventLog | None = None,
) -> T:
    """
    Await `call()` and record how long it took.

    Failures are recorded with their error and re-raised unchanged.

    Usage:
        result = await measure("sync_all", lambda: orchestrator.sync_all(), events)
    """
    start = time.perf_counter()
    try:
        result = await call()
    except Exception as e:
        duration_ms = (time.perf_counter() - start) * 1000
        if events is not None:
            events.performance(operation, duration_ms, error=str(e))
        else:
            logger.warning(f"Operation {operation} failed after {duration_ms:.0f}ms: {e}")
        raise

    duration_ms = (time.perf_counter() - start) * 1000
    if events is not None:
        events.performance(operation, duration_ms)
    else:
        logger.debug(f"Operation {operation} took {duration_ms:.0f}ms")
    return result
