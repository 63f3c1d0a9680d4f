"""
Approval Queue Module
=====================

Durable queue of automatically ingested works and chapters awaiting a
human accept/reject decision.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from manga_sync.core.enums import ApprovalStatus, ContentKind
from manga_sync.core.schema import Chapter, ReviewQueueItem, ReviewQueueStats, Work
from manga_sync.db.repositories import ReviewQueueRepository
from manga_sync.ingestion.exceptions import ReviewStateError

logger = logging.getLogger(__name__)

WORK_PRIORITY = 1
CHAPTER_PRIORITY = 0


class ApprovalQueue:
    """
    Review queue operations bound to a database session.

    Works are queued ahead of chapters. Rows are never deleted; a
    decision only changes their status and cascades the approval status
    to the underlying work or chapter.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.repo = ReviewQueueRepository(session)

    def enqueue_work(self, work: Work) -> ReviewQueueItem:
        """Queue a pending work for review."""
        return self.repo.enqueue(
            content_kind=ContentKind.MANGA,
            content_id=work.id,
            title=work.title,
            priority=WORK_PRIORITY,
        )

    def enqueue_chapter(self, chapter: Chapter, work_title: str) -> ReviewQueueItem:
        """Queue a pending chapter for review."""
        return self.repo.enqueue(
            content_kind=ContentKind.CHAPTER,
            content_id=chapter.id,
            title=f"{work_title} - Chapter {chapter.chapter_number:g}",
            priority=CHAPTER_PRIORITY,
        )

    def get_item(self, queue_id: str) -> ReviewQueueItem | None:
        """Get a queue item by ID."""
        return self.repo.get_by_id(queue_id)

    def list_items(
        self,
        status: ApprovalStatus | None = ApprovalStatus.PENDING,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ReviewQueueItem]:
        """List items by priority (highest first), then submission time (oldest first)."""
        return self.repo.list_by_status(status=status, limit=limit, offset=offset)

    def pending_count(self) -> int:
        """Number of items awaiting review."""
        return self.repo.count_by_status(ApprovalStatus.PENDING)

    def stats(self, now: datetime | None = None) -> ReviewQueueStats:
        """Aggregate queue statistics."""
        return self.repo.stats(now)

    def approve(
        self,
        queue_id: str,
        reviewer_id: str,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> ReviewQueueItem:
        """Approve a pending item, making the work or chapter visible."""
        return self._decide(queue_id, ApprovalStatus.APPROVED, reviewer_id, notes, now)

    def reject(
        self,
        queue_id: str,
        reviewer_id: str,
        notes: str,
        now: datetime | None = None,
    ) -> ReviewQueueItem:
        """Reject a pending item. A reason is required."""
        if not notes or not notes.strip():
            raise ReviewStateError("A rejection reason is required")
        return self._decide(queue_id, ApprovalStatus.REJECTED, reviewer_id, notes.strip(), now)

    def _decide(
        self,
        queue_id: str,
        status: ApprovalStatus,
        reviewer_id: str,
        notes: str | None,
        now: datetime | None,
    ) -> ReviewQueueItem:
        item = self.repo.get_by_id(queue_id)
        if item is None:
            raise ValueError(f"Review queue item with id {queue_id} not found")
        if item.status != ApprovalStatus.PENDING:
            raise ReviewStateError(
                f"Review queue item {queue_id} was already {item.status.value}"
            )

        decided = self.repo.set_decision(
            queue_id, status, reviewer_id, notes=notes, reviewed_at=now
        )
        logger.info(
            f"{item.content_kind.value} '{item.title}' {status.value} by {reviewer_id}"
        )
        return decided
