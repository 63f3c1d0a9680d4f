"""
Reviewer Notifications Module
=============================

Tells operators with review rights that new content is waiting in the
approval queue. Delivery goes through a NotificationSink; the default
sink stores one notifications row per recipient.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from manga_sync.db.repositories import NotificationRepository, ProfileRepository
from manga_sync.ingestion.registry import NotificationConfig

if TYPE_CHECKING:
    from manga_sync.ingestion.events import EventLog

logger = logging.getLogger(__name__)

REVIEW_NOTIFICATION_TYPE = "content_review"


class NotificationSink(ABC):
    """Destination for operator notifications."""

    @abstractmethod
    def send(
        self,
        recipient_ids: list[str],
        title: str,
        message: str,
        payload: dict[str, Any],
    ) -> int:
        """
        Deliver a notification.

        Returns:
            Number of recipients the notification was delivered to
        """


class DatabaseNotificationSink(NotificationSink):
    """Stores notifications in the notifications table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def send(
        self,
        recipient_ids: list[str],
        title: str,
        message: str,
        payload: dict[str, Any],
    ) -> int:
        with self.session_factory() as session:
            sent = NotificationRepository(session).add_many(
                recipient_ids,
                title=title,
                message=message,
                data=payload,
                notification_type=REVIEW_NOTIFICATION_TYPE,
            )
            session.commit()
        return sent


class ReviewerNotifier:
    """Sends the aggregate "content awaiting review" notification."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sink: NotificationSink | None = None,
        config: NotificationConfig | None = None,
        events: EventLog | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.sink = sink or DatabaseNotificationSink(session_factory)
        self.config = config or NotificationConfig()
        self.events = events

    def reviewer_ids(self) -> list[str]:
        """Users whose role grants access to the review queue."""
        with self.session_factory() as session:
            return ProfileRepository(session).user_ids_with_roles(self.config.reviewer_roles)

    def notify_pending(self, pending_count: int) -> int:
        """
        Notify all reviewers that `pending_count` items await review.

        Failures are logged and never raised.

        Returns:
            Number of reviewers notified
        """
        if pending_count <= 0:
            return 0

        try:
            recipients = self.reviewer_ids()
        except SQLAlchemyError as e:
            self._log_warn("Failed to load reviewers for notification", {"error": str(e)})
            return 0

        if not recipients:
            logger.info("No reviewers to notify about pending content")
            return 0

        try:
            sent = self.sink.send(
                recipients,
                title="New content awaiting review",
                message=f"{pending_count} new items are waiting for review and approval",
                payload={
                    "pending_count": pending_count,
                    "action_required": True,
                    "review_url": self.config.review_url,
                },
            )
        except Exception as e:
            logger.exception("Failed to send review notifications")
            if self.events is not None:
                self.events.error("Failed to send review notifications", {"error": str(e)})
            return 0

        if self.events is not None:
            self.events.info(
                f"Review notifications sent to {sent} reviewers",
                {"pending_count": pending_count},
                "review",
            )
        return sent

    def _log_warn(self, message: str, details: dict[str, Any]) -> None:
        if self.events is not None:
            self.events.warn(message, details, "review")
        else:
            logger.warning(f"{message}: {details}")
