"""SQLAlchemy ORM models for manga-sync.

These models define the database tables used by the sync subsystem:
- SourceDB (external content sources)
- MangaDB, ChapterDB (catalog rows, inserted as pending by the pipeline)
- ReviewQueueDB (approval queue)
- SyncJobDB, SystemSettingDB (job lifecycle, schedule settings)
- SyncLogDB, NotificationDB, ProfileDB (observability and notification)
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (naive, as stored by SQLite)."""
    return datetime.now(UTC).replace(tzinfo=None)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Sources
# ============================================================================


class SourceDB(Base):
    """
    Database model for external content sources.

    `config_json` holds api_key, headers, rate_limit, selectors and
    catalog_path.
    """

    __tablename__ = "manga_sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_url: Mapped[str] = mapped_column(String(500), nullable=False)
    fetch_kind: Mapped[str] = mapped_column(String(20), default="api")  # api/scraping
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    config_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<SourceDB(id={self.id}, name='{self.name}')>"


# ============================================================================
# Catalog
# ============================================================================


class MangaDB(Base):
    """
    Database model for catalog works.

    Works added by the sync pipeline start with approval_status 'pending'
    and only become visible once a reviewer approves them.
    """

    __tablename__ = "manga"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    normalized_title: Mapped[str] = mapped_column(String(500), default="", index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    genres_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    status: Mapped[str] = mapped_column(String(20), default="ongoing")
    cover_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    manga_type: Mapped[str] = mapped_column(String(20), default="manga")
    source_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    source_manga_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    auto_added: Mapped[bool] = mapped_column(Boolean, default=False)
    approval_status: Mapped[str] = mapped_column(String(20), default="approved", index=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    # Relationships
    chapters: Mapped[list["ChapterDB"]] = relationship("ChapterDB", back_populates="manga")

    def __repr__(self) -> str:
        return f"<MangaDB(id={self.id}, title='{self.title}')>"


class ChapterDB(Base):
    """Database model for chapters of a work."""

    __tablename__ = "chapters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    manga_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("manga.id"), nullable=False, index=True
    )
    chapter_number: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pages_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    source_chapter_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    auto_added: Mapped[bool] = mapped_column(Boolean, default=False)
    approval_status: Mapped[str] = mapped_column(String(20), default="approved", index=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    # Relationships
    manga: Mapped["MangaDB"] = relationship("MangaDB", back_populates="chapters")

    def __repr__(self) -> str:
        return f"<ChapterDB(id={self.id}, manga_id={self.manga_id}, number={self.chapter_number})>"


# ============================================================================
# Approval Queue
# ============================================================================


class ReviewQueueDB(Base):
    """
    Database model for the content review queue.

    One row per pending/approved/rejected work or chapter submission.
    Rows are never deleted automatically.
    """

    __tablename__ = "content_review_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    content_kind: Mapped[str] = mapped_column(String(20), nullable=False)  # manga/chapter
    content_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), default="")
    priority: Mapped[int] = mapped_column(Integer, default=0)
    submitted_by: Mapped[str] = mapped_column(String(100), default="system")
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    reviewer_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ReviewQueueDB(id={self.id}, kind='{self.content_kind}', status='{self.status}')>"


# ============================================================================
# Sync Jobs and Settings
# ============================================================================


class SyncJobDB(Base):
    """Database model for sync jobs."""

    __tablename__ = "sync_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    trigger: Mapped[str] = mapped_column(String(20), default="manual")  # manual/scheduled
    source_ids_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    progress_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    result_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON object

    def __repr__(self) -> str:
        return f"<SyncJobDB(id={self.id}, status='{self.status}')>"


class SystemSettingDB(Base):
    """Key/value settings store (JSON values)."""

    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<SystemSettingDB(key='{self.key}')>"


# ============================================================================
# Observability and Notifications
# ============================================================================


class SyncLogDB(Base):
    """Structured sync log entries."""

    __tablename__ = "sync_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    level: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(50), default="system")
    source_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)

    def __repr__(self) -> str:
        return f"<SyncLogDB(level='{self.level}', source='{self.source}')>"


class NotificationDB(Base):
    """Notifications addressed to operator accounts."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), default="content_review")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<NotificationDB(user_id={self.user_id}, title='{self.title}')>"


class ProfileDB(Base):
    """
    Operator directory.

    Accounts are managed elsewhere; the sync subsystem only reads roles to
    address review notifications.
    """

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    display_name: Mapped[str] = mapped_column(String(255), default="")
    role: Mapped[str] = mapped_column(String(30), default="user", index=True)

    def __repr__(self) -> str:
        return f"<ProfileDB(user_id={self.user_id}, role='{self.role}')>"
