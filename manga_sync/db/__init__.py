"""Database initialization and persistence layer."""

from manga_sync.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
    run_migrations,
)
from manga_sync.db.models import (
    Base,
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
from manga_sync.db.repositories import (
    ChapterRepository,
    MangaRepository,
    NotificationRepository,
    ProfileRepository,
    ReviewQueueRepository,
    SettingsRepository,
    SourceRepository,
    SyncJobRepository,
    SyncLogRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    "run_migrations",
    # Models
    "Base",
    "SourceDB",
    "MangaDB",
    "ChapterDB",
    "ReviewQueueDB",
    "SyncJobDB",
    "SystemSettingDB",
    "SyncLogDB",
    "NotificationDB",
    "ProfileDB",
    # Repositories
    "MangaRepository",
    "ChapterRepository",
    "SourceRepository",
    "ReviewQueueRepository",
    "SyncJobRepository",
    "SettingsRepository",
    "SyncLogRepository",
    "NotificationRepository",
    "ProfileRepository",
]
