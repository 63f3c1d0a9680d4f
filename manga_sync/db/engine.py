"""Database engine, sessions and schema setup for the sync subsystem.

SQLite connections run in WAL mode with a busy timeout, since the web app,
the CLI and the arq worker may share one database file.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".manga_sync" / "manga_sync.db"
SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the database URL.

    Precedence: explicit `db_path`, then DATABASE_URL (a full URL or a
    file path), then ~/.manga_sync/manga_sync.db.
    """
    if db_path is None:
        configured = os.environ.get("DATABASE_URL")
        if configured and "://" in configured:
            return configured
        db_path = configured or DEFAULT_DB_PATH

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _configure_sqlite(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections are shared across threads."""
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _configure_sqlite)
    return engine


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker[Session]:
    """Process-wide session factory bound to get_engine()."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(db_path), autoflush=False)
    return _session_factory


def reset_engine() -> None:
    """Dispose of the process-wide engine so the next call re-reads DATABASE_URL."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_session() as session:
            SourceRepository(session).list_all()
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create any missing tables. Deployments should prefer run_migrations()."""
    from manga_sync.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))


def run_migrations(db_path: Path | str | None = None) -> None:
    """Upgrade the database to the latest alembic revision."""
    alembic_ini = Path(__file__).resolve().parents[2] / "alembic.ini"
    if not alembic_ini.exists():
        raise FileNotFoundError(f"Alembic config not found: {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(Path(__file__).parent / "migrations"))
    config.set_main_option("sqlalchemy.url", get_database_url(db_path))
    command.upgrade(config, "head")
