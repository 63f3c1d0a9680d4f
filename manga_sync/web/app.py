"""FastAPI application factory for manga-sync."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from manga_sync import __version__
from manga_sync.db.engine import init_db
from manga_sync.ingestion.scheduler import SyncScheduler, create_default_scheduler
from manga_sync.services.admin_service import AdminService

logger = logging.getLogger(__name__)

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def create_app(scheduler: SyncScheduler | None = None, start_scheduler: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        scheduler: Scheduler to serve; built from the default database and
                   registry when omitted
        start_scheduler: Run the scheduler's tick loop for the app's lifetime
    """
    if scheduler is None:
        # Initialize database tables
        init_db()
        scheduler = create_default_scheduler()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if start_scheduler:
            await scheduler.start()
        try:
            yield
        finally:
            if start_scheduler:
                await scheduler.stop()

    app = FastAPI(
        title="Manga Sync",
        description="Catalog ingestion, duplicate detection and review queue for a manga library",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.scheduler = scheduler
    app.state.admin = AdminService(scheduler)

    # Include routers (import here to avoid circular imports)
    from manga_sync.web.routes import admin

    app.include_router(admin.router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
