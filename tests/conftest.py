"""Shared fixtures: a temporary SQLite database and helpers for fake sources."""

import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from manga_sync.db.models import Base


class FakeClock:
    """Settable clock for scheduler and schedule tests."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def test_engine(temp_db_path):
    """Create a test database engine."""
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test database."""
    return sessionmaker(bind=test_engine, autoflush=False)


@pytest.fixture
def test_session(session_factory):
    """Create a database session for testing."""
    session = session_factory()
    yield session
    session.close()


def catalog_transport(
    catalogs: dict[str, Any], status_codes: dict[str, int] | None = None
) -> httpx.MockTransport:
    """
    Mock transport serving JSON catalogs by URL.

    Args:
        catalogs: URL -> JSON payload
        status_codes: URL -> status code, for failing endpoints
    """
    status_codes = status_codes or {}

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in status_codes:
            return httpx.Response(status_codes[url])
        if url not in catalogs:
            return httpx.Response(404)
        return httpx.Response(200, json=catalogs[url])

    return httpx.MockTransport(handler)


def manga_item(
    native_id: str,
    title: str,
    author: str | None = None,
    chapters: range | list[float] = (),
    **extra: Any,
) -> dict[str, Any]:
    """Build a source API item in the common dialect."""
    item: dict[str, Any] = {
        "id": native_id,
        "title": title,
        "chapters": [{"number": n, "title": f"Chapter {n}"} for n in chapters],
        **extra,
    }
    if author is not None:
        item["author"] = author
    return item


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
