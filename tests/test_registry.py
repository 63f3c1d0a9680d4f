"""Tests for the source registry module."""

import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pytest
import yaml

from manga_sync.core.enums import FetchKind
from manga_sync.core.schema import Source, SourceSettings
from manga_sync.db.repositories import SourceRepository
from manga_sync.ingestion.registry import (
    DetectionConfig,
    GlobalConfig,
    NotificationConfig,
    SchedulerConfig,
    SourceConfig,
    SourceRegistry,
    get_default_registry,
    reset_default_registry,
)


def _write_config(data: dict, tmpdir: str) -> Path:
    path = Path(tmpdir) / "sources.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


class TestSourceConfig:
    """Tests for SourceConfig."""

    def test_from_dict_minimal(self) -> None:
        """Test creating with minimal data."""
        config = SourceConfig.from_dict({"name": "mangadex", "base_url": "https://api.example.com/"})
        assert config.id == "mangadex"
        assert config.base_url == "https://api.example.com"
        assert config.fetch_kind == FetchKind.API
        assert config.active is True
        assert config.rate_limit is None
        assert config.catalog_url == "https://api.example.com/api/manga"

    def test_from_dict_full(self) -> None:
        """Test creating with full data."""
        config = SourceConfig.from_dict(
            {
                "id": "src-1",
                "name": "Manga API",
                "base_url": "https://api.example.com",
                "fetch_kind": "scraping",
                "active": False,
                "api_key": "secret",
                "headers": {"Accept": "application/json"},
                "rate_limit": 30,
                "selectors": {"title": "h1"},
                "catalog_path": "v2/catalog",
            }
        )
        assert config.id == "src-1"
        assert config.fetch_kind == FetchKind.SCRAPING
        assert config.active is False
        assert config.api_key == "secret"
        assert config.headers == {"Accept": "application/json"}
        assert config.rate_limit == 30.0
        assert config.selectors == {"title": "h1"}
        assert config.catalog_url == "https://api.example.com/v2/catalog"

    def test_rate_limit_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="rate_limit"):
            SourceConfig(id="x", name="x", base_url="https://x.example.com", rate_limit=0)

    def test_source_round_trip(self) -> None:
        """Test conversion to and from the Source model."""
        source = Source(
            id="src-1",
            name="Manga API",
            base_url="https://api.example.com",
            is_active=False,
            settings=SourceSettings(api_key="k", rate_limit=12),
        )
        config = SourceConfig.from_source(source)
        assert config.active is False
        assert config.api_key == "k"
        assert config.rate_limit == 12
        assert config.to_source() == source


class TestSectionConfigs:
    """Tests for the non-source configuration sections."""

    def test_defaults_from_none(self) -> None:
        assert GlobalConfig.from_dict(None).default_source_delay == 5.0
        assert DetectionConfig.from_dict(None).title_similarity == 0.85
        assert SchedulerConfig.from_dict(None).stale_job_timeout == 1800.0
        assert NotificationConfig.from_dict(None).reviewer_roles == ["admin", "owner", "site_admin"]

    def test_scheduler_timeout_in_minutes(self) -> None:
        config = SchedulerConfig.from_dict({"stale_job_timeout_minutes": 10, "tick_interval": 5})
        assert config.stale_job_timeout == 600.0
        assert config.tick_interval == 5.0


class TestSourceRegistry:
    """Tests for SourceRegistry."""

    @pytest.fixture
    def config_data(self) -> dict:
        return {
            "global": {"request_timeout": 10, "default_source_delay": 0},
            "duplicate_detection": {"title_similarity": 0.9},
            "sources": [
                {"id": "b-source", "name": "B Source", "base_url": "https://b.example.com"},
                {
                    "id": "a-source",
                    "name": "A Source",
                    "base_url": "https://a.example.com",
                    "active": False,
                },
                {"id": "c-source", "name": "C Source", "base_url": "https://c.example.com"},
            ],
        }

    @pytest.fixture
    def registry(self, config_data) -> SourceRegistry:
        with tempfile.TemporaryDirectory() as tmpdir:
            registry = SourceRegistry()
            registry.load_config(_write_config(config_data, tmpdir))
            yield registry

    def test_load_config(self, registry) -> None:
        """Test loading sources and settings from YAML."""
        assert registry.global_config.request_timeout == 10
        assert registry.global_config.default_source_delay == 0
        assert registry.detection.title_similarity == 0.9
        assert [s.id for s in registry.list_sources()] == ["b-source", "a-source", "c-source"]

    def test_missing_file(self) -> None:
        with pytest.raises(FileNotFoundError):
            SourceRegistry().load_config("/nonexistent/sources.yaml")

    def test_list_active_in_order(self, registry) -> None:
        assert [s.id for s in registry.list_active_sources()] == ["b-source", "c-source"]

    def test_list_active_subset(self, registry) -> None:
        active = registry.list_active_sources(["c-source", "a-source"])
        assert [s.id for s in active] == ["c-source"]

    def test_get_source_returns_copy(self, registry) -> None:
        """Test that callers cannot mutate registered sources."""
        source = registry.get_source("b-source")
        source.active = False
        assert registry.get_source("b-source").active is True
        assert registry.get_source("missing") is None

    def test_add_and_duplicate(self, registry) -> None:
        registry.add(SourceConfig(id="d-source", name="D", base_url="https://d.example.com"))
        assert registry.list_sources()[-1].id == "d-source"
        with pytest.raises(ValueError, match="already registered"):
            registry.add(SourceConfig(id="d-source", name="D", base_url="https://d.example.com"))

    def test_update_keeps_position(self, registry) -> None:
        updated = SourceConfig(id="a-source", name="A Renamed", base_url="https://a.example.com")
        assert registry.update(updated) is True
        assert [s.name for s in registry.list_sources()][1] == "A Renamed"
        assert registry.update(SourceConfig(id="zzz", name="Z", base_url="https://z")) is False

    def test_remove(self, registry) -> None:
        assert registry.remove("a-source") is True
        assert registry.remove("a-source") is False

    def test_enable_disable(self, registry) -> None:
        assert registry.enable_source("a-source") is True
        assert registry.get_source("a-source").active is True
        assert registry.disable_source("b-source") is True
        assert registry.get_source("b-source").active is False
        assert registry.enable_source("missing") is False

    def test_mark_synced(self, registry) -> None:
        when = datetime(2026, 10, 19, 2, 0, tzinfo=UTC)
        assert registry.mark_synced("b-source", when) is True
        assert registry.get_source("b-source").last_sync_at == when
        assert registry.mark_synced("missing", when) is False

    def test_load_from_database_merges(self, registry, test_session) -> None:
        """Test that stored sources replace same-id entries and are appended otherwise."""
        repo = SourceRepository(test_session)
        repo.create(Source(id="c-source", name="C Stored", base_url="https://c2.example.com"))
        repo.create(Source(id="e-source", name="E Stored", base_url="https://e.example.com"))
        test_session.commit()

        loaded = registry.load_from_database(test_session)

        assert loaded == 2
        sources = registry.list_sources()
        assert [s.id for s in sources] == ["b-source", "a-source", "c-source", "e-source"]
        assert sources[2].name == "C Stored"


class TestDefaultRegistry:
    """Tests for the process-wide registry."""

    def test_uses_env_path(self, monkeypatch) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write_config(
                {"sources": [{"id": "env", "name": "Env", "base_url": "https://env.example.com"}]},
                tmpdir,
            )
            monkeypatch.setenv("SOURCES_CONFIG_PATH", str(path))
            reset_default_registry()
            try:
                registry = get_default_registry()
                assert [s.id for s in registry.list_sources()] == ["env"]
                assert get_default_registry() is registry
            finally:
                reset_default_registry()
