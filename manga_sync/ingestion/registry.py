"""
Source Registry Module
======================

Manages source configurations loaded from YAML files or the
manga_sources table. Sources define which catalog APIs are polled
and with which credentials and rate limits.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from manga_sync.core.enums import FetchKind
from manga_sync.core.schema import Source, SourceSettings

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


@dataclass
class SourceConfig:
    """Configuration for a single catalog source."""

    id: str
    name: str
    base_url: str
    fetch_kind: FetchKind = FetchKind.API
    active: bool = True
    last_sync_at: datetime | None = None
    api_key: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    rate_limit: float | None = None  # requests per minute
    selectors: dict[str, str] = field(default_factory=dict)
    catalog_path: str = "/api/manga"

    def __post_init__(self) -> None:
        if self.rate_limit is not None and self.rate_limit <= 0:
            raise ValueError(f"Source '{self.name}': rate_limit must be greater than 0")
        self.base_url = self.base_url.rstrip("/")

    @property
    def catalog_url(self) -> str:
        """Full URL of the catalog endpoint."""
        path = self.catalog_path if self.catalog_path.startswith("/") else f"/{self.catalog_path}"
        return f"{self.base_url}{path}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceConfig:
        """Create from dictionary."""
        rate_limit = data.get("rate_limit")
        return cls(
            id=str(data.get("id") or data["name"]),
            name=data["name"],
            base_url=data["base_url"],
            fetch_kind=FetchKind(data.get("fetch_kind", "api")),
            active=data.get("active", True),
            api_key=data.get("api_key"),
            headers=dict(data.get("headers") or {}),
            rate_limit=float(rate_limit) if rate_limit is not None else None,
            selectors=dict(data.get("selectors") or {}),
            catalog_path=data.get("catalog_path", "/api/manga"),
        )

    @classmethod
    def from_source(cls, source: Source) -> SourceConfig:
        """Create from a stored Source."""
        return cls(
            id=source.id,
            name=source.name,
            base_url=source.base_url,
            fetch_kind=source.fetch_kind,
            active=source.is_active,
            last_sync_at=source.last_sync_at,
            api_key=source.settings.api_key,
            headers=dict(source.settings.headers),
            rate_limit=source.settings.rate_limit,
            selectors=dict(source.settings.selectors),
            catalog_path=source.settings.catalog_path,
        )

    def to_source(self) -> Source:
        """Convert to the Source boundary model."""
        return Source(
            id=self.id,
            name=self.name,
            base_url=self.base_url,
            fetch_kind=self.fetch_kind,
            is_active=self.active,
            last_sync_at=self.last_sync_at,
            settings=SourceSettings(
                api_key=self.api_key,
                headers=self.headers,
                rate_limit=self.rate_limit,
                selectors=self.selectors,
                catalog_path=self.catalog_path,
            ),
        )


@dataclass
class DetectionConfig:
    """Thresholds for duplicate detection."""

    title_similarity: float = 0.85
    description_similarity: float = 0.7
    chapter_number_tolerance: float = 0.1
    author_match: bool = True
    fuzzy_matching: bool = True
    candidate_limit: int = 20

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DetectionConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            title_similarity=float(data.get("title_similarity", 0.85)),
            description_similarity=float(data.get("description_similarity", 0.7)),
            chapter_number_tolerance=float(data.get("chapter_number_tolerance", 0.1)),
            author_match=bool(data.get("author_match", True)),
            fuzzy_matching=bool(data.get("fuzzy_matching", True)),
            candidate_limit=int(data.get("candidate_limit", 20)),
        )


@dataclass
class SchedulerConfig:
    """Timing of the scheduler loop (seconds)."""

    tick_interval: float = 30.0
    sweep_interval: float = 60.0
    stale_job_timeout: float = 30 * 60.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SchedulerConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            tick_interval=float(data.get("tick_interval", 30)),
            sweep_interval=float(data.get("sweep_interval", 60)),
            stale_job_timeout=float(data.get("stale_job_timeout_minutes", 30)) * 60.0,
        )


@dataclass
class NotificationConfig:
    """Who receives review notifications."""

    reviewer_roles: list[str] = field(
        default_factory=lambda: ["admin", "owner", "site_admin"]
    )
    review_url: str = "/admin/review-queue"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> NotificationConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        default = cls()
        return cls(
            reviewer_roles=list(data.get("reviewer_roles", default.reviewer_roles)),
            review_url=data.get("review_url", default.review_url),
        )


@dataclass
class GlobalConfig:
    """Global configuration settings."""

    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: int = 30
    default_source_delay: float = 5.0  # seconds between sources without a rate limit
    max_retries: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
            request_timeout=int(data.get("request_timeout", 30)),
            default_source_delay=float(data.get("default_source_delay", 5.0)),
            max_retries=int(data.get("max_retries", 1)),
        )


class SourceRegistry:
    """
    Registry for managing catalog source configurations.

    Sources are kept in registry order, which is the order a sync pass
    visits them. All access goes through one lock so the registry can be
    shared between the web app and the scheduler.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceConfig] = {}
        self._lock = threading.Lock()
        self._global_config: GlobalConfig = GlobalConfig()
        self._detection: DetectionConfig = DetectionConfig()
        self._scheduler: SchedulerConfig = SchedulerConfig()
        self._notifications: NotificationConfig = NotificationConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def detection(self) -> DetectionConfig:
        """Get duplicate detection configuration."""
        return self._detection

    @property
    def scheduler(self) -> SchedulerConfig:
        """Get scheduler timing configuration."""
        return self._scheduler

    @property
    def notifications(self) -> NotificationConfig:
        """Get notification configuration."""
        return self._notifications

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the sources.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._detection = DetectionConfig.from_dict(data.get("duplicate_detection"))
        self._scheduler = SchedulerConfig.from_dict(data.get("scheduler"))
        self._notifications = NotificationConfig.from_dict(data.get("notifications"))

        sources = [SourceConfig.from_dict(s) for s in data.get("sources") or []]
        with self._lock:
            self._sources = {s.id: s for s in sources}

    def load_from_database(self, session: Session) -> int:
        """
        Register the sources stored in the manga_sources table.

        Stored sources replace registered ones with the same id and are
        appended otherwise; sources only present in YAML are kept.

        Returns:
            Number of sources loaded
        """
        from manga_sync.db.repositories import SourceRepository

        sources = [SourceConfig.from_source(s) for s in SourceRepository(session).list_all()]
        with self._lock:
            for source in sources:
                self._sources[source.id] = source
        return len(sources)

    def get_source(self, source_id: str) -> SourceConfig | None:
        """
        Get a source configuration by id.

        Returns:
            A copy of the SourceConfig if found, None otherwise
        """
        with self._lock:
            source = self._sources.get(source_id)
            return replace(source) if source else None

    def list_sources(self) -> list[SourceConfig]:
        """Get all registered sources in registry order."""
        with self._lock:
            return [replace(s) for s in self._sources.values()]

    def list_active_sources(self, source_ids: list[str] | None = None) -> list[SourceConfig]:
        """
        Get active sources in registry order.

        Args:
            source_ids: Optional subset of ids to restrict to

        Returns:
            Active source configurations
        """
        wanted = set(source_ids) if source_ids else None
        with self._lock:
            return [
                replace(s)
                for s in self._sources.values()
                if s.active and (wanted is None or s.id in wanted)
            ]

    def add(self, source: SourceConfig) -> None:
        """Register a new source at the end of the registry."""
        with self._lock:
            if source.id in self._sources:
                raise ValueError(f"Source '{source.id}' is already registered")
            self._sources[source.id] = source

    def update(self, source: SourceConfig) -> bool:
        """
        Replace a registered source, keeping its registry position.

        Returns:
            True if the source was found and replaced, False otherwise
        """
        with self._lock:
            if source.id not in self._sources:
                return False
            self._sources[source.id] = source
            return True

    def remove(self, source_id: str) -> bool:
        """Unregister a source."""
        with self._lock:
            return self._sources.pop(source_id, None) is not None

    def mark_synced(self, source_id: str, when: datetime) -> bool:
        """Record the last sync time of a source."""
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return False
            source.last_sync_at = when
            return True

    def enable_source(self, source_id: str) -> bool:
        """
        Enable a source.

        Returns:
            True if source was found and enabled, False otherwise
        """
        return self._set_active(source_id, True)

    def disable_source(self, source_id: str) -> bool:
        """
        Disable a source.

        Returns:
            True if source was found and disabled, False otherwise
        """
        return self._set_active(source_id, False)

    def _set_active(self, source_id: str, active: bool) -> bool:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return False
            source.active = active
            return True


# Global registry instance
_default_registry: SourceRegistry | None = None


def get_default_registry() -> SourceRegistry:
    """
    Get the default source registry instance.

    Loads configuration from the path specified in SOURCES_CONFIG_PATH
    environment variable, or falls back to config/sources.yaml.

    Returns:
        The global SourceRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = SourceRegistry()

        config_path = os.environ.get("SOURCES_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            # Default to config/sources.yaml relative to project root
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "sources.yaml"

        if path.exists():
            _default_registry.load_config(path)

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
