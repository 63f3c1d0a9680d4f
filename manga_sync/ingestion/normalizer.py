"""
Catalog Normalizer Module
=========================

Converts heterogeneous source API payloads into canonical catalog
entries ready for duplicate detection.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from manga_sync.core.enums import WorkKind, WorkStatus

if TYPE_CHECKING:
    from manga_sync.ingestion.registry import SourceConfig

logger = logging.getLogger(__name__)


@dataclass
class ChapterEntry:
    """Canonical representation of one chapter from a source."""

    number: float
    title: str | None = None
    description: str | None = None
    pages: list[str] = field(default_factory=list)
    source_chapter_id: str | None = None


@dataclass
class CatalogEntry:
    """
    Canonical representation of one work from a source.

    Only lives for a single sync pass: it is either discarded as a
    duplicate or converted into a pending catalog row.
    """

    title: str
    source_id: str
    source_manga_id: str
    description: str | None = None
    author: str | None = None
    artist: str | None = None
    genres: set[str] = field(default_factory=set)
    status: WorkStatus = WorkStatus.ONGOING
    cover_image_url: str | None = None
    work_kind: WorkKind = WorkKind.MANGA
    chapters: list[ChapterEntry] = field(default_factory=list)


class Normalizer:
    """
    Normalizes source API payloads into CatalogEntry objects.

    Handles:
    - Payload envelopes (bare list, {"manga": [...]}, {"results": [...]})
    - Field name fallbacks between source dialects
    - Genre lists given as arrays or comma-separated strings
    - Publication status and work kind inference
    """

    # Substring -> status, checked in order
    STATUS_KEYWORDS: list[tuple[tuple[str, ...], WorkStatus]] = [
        (("ongoing", "continuing"), WorkStatus.ONGOING),
        (("completed", "finished"), WorkStatus.COMPLETED),
        (("hiatus", "pause"), WorkStatus.HIATUS),
        (("cancelled", "dropped"), WorkStatus.CANCELLED),
    ]

    KIND_KEYWORDS: list[tuple[tuple[str, ...], WorkKind]] = [
        (("manhwa", "korean"), WorkKind.MANHWA),
        (("manhua", "chinese"), WorkKind.MANHUA),
    ]

    def parse_response(self, payload: Any, source: SourceConfig) -> list[CatalogEntry]:
        """
        Parse a source catalog payload.

        Args:
            payload: Decoded JSON body returned by the source
            source: Source the payload came from

        Returns:
            Entries that carry both a title and a source-native id.
            Malformed items are logged and skipped.
        """
        entries: list[CatalogEntry] = []
        for index, item in enumerate(self.extract_items(payload)):
            try:
                entry = self.normalize_item(item, source)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed item {index} from '{source.name}': {e}")
                continue
            if entry is not None:
                entries.append(entry)
        return entries

    @staticmethod
    def extract_items(payload: Any) -> list[Any]:
        """Return the list of raw items inside a payload envelope."""
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            items = payload.get("manga") or payload.get("results") or []
            return items if isinstance(items, list) else []
        return []

    def normalize_item(self, item: dict[str, Any], source: SourceConfig) -> CatalogEntry | None:
        """
        Normalize a single raw item.

        Returns None when the item has no title or no source-native id,
        since such entries cannot be deduplicated or tracked.
        """
        if not isinstance(item, dict):
            raise TypeError(f"expected an object, got {type(item).__name__}")

        title = self._clean_string(item.get("title") or item.get("name"))
        native_id = self._clean_string(item.get("id") or item.get("slug"))
        if not title or not native_id:
            return None

        raw_chapters = item.get("chapters")
        return CatalogEntry(
            title=title,
            source_id=source.id,
            source_manga_id=native_id,
            description=self._clean_string(item.get("description") or item.get("summary")),
            author=self._clean_string(item.get("author")),
            artist=self._clean_string(item.get("artist")),
            genres=self.normalize_genres(item.get("genre", item.get("genres"))),
            status=self.normalize_status(item.get("status")),
            cover_image_url=self._clean_string(
                item.get("coverImage") or item.get("thumbnail") or item.get("image")
            ),
            work_kind=self.detect_work_kind(item.get("type") or source.name),
            chapters=self.parse_chapters(raw_chapters) if isinstance(raw_chapters, list) else [],
        )

    def parse_chapters(self, chapters: list[Any]) -> list[ChapterEntry]:
        """
        Parse raw chapter objects in catalog order.

        Chapters whose number is missing, unparseable or not positive
        are dropped.
        """
        parsed: list[ChapterEntry] = []
        for raw in chapters:
            if not isinstance(raw, dict):
                continue
            number = self.parse_chapter_number(raw.get("number") or raw.get("chapter"))
            if number is None or number <= 0:
                continue
            pages = raw.get("pages")
            parsed.append(
                ChapterEntry(
                    number=number,
                    title=self._clean_string(raw.get("title") or raw.get("name")),
                    description=self._clean_string(raw.get("description")),
                    pages=[str(p) for p in pages] if isinstance(pages, list) else [],
                    source_chapter_id=self._clean_string(raw.get("id") or raw.get("slug")),
                )
            )
        return parsed

    @staticmethod
    def parse_chapter_number(value: Any) -> float | None:
        """Parse a chapter number such as 10, "10.5" or "Chapter 7"."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        match = re.search(r"-?\d+(?:\.\d+)?", str(value))
        return float(match.group()) if match else None

    def normalize_genres(self, genres: list[Any] | str | None) -> set[str]:
        """
        Normalize genres given as a list or a comma-separated string.

        Args:
            genres: Raw genre value

        Returns:
            Set of trimmed, non-empty genre names
        """
        if genres is None:
            return set()
        if isinstance(genres, str):
            genre_list: list[Any] = genres.split(",")
        elif isinstance(genres, list):
            genre_list = genres
        else:
            return set()

        normalized = set()
        for genre in genre_list:
            cleaned = self._clean_string(genre)
            if cleaned:
                normalized.add(cleaned)
        return normalized

    def normalize_status(self, status: Any) -> WorkStatus:
        """Map a free-form status string to WorkStatus (default: ongoing)."""
        lowered = str(status).lower() if status else ""
        for keywords, value in self.STATUS_KEYWORDS:
            if any(k in lowered for k in keywords):
                return value
        return WorkStatus.ONGOING

    def detect_work_kind(self, hint: Any) -> WorkKind:
        """Infer the work kind from a type field or the source name."""
        lowered = str(hint).lower() if hint else ""
        for keywords, value in self.KIND_KEYWORDS:
            if any(k in lowered for k in keywords):
                return value
        return WorkKind.MANGA

    def _clean_string(self, value: Any) -> str | None:
        """Clean and normalize a string value."""
        if value is None:
            return None
        s = str(value).strip()
        s = re.sub(r"\s+", " ", s)
        return s if s else None
