"""
Duplicate Detector Module
=========================

Decides whether an incoming catalog entry is already known, using an
exact (source, source-native id) lookup first and a weighted
title/author/description similarity score otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from manga_sync.core.schema import Chapter, Work
from manga_sync.core.text import normalize_text
from manga_sync.db.repositories import ChapterRepository, MangaRepository
from manga_sync.ingestion.registry import DetectionConfig

if TYPE_CHECKING:
    from manga_sync.ingestion.normalizer import CatalogEntry

logger = logging.getLogger(__name__)

# Words ignored when building the candidate search
STOP_WORDS: frozenset[str] = frozenset(
    ["في", "من", "إلى", "على", "عن", "مع", "the", "and", "or", "of", "to", "a", "an"]
)
MAX_KEYWORDS = 5

TITLE_WEIGHT = 0.6
AUTHOR_WEIGHT = 0.3
DESCRIPTION_WEIGHT = 0.1

HIGH_TITLE_SIMILARITY = 0.8
AUTHOR_MATCH_SIMILARITY = 0.9
CHAPTER_TITLE_SIMILARITY = 0.9


@dataclass
class MatchedWork:
    """The stored work an entry was matched against."""

    id: str
    title: str
    author: str | None
    similarity: float


@dataclass
class DuplicateResult:
    """Result of checking a work for duplicates."""

    is_duplicate: bool
    confidence: float  # 0.0 - 1.0
    matched_work: MatchedWork | None = None
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class ChapterDuplicateResult:
    """Result of checking a chapter for duplicates."""

    is_duplicate: bool
    existing_chapter: Chapter | None = None


@dataclass
class _Similarity:
    total: float
    reasons: list[str]


class DuplicateDetector:
    """
    Detects works and chapters that already exist in the catalog.

    Uses Levenshtein-based string similarity on normalized text and a
    configurable confidence threshold.
    """

    def __init__(self, session: Session, config: DetectionConfig | None = None) -> None:
        """
        Initialize the detector.

        Args:
            session: SQLAlchemy database session
            config: Detection thresholds (defaults if omitted)
        """
        self.session = session
        self._config = replace(config) if config else DetectionConfig()
        self.works = MangaRepository(session)
        self.chapters = ChapterRepository(session)

    @classmethod
    def from_config(cls, session: Session, config: DetectionConfig) -> DuplicateDetector:
        """Create detector from configuration."""
        return cls(session=session, config=config)

    @property
    def config(self) -> DetectionConfig:
        """A copy of the current configuration."""
        return replace(self._config)

    def update_config(self, **changes: Any) -> None:
        """Change one or more thresholds, e.g. update_config(title_similarity=0.9)."""
        self._config = replace(self._config, **changes)

    # ------------------------------------------------------------------
    # Works
    # ------------------------------------------------------------------

    def check_work(
        self,
        title: str,
        author: str | None = None,
        description: str | None = None,
        source_id: str | None = None,
        source_manga_id: str | None = None,
    ) -> DuplicateResult:
        """
        Check whether a work already exists.

        Args:
            title: Title of the incoming work
            author: Optional author
            description: Optional description
            source_id: Source the work came from
            source_manga_id: Source-native id of the work

        Returns:
            DuplicateResult; matched_work is only set for duplicates
        """
        if source_id and source_manga_id:
            exact = self.works.get_by_source_ref(source_id, source_manga_id)
            if exact is not None:
                return DuplicateResult(
                    is_duplicate=True,
                    confidence=1.0,
                    matched_work=MatchedWork(
                        id=exact.id, title=exact.title, author=exact.author, similarity=1.0
                    ),
                    reasons=["exact source match"],
                )

        candidates = self._find_candidates(title, author)
        if not candidates:
            return DuplicateResult(
                is_duplicate=False, confidence=0.0, reasons=["no similar works found"]
            )

        best: MatchedWork | None = None
        best_score = 0.0
        reasons: list[str] = []
        for candidate in candidates:
            similarity = self._score(title, author, description, candidate)
            if similarity.total > best_score:
                best_score = similarity.total
                best = MatchedWork(
                    id=candidate.id,
                    title=candidate.title,
                    author=candidate.author,
                    similarity=similarity.total,
                )
                reasons = similarity.reasons

        is_duplicate = best_score >= self._config.title_similarity
        logger.debug(
            f"Best match for '{title}' among {len(candidates)} candidates: "
            f"{best.title if best else None} ({best_score:.2f})"
        )
        return DuplicateResult(
            is_duplicate=is_duplicate,
            confidence=best_score,
            matched_work=best if is_duplicate else None,
            reasons=reasons,
        )

    def check_entry(self, entry: CatalogEntry) -> DuplicateResult:
        """Check a canonical catalog entry."""
        return self.check_work(
            title=entry.title,
            author=entry.author,
            description=entry.description,
            source_id=entry.source_id,
            source_manga_id=entry.source_manga_id,
        )

    def check_many(
        self, entries: list[CatalogEntry]
    ) -> list[tuple[CatalogEntry, DuplicateResult]]:
        """Check several entries in order."""
        return [(entry, self.check_entry(entry)) for entry in entries]

    def _find_candidates(self, title: str, author: str | None) -> list[Work]:
        keywords = self.extract_keywords(title)
        if not keywords:
            return []
        return self.works.search_candidates(
            keywords,
            author=author if author and self._config.author_match else None,
            limit=self._config.candidate_limit,
        )

    def _score(
        self,
        title: str,
        author: str | None,
        description: str | None,
        candidate: Work,
    ) -> _Similarity:
        """
        Weighted similarity between an incoming work and a candidate.

        Author and description only count when both sides have them; the
        score is divided by the weights actually applied.
        """
        reasons: list[str] = []
        total = 0.0
        weight_sum = 0.0

        title_sim = self.string_similarity(title, candidate.title)
        total += title_sim * TITLE_WEIGHT
        weight_sum += TITLE_WEIGHT
        if title_sim > HIGH_TITLE_SIMILARITY:
            reasons.append(f"high title similarity ({round(title_sim * 100)}%)")

        if author and candidate.author:
            author_sim = self.string_similarity(author, candidate.author)
            total += author_sim * AUTHOR_WEIGHT
            weight_sum += AUTHOR_WEIGHT
            if author_sim > AUTHOR_MATCH_SIMILARITY:
                reasons.append("author match")

        if description and candidate.description:
            desc_sim = self.string_similarity(description, candidate.description)
            total += desc_sim * DESCRIPTION_WEIGHT
            weight_sum += DESCRIPTION_WEIGHT
            if desc_sim > self._config.description_similarity:
                reasons.append(f"description similarity ({round(desc_sim * 100)}%)")

        return _Similarity(total=total / weight_sum if weight_sum > 0 else 0.0, reasons=reasons)

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    def check_chapter(
        self, manga_id: str, chapter_number: float, title: str | None = None
    ) -> ChapterDuplicateResult:
        """
        Check whether a chapter of a work already exists.

        Chapters within +/- chapter_number_tolerance are candidates. An
        exact number match is always a duplicate; otherwise a candidate
        whose title is more than 90% similar counts when fuzzy matching
        is enabled.
        """
        tolerance = self._config.chapter_number_tolerance
        existing = self.chapters.find_in_range(
            manga_id, chapter_number - tolerance, chapter_number + tolerance
        )
        if not existing:
            return ChapterDuplicateResult(is_duplicate=False)

        for chapter in existing:
            if chapter.chapter_number == chapter_number:
                return ChapterDuplicateResult(is_duplicate=True, existing_chapter=chapter)

        if title and self._config.fuzzy_matching:
            for chapter in existing:
                if (
                    chapter.title
                    and self.string_similarity(title, chapter.title) > CHAPTER_TITLE_SIMILARITY
                ):
                    return ChapterDuplicateResult(is_duplicate=True, existing_chapter=chapter)

        return ChapterDuplicateResult(is_duplicate=False)

    # ------------------------------------------------------------------
    # Text helpers
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_text(value: str) -> str:
        """Normalize text for comparison; see manga_sync.core.text."""
        return normalize_text(value)

    def extract_keywords(self, text: str) -> list[str]:
        """Up to five significant words of a title."""
        words = self.normalize_text(text).split(" ")
        keywords = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
        return keywords[:MAX_KEYWORDS]

    def string_similarity(self, s1: str, s2: str) -> float:
        """
        Calculate string similarity using Levenshtein distance.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Similarity score between 0.0 and 1.0
        """
        if not s1 or not s2:
            return 0.0

        clean1 = self.normalize_text(s1)
        clean2 = self.normalize_text(s2)
        if clean1 == clean2:
            return 1.0

        max_len = max(len(clean1), len(clean2))
        distance = self._levenshtein_distance(clean1, clean2)
        return 1.0 - (distance / max_len)

    @staticmethod
    def _levenshtein_distance(s1: str, s2: str) -> int:
        """
        Calculate the Levenshtein distance between two strings.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Edit distance
        """
        if len(s1) < len(s2):
            s1, s2 = s2, s1

        if len(s2) == 0:
            return len(s1)

        previous_row = list(range(len(s2) + 1))
        for i, c1 in enumerate(s1):
            current_row = [i + 1]
            for j, c2 in enumerate(s2):
                insertions = previous_row[j + 1] + 1
                deletions = current_row[j] + 1
                substitutions = previous_row[j] + (c1 != c2)
                current_row.append(min(insertions, deletions, substitutions))
            previous_row = current_row

        return previous_row[-1]
