"""Tests for the catalog normalizer module."""

import pytest

from manga_sync.core.enums import WorkKind, WorkStatus
from manga_sync.ingestion.normalizer import Normalizer
from manga_sync.ingestion.registry import SourceConfig


@pytest.fixture
def normalizer():
    return Normalizer()


@pytest.fixture
def source():
    return SourceConfig(id="src-1", name="Manga API", base_url="https://api.example.com")


class TestExtractItems:
    """Tests for payload envelope handling."""

    def test_bare_list(self, normalizer) -> None:
        """Test a payload that is a list of items."""
        assert normalizer.extract_items([{"id": 1}]) == [{"id": 1}]

    def test_manga_envelope(self, normalizer) -> None:
        """Test the {"manga": [...]} envelope."""
        assert normalizer.extract_items({"manga": [{"id": 1}]}) == [{"id": 1}]

    def test_results_envelope(self, normalizer) -> None:
        """Test the {"results": [...]} envelope."""
        assert normalizer.extract_items({"results": [{"id": 2}]}) == [{"id": 2}]

    def test_unknown_shapes(self, normalizer) -> None:
        """Test payloads without a recognizable list."""
        assert normalizer.extract_items({"data": [{"id": 1}]}) == []
        assert normalizer.extract_items({"manga": "not a list"}) == []
        assert normalizer.extract_items("text") == []
        assert normalizer.extract_items(None) == []


class TestNormalizeItem:
    """Tests for single item normalization."""

    def test_common_dialect(self, normalizer, source) -> None:
        """Test an item using the primary field names."""
        entry = normalizer.normalize_item(
            {
                "id": "solo-leveling",
                "title": "  Solo   Leveling ",
                "description": "A hunter levels up",
                "author": "Chugong",
                "artist": "DUBU",
                "genre": ["Action", " Fantasy ", ""],
                "status": "Completed",
                "coverImage": "https://cdn.example.com/solo.jpg",
                "type": "Manhwa",
                "chapters": [{"number": 1, "title": "Chapter 1", "pages": ["p1", "p2"]}],
            },
            source,
        )

        assert entry is not None
        assert entry.title == "Solo Leveling"
        assert entry.source_id == "src-1"
        assert entry.source_manga_id == "solo-leveling"
        assert entry.author == "Chugong"
        assert entry.artist == "DUBU"
        assert entry.genres == {"Action", "Fantasy"}
        assert entry.status == WorkStatus.COMPLETED
        assert entry.cover_image_url == "https://cdn.example.com/solo.jpg"
        assert entry.work_kind == WorkKind.MANHWA
        assert len(entry.chapters) == 1
        assert entry.chapters[0].number == 1.0
        assert entry.chapters[0].pages == ["p1", "p2"]

    def test_fallback_fields(self, normalizer, source) -> None:
        """Test the alternative field names of other source dialects."""
        entry = normalizer.normalize_item(
            {
                "slug": "tower-of-god",
                "name": "Tower of God",
                "summary": "Bam climbs the tower",
                "genres": "Action, Adventure,  ",
                "thumbnail": "https://cdn.example.com/tog.jpg",
            },
            source,
        )

        assert entry is not None
        assert entry.title == "Tower of God"
        assert entry.source_manga_id == "tower-of-god"
        assert entry.description == "Bam climbs the tower"
        assert entry.genres == {"Action", "Adventure"}
        assert entry.cover_image_url == "https://cdn.example.com/tog.jpg"

    def test_numeric_id_is_stringified(self, normalizer, source) -> None:
        """Test that numeric source ids become strings."""
        entry = normalizer.normalize_item({"id": 42, "title": "Berserk"}, source)
        assert entry is not None
        assert entry.source_manga_id == "42"

    def test_missing_title_or_id_is_dropped(self, normalizer, source) -> None:
        """Test that items without a title or id produce no entry."""
        assert normalizer.normalize_item({"id": "x"}, source) is None
        assert normalizer.normalize_item({"title": "No Id"}, source) is None
        assert normalizer.normalize_item({"id": "x", "title": "   "}, source) is None

    def test_defaults(self, normalizer, source) -> None:
        """Test defaults for status, kind and chapters."""
        entry = normalizer.normalize_item({"id": "x", "title": "Plain"}, source)
        assert entry is not None
        assert entry.status == WorkStatus.ONGOING
        assert entry.work_kind == WorkKind.MANGA
        assert entry.chapters == []
        assert entry.genres == set()

    def test_kind_from_source_name(self, normalizer) -> None:
        """Test that the source name is used when the item has no type."""
        source = SourceConfig(id="kr", name="Korean Webtoons", base_url="https://kr.example.com")
        entry = normalizer.normalize_item({"id": "x", "title": "Plain"}, source)
        assert entry is not None
        assert entry.work_kind == WorkKind.MANHWA


class TestNormalizeStatus:
    """Tests for status mapping."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Ongoing", WorkStatus.ONGOING),
            ("continuing", WorkStatus.ONGOING),
            ("FINISHED", WorkStatus.COMPLETED),
            ("on hiatus", WorkStatus.HIATUS),
            ("paused", WorkStatus.HIATUS),
            ("Dropped", WorkStatus.CANCELLED),
            ("unknown", WorkStatus.ONGOING),
            (None, WorkStatus.ONGOING),
        ],
    )
    def test_mapping(self, normalizer, raw, expected) -> None:
        assert normalizer.normalize_status(raw) == expected


class TestDetectWorkKind:
    """Tests for work kind inference."""

    def test_manhua(self, normalizer) -> None:
        assert normalizer.detect_work_kind("Chinese comic") == WorkKind.MANHUA

    def test_manhwa(self, normalizer) -> None:
        assert normalizer.detect_work_kind("manhwa") == WorkKind.MANHWA

    def test_default(self, normalizer) -> None:
        assert normalizer.detect_work_kind(None) == WorkKind.MANGA


class TestParseChapters:
    """Tests for chapter parsing."""

    def test_number_formats(self, normalizer) -> None:
        """Test numeric, string and labelled chapter numbers."""
        chapters = normalizer.parse_chapters(
            [
                {"number": 3},
                {"chapter": "10.5"},
                {"number": "Chapter 7", "name": "The Gate"},
            ]
        )
        assert [c.number for c in chapters] == [3.0, 10.5, 7.0]
        assert chapters[2].title == "The Gate"

    def test_invalid_chapters_dropped(self, normalizer) -> None:
        """Test that chapters without a usable positive number are dropped."""
        chapters = normalizer.parse_chapters(
            [
                {"title": "No number"},
                {"number": "extra"},
                {"number": -2},
                {"number": 0},
                {"number": True},
                "not an object",
                {"number": 4, "id": "c4"},
            ]
        )
        assert len(chapters) == 1
        assert chapters[0].number == 4.0
        assert chapters[0].source_chapter_id == "c4"

    def test_order_preserved(self, normalizer) -> None:
        chapters = normalizer.parse_chapters([{"number": 2}, {"number": 1}])
        assert [c.number for c in chapters] == [2.0, 1.0]


class TestParseResponse:
    """Tests for whole-payload parsing."""

    def test_skips_malformed_items(self, normalizer, source) -> None:
        """Test that malformed items are skipped and the rest kept."""
        payload = {
            "manga": [
                {"id": "a", "title": "Alpha"},
                "oops",
                {"title": "No Id"},
                {"id": "b", "title": "Beta"},
            ]
        }
        entries = normalizer.parse_response(payload, source)
        assert [e.title for e in entries] == ["Alpha", "Beta"]

    def test_empty_payload(self, normalizer, source) -> None:
        assert normalizer.parse_response({}, source) == []
