"""Tests for database persistence layer."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from manga_sync.core.enums import ApprovalStatus, JobStatus, JobTrigger, WorkStatus
from manga_sync.core.schema import JobProgress, JobResult, Source, SourceSettings
from manga_sync.db.models import ProfileDB
from manga_sync.db.repositories import (
    ChapterRepository,
    MangaRepository,
    ProfileRepository,
    SettingsRepository,
    SourceRepository,
    SyncJobRepository,
)
from manga_sync.ingestion.normalizer import CatalogEntry, ChapterEntry

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class TestMangaRepository:
    """Tests for MangaRepository."""

    def test_create_pending(self, test_session: Session) -> None:
        """Test that pipeline inserts are pending and marked auto-added."""
        repo = MangaRepository(test_session)
        entry = CatalogEntry(
            title="Solo Leveling",
            source_id="src-1",
            source_manga_id="42",
            author="Chugong",
            genres={"action", "fantasy"},
            status=WorkStatus.COMPLETED,
        )

        work = repo.create_pending(entry)
        test_session.commit()

        assert work.approval_status == ApprovalStatus.PENDING
        assert repo.get_by_source_ref("src-1", "42").id == work.id
        assert repo.get_by_source_ref("src-2", "42") is None
        assert repo.count(auto_added=True) == 1
        assert repo.count(auto_added=False) == 0

    def test_search_candidates(self, test_session: Session) -> None:
        repo = MangaRepository(test_session)
        repo.create(title="Tower of God", author="SIU")
        repo.create(title="God of High School", author="Park Yong-je")
        repo.create(title="Berserk", author="Kentaro Miura")

        titles = {w.title for w in repo.search_candidates(["god"])}
        assert titles == {"Tower of God", "God of High School"}

        by_author = repo.search_candidates(["god"], author="siu")
        assert [w.title for w in by_author] == ["Tower of God"]

        assert repo.search_candidates([]) == []

    def test_set_approval_status_unknown(self, test_session: Session) -> None:
        with pytest.raises(ValueError):
            MangaRepository(test_session).set_approval_status("missing", ApprovalStatus.APPROVED)


class TestChapterRepository:
    """Tests for ChapterRepository."""

    def test_find_in_range(self, test_session: Session) -> None:
        work = MangaRepository(test_session).create(title="Vagabond")
        repo = ChapterRepository(test_session)
        for number in (1, 2, 2.5, 3):
            repo.create(manga_id=work.id, chapter_number=number)

        found = repo.find_in_range(work.id, 2.4, 3.0)

        assert [c.chapter_number for c in found] == [2.5, 3]

    def test_create_pending(self, test_session: Session) -> None:
        work = MangaRepository(test_session).create(title="Vagabond")
        chapter = ChapterRepository(test_session).create_pending(
            work.id, ChapterEntry(number=12, title="The Duel", pages=["p1.jpg"])
        )

        assert chapter.approval_status == ApprovalStatus.PENDING
        assert chapter.title == "The Duel"
        assert ChapterRepository(test_session).count(auto_added=True) == 1


class TestSourceRepository:
    """Tests for SourceRepository."""

    def test_create_keeps_order(self, test_session: Session) -> None:
        """Test that sources are listed in insertion order."""
        repo = SourceRepository(test_session)
        repo.create(Source(id="b", name="Second", base_url="https://b.example.com"))
        repo.create(Source(id="a", name="First Added Later", base_url="https://a.example.com"))
        test_session.commit()

        assert [s.id for s in repo.list_all()] == ["b", "a"]

    def test_settings_round_trip(self, test_session: Session) -> None:
        repo = SourceRepository(test_session)
        settings = SourceSettings(api_key="secret", headers={"X-Test": "1"}, rate_limit=12)
        repo.create(Source(id="s1", name="One", base_url="https://one.example.com", settings=settings))
        test_session.commit()

        stored = repo.get_by_id("s1")
        assert stored.settings == settings

    def test_update_and_touch(self, test_session: Session) -> None:
        repo = SourceRepository(test_session)
        source = repo.create(Source(id="s1", name="One", base_url="https://one.example.com"))

        updated = repo.update(source.model_copy(update={"is_active": False}))
        repo.touch_last_sync("s1", NOW)

        assert updated.is_active is False
        assert repo.get_by_id("s1").last_sync_at == NOW
        assert repo.list_all(active_only=True) == []
        assert repo.count() == 1

    def test_delete(self, test_session: Session) -> None:
        repo = SourceRepository(test_session)
        repo.create(Source(id="s1", name="One", base_url="https://one.example.com"))

        assert repo.delete("s1") is True
        assert repo.delete("s1") is False


class TestSyncJobRepository:
    """Tests for SyncJobRepository."""

    def test_create(self, test_session: Session) -> None:
        repo = SyncJobRepository(test_session)

        job = repo.create(["src-1"], JobTrigger.SCHEDULED, created_at=NOW)

        assert job.status == JobStatus.PENDING
        assert job.trigger == JobTrigger.SCHEDULED
        assert job.created_at == NOW
        assert job.progress == JobProgress()
        assert job.result is None

    def test_transition_is_conditional(self, test_session: Session) -> None:
        """Test that a transition only applies from the expected status."""
        repo = SyncJobRepository(test_session)
        job = repo.create(created_at=NOW)

        assert repo.transition(job.id, JobStatus.PENDING, JobStatus.RUNNING, started_at=NOW)
        assert not repo.transition(job.id, JobStatus.PENDING, JobStatus.RUNNING)
        assert repo.transition(
            job.id,
            JobStatus.RUNNING,
            JobStatus.COMPLETED,
            completed_at=NOW + timedelta(minutes=2),
            result=JobResult(new_works=3),
        )
        test_session.commit()

        stored = repo.get(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.result.new_works == 3
        assert stored.duration_seconds == 120

    def test_update_progress_only_while_running(self, test_session: Session) -> None:
        repo = SyncJobRepository(test_session)
        job = repo.create(created_at=NOW)

        assert repo.update_progress(job.id, JobProgress(current_step="Syncing")) is False
        repo.transition(job.id, JobStatus.PENDING, JobStatus.RUNNING, started_at=NOW)
        assert repo.update_progress(job.id, JobProgress(current_step="Syncing")) is True
        assert repo.get(job.id).progress.current_step == "Syncing"

    def test_listing_and_stale(self, test_session: Session) -> None:
        repo = SyncJobRepository(test_session)
        old = repo.create(created_at=NOW - timedelta(hours=2))
        new = repo.create(created_at=NOW)
        repo.transition(old.id, JobStatus.PENDING, JobStatus.RUNNING, started_at=NOW - timedelta(hours=2))

        assert [j.id for j in repo.list_recent()] == [new.id, old.id]
        assert [j.id for j in repo.list_by_status(JobStatus.PENDING)] == [new.id]
        assert repo.count_running() == 1
        assert [j.id for j in repo.find_stale(NOW - timedelta(minutes=30))] == [old.id]
        assert repo.find_stale(NOW - timedelta(hours=3)) == []


class TestSettingsAndProfiles:
    def test_settings(self, test_session: Session) -> None:
        repo = SettingsRepository(test_session)
        assert repo.get_json("sync_schedule") is None

        repo.set_json("sync_schedule", {"enabled": True})
        repo.set_json("sync_schedule", {"enabled": False})

        assert repo.get_json("sync_schedule") == {"enabled": False}

    def test_profiles_by_role(self, test_session: Session) -> None:
        test_session.add_all(
            [
                ProfileDB(user_id="u2", role="owner"),
                ProfileDB(user_id="u1", role="admin"),
                ProfileDB(user_id="u3", role="user"),
            ]
        )
        test_session.flush()

        repo = ProfileRepository(test_session)
        assert repo.user_ids_with_roles(["admin", "owner"]) == ["u1", "u2"]
        assert repo.user_ids_with_roles([]) == []
