"""Tests for the arq worker tasks."""

from types import SimpleNamespace

import pytest

from manga_sync.core.enums import JobStatus, JobTrigger, ScheduleInterval
from manga_sync.core.schema import ScheduleConfig
from manga_sync.db.repositories import SyncJobRepository
from manga_sync.ingestion.events import EventLog
from manga_sync.ingestion.fetcher import CatalogFetcher
from manga_sync.ingestion.jobs import (
    DRAIN_FUNCTION,
    DRAIN_JOB_ID,
    SCHEDULER_KEY,
    WorkerSettings,
    enqueue_drain,
    process_sync_queue,
    scheduler_tick,
)
from manga_sync.ingestion.orchestrator import IngestionOrchestrator
from manga_sync.ingestion.registry import SchedulerConfig, SourceConfig, SourceRegistry
from manga_sync.ingestion.scheduler import SyncScheduler

from conftest import catalog_transport, manga_item


class FakeRedis:
    """Records enqueue_job calls; refuses them when `accept` is False."""

    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.enqueued: list[tuple[str, str | None]] = []

    async def enqueue_job(self, function: str, *args, _job_id: str | None = None, **kwargs):
        self.enqueued.append((function, _job_id))
        return SimpleNamespace(job_id=_job_id) if self.accept else None


@pytest.fixture
def scheduler(session_factory, fake_clock):
    registry = SourceRegistry()
    registry.add(SourceConfig(id="src-1", name="Source One", base_url="https://one.example.com"))
    events = EventLog(session_factory)
    orchestrator = IngestionOrchestrator(
        registry,
        session_factory,
        fetcher=CatalogFetcher(
            transport=catalog_transport(
                {"https://one.example.com/api/manga": [manga_item("a", "Alpha Story")]}
            ),
            events=events,
        ),
        events=events,
        default_source_delay=0,
        clock=fake_clock,
    )
    return SyncScheduler(
        orchestrator,
        session_factory,
        config=SchedulerConfig(tick_interval=0.01),
        events=events,
        clock=fake_clock,
    )


@pytest.fixture
def ctx(scheduler):
    return {SCHEDULER_KEY: scheduler, "redis": FakeRedis()}


class TestSchedulerTick:
    """Tests for the cron tick."""

    @pytest.mark.asyncio
    async def test_tick_while_job_running(self, ctx, scheduler, session_factory, fake_clock) -> None:
        """Test that a due slot is queued behind a running job and a drain is requested."""
        with session_factory() as session:
            repo = SyncJobRepository(session)
            running = repo.create(created_at=fake_clock())
            repo.transition(running.id, JobStatus.PENDING, JobStatus.RUNNING, started_at=fake_clock())
            session.commit()
        scheduler.update_schedule(
            ScheduleConfig(enabled=True, interval=ScheduleInterval.DAILY, time="12:00")
        )

        await scheduler_tick(ctx)

        jobs = {job.id: job for job in scheduler.list_recent_jobs()}
        assert jobs[running.id].status == JobStatus.RUNNING
        pending = [job for job in jobs.values() if job.status == JobStatus.PENDING]
        assert len(pending) == 1
        assert pending[0].trigger == JobTrigger.SCHEDULED
        assert ctx["redis"].enqueued == [(DRAIN_FUNCTION, DRAIN_JOB_ID)]

    @pytest.mark.asyncio
    async def test_tick_does_not_run_syncs(self, ctx, scheduler) -> None:
        job_id = scheduler.request_manual_sync()

        await scheduler_tick(ctx)

        assert scheduler.get_job(job_id).status == JobStatus.PENDING


class TestDrain:
    """Tests for the queue drain task."""

    @pytest.mark.asyncio
    async def test_enqueue_drain(self) -> None:
        assert await enqueue_drain(FakeRedis()) == DRAIN_JOB_ID
        assert await enqueue_drain(FakeRedis(accept=False)) is None

    @pytest.mark.asyncio
    async def test_process_sync_queue(self, ctx, scheduler) -> None:
        job_id = scheduler.request_manual_sync()

        outcome = await process_sync_queue(ctx)

        assert outcome == {"processed": [{"job_id": job_id, "status": "completed"}]}
        assert await process_sync_queue(ctx) == {"processed": []}

    def test_worker_runs_ticks_beside_drain(self) -> None:
        assert WorkerSettings.max_jobs >= 2
