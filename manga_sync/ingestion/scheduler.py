"""
Sync Scheduler Module
=====================

Owns the lifecycle of sync jobs:

    pending -> running -> completed | failed

Manual requests and schedule triggers both create `pending` jobs. A
single worker promotes the oldest pending job to `running` only while no
other job is running, runs the orchestrator, and records the outcome.
A periodic sweep force-fails jobs that have been running for too long.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from manga_sync.core.enums import JobStatus, JobTrigger
from manga_sync.core.schema import JobProgress, JobResult, ScheduleConfig, SyncJob
from manga_sync.db.engine import get_session_factory
from manga_sync.db.repositories import SettingsRepository, SyncJobRepository
from manga_sync.ingestion.events import EventLog, measure
from manga_sync.ingestion.exceptions import (
    JobNotFoundError,
    JobStateError,
    SyncConflictError,
)
from manga_sync.ingestion.orchestrator import IngestionOrchestrator
from manga_sync.ingestion.registry import SchedulerConfig, SourceRegistry, get_default_registry
from manga_sync.ingestion.schedule import ScheduleTrigger

logger = logging.getLogger(__name__)

SCHEDULE_SETTING_KEY = "sync_schedule"
CANCELLED_MESSAGE = "Cancelled by user"


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class SyncScheduler:
    """
    Job scheduler for the ingestion pipeline.

    Usage:
        scheduler = SyncScheduler(orchestrator, session_factory)
        await scheduler.start()
        job_id = scheduler.request_manual_sync()
        ...
        await scheduler.stop()

    Tests can skip start() and drive the scheduler with tick() and
    process_queue() directly, passing `now` or injecting a clock.
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        session_factory: sessionmaker[Session],
        config: SchedulerConfig | None = None,
        events: EventLog | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.config = config or SchedulerConfig()
        self.events = events or orchestrator.events
        self.clock = clock
        self.trigger = ScheduleTrigger(now=clock())

        # Guards the "no running job" check and the promotion to running
        self._promote_lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._worker_task: asyncio.Task[None] | None = None
        self._last_sweep_at: datetime | None = None

    @classmethod
    def from_registry(
        cls,
        registry: SourceRegistry,
        session_factory: sessionmaker[Session],
        events: EventLog | None = None,
    ) -> SyncScheduler:
        """Build the scheduler and its orchestrator from registry configuration."""
        events = events or EventLog(session_factory)
        orchestrator = IngestionOrchestrator(registry, session_factory, events=events)
        return cls(orchestrator, session_factory, config=registry.scheduler, events=events)

    @property
    def is_started(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load the schedule, sweep stale jobs and start the tick loop."""
        if self.is_started:
            return
        self._loop = asyncio.get_running_loop()
        self.orchestrator.resume()
        self.load_schedule()
        self.sweep_stale_jobs()
        self._tick_task = asyncio.create_task(self._tick_loop())
        self.kick()
        self.events.info(
            "Sync scheduler started", {"schedule": self.trigger.config.model_dump(mode="json")}
        )

    async def stop(self) -> None:
        """Stop the tick loop and wait for the worker to wind down."""
        self.orchestrator.shutdown()
        if self._tick_task is not None:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None
        await self.wait_idle()
        self._loop = None
        self.events.info("Sync scheduler stopped")

    async def _tick_loop(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.config.tick_interval)

    async def tick(self, now: datetime | None = None) -> None:
        """
        One scheduler tick: schedule check, stale sweep, queue kick.

        Each step is isolated so a failure never stops later ticks.
        """
        now = now or self.clock()

        try:
            if self.trigger.check(now):
                self._enqueue_scheduled(now)
        except Exception:
            logger.exception("Schedule check failed")

        try:
            if self._sweep_due(now):
                self.sweep_stale_jobs(now)
        except Exception:
            logger.exception("Stale job sweep failed")

        try:
            self.kick()
        except Exception:
            logger.exception("Failed to start the sync worker")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_manual_sync(self, source_ids: list[str] | None = None) -> str:
        """
        Queue a manual sync and return its job id without waiting for it.

        A request made while a job is running is queued behind it.

        Raises:
            SyncConflictError: A pending job is already waiting to run
        """
        job = self._create_job(source_ids, JobTrigger.MANUAL, self.clock())
        self.events.info(
            "Manual sync requested", {"job_id": job.id, "sources": job.source_ids}, "sync"
        )
        self.kick()
        return job.id

    def _enqueue_scheduled(self, now: datetime) -> str | None:
        try:
            job = self._create_job(self.trigger.config.sources, JobTrigger.SCHEDULED, now)
        except SyncConflictError as e:
            self.events.warn(
                "Scheduled sync skipped, a job is already waiting", {"job_id": e.job_id}, "sync"
            )
            return None
        self.events.info("Scheduled sync queued", {"job_id": job.id}, "sync")
        return job.id

    def _create_job(
        self, source_ids: list[str] | None, trigger: JobTrigger, created_at: datetime
    ) -> SyncJob:
        with self._promote_lock, self.session_factory() as session:
            repo = SyncJobRepository(session)
            waiting = repo.list_by_status(JobStatus.PENDING, limit=1)
            if waiting:
                raise SyncConflictError(waiting[0].id)
            job = repo.create(source_ids=source_ids, trigger=trigger, created_at=created_at)
            session.commit()
        return job

    def cancel_job(self, job_id: str, reason: str = CANCELLED_MESSAGE) -> SyncJob:
        """
        Cancel a job that has not started yet.

        Raises:
            JobNotFoundError: Unknown job id
            JobStateError: The job is running or already finished
        """
        with self._promote_lock, self.session_factory() as session:
            repo = SyncJobRepository(session)
            job = repo.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JobStatus.PENDING:
                raise JobStateError(
                    f"Only pending jobs can be cancelled; job {job_id} is {job.status.value}"
                )
            moved = repo.transition(
                job_id,
                JobStatus.PENDING,
                JobStatus.FAILED,
                completed_at=self.clock(),
                result=JobResult(errors=[reason]),
            )
            if not moved:
                raise JobStateError(f"Job {job_id} started before it could be cancelled")
            session.commit()
            cancelled = repo.get(job_id)

        self.events.info("Sync job cancelled", {"job_id": job_id, "reason": reason}, "sync")
        return cancelled

    def get_job(self, job_id: str) -> SyncJob | None:
        with self.session_factory() as session:
            return SyncJobRepository(session).get(job_id)

    def list_recent_jobs(self, limit: int = 20) -> list[SyncJob]:
        with self.session_factory() as session:
            return SyncJobRepository(session).list_recent(limit)

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    def get_schedule(self) -> ScheduleConfig:
        """The stored schedule, or the default (disabled, daily at 02:00)."""
        with self.session_factory() as session:
            data = SettingsRepository(session).get_json(SCHEDULE_SETTING_KEY)
        if data is None:
            return ScheduleConfig()
        try:
            return ScheduleConfig.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Stored sync schedule is invalid, using defaults: {e}")
            return ScheduleConfig()

    def update_schedule(self, config: ScheduleConfig) -> ScheduleConfig:
        """Persist a new schedule and re-arm the trigger."""
        with self.session_factory() as session:
            SettingsRepository(session).set_json(SCHEDULE_SETTING_KEY, config.model_dump(mode="json"))
            session.commit()
        self.trigger.rearm(self.clock(), config)
        self.events.info("Sync schedule updated", config.model_dump(mode="json"), "sync")
        return config

    def load_schedule(self) -> ScheduleConfig:
        """Re-arm the trigger with the stored schedule."""
        config = self.get_schedule()
        self.trigger.rearm(self.clock(), config)
        return config

    # ------------------------------------------------------------------
    # Stale jobs
    # ------------------------------------------------------------------

    def _sweep_due(self, now: datetime) -> bool:
        if self._last_sweep_at is None:
            return True
        return now - self._last_sweep_at >= timedelta(seconds=self.config.sweep_interval)

    def sweep_stale_jobs(self, now: datetime | None = None) -> list[str]:
        """
        Fail jobs that have been running longer than the stale timeout.

        Returns:
            IDs of the jobs that were failed
        """
        now = now or self.clock()
        self._last_sweep_at = now
        timeout = timedelta(seconds=self.config.stale_job_timeout)
        minutes = int(timeout.total_seconds() // 60)

        failed: list[str] = []
        with self.session_factory() as session:
            repo = SyncJobRepository(session)
            for job in repo.find_stale(now - timeout):
                message = f"Job timed out after running for more than {minutes} minutes"
                result = job.result or JobResult()
                result.errors.append(message)
                if repo.transition(
                    job.id,
                    JobStatus.RUNNING,
                    JobStatus.FAILED,
                    completed_at=now,
                    result=result,
                ):
                    failed.append(job.id)
            session.commit()

        for job_id in failed:
            self.events.error("Sync job timed out", {"job_id": job_id}, "sync")
        return failed

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def kick(self) -> None:
        """Make sure the worker drains the queue (no-op until started)."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            self._ensure_worker()
        else:
            loop.call_soon_threadsafe(self._ensure_worker)

    def _ensure_worker(self) -> None:
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            try:
                job = await self.process_queue()
            except Exception:
                logger.exception("Sync worker failed")
                return
            if job is None:
                return

    async def wait_idle(self) -> None:
        """Wait for the worker to finish the jobs it is processing."""
        task = self._worker_task
        if task is not None and not task.done():
            await task

    def _promote_next(self) -> SyncJob | None:
        """Move the oldest pending job to running if nothing else is running."""
        with self._promote_lock, self.session_factory() as session:
            repo = SyncJobRepository(session)
            if repo.count_running() > 0:
                return None
            waiting = repo.list_by_status(JobStatus.PENDING, limit=1)
            if not waiting:
                return None
            job = waiting[0]
            moved = repo.transition(
                job.id,
                JobStatus.PENDING,
                JobStatus.RUNNING,
                started_at=self.clock(),
                progress=JobProgress(current_step="Starting sync"),
            )
            if not moved:
                return None
            session.commit()
            return repo.get(job.id)

    async def process_queue(self) -> SyncJob | None:
        """
        Run the oldest pending job, if no job is running.

        Returns:
            The finished job, or None if nothing was started
        """
        job = self._promote_next()
        if job is None:
            return None

        logger.info(f"Starting sync job {job.id} ({job.trigger.value})")

        def report(progress: JobProgress) -> None:
            with self.session_factory() as session:
                SyncJobRepository(session).update_progress(job.id, progress)
                session.commit()

        try:
            result = await measure(
                "sync_all",
                lambda: self.orchestrator.sync_all(job.source_ids or None, progress=report),
                self.events,
            )
        except Exception as e:
            logger.exception(f"Sync job {job.id} failed")
            self._finish(
                job.id,
                JobStatus.FAILED,
                JobResult(errors=[str(e)]),
                JobProgress(current_step="Failed", errors=1),
            )
        else:
            self._finish(job.id, JobStatus.COMPLETED, result.to_job_result())

        return self.get_job(job.id)

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        result: JobResult,
        progress: JobProgress | None = None,
    ) -> None:
        with self.session_factory() as session:
            moved = SyncJobRepository(session).transition(
                job_id,
                JobStatus.RUNNING,
                status,
                completed_at=self.clock(),
                progress=progress,
                result=result,
            )
            session.commit()

        if not moved:
            logger.warning(f"Sync job {job_id} was no longer running; outcome not recorded")
            return
        if status == JobStatus.COMPLETED:
            self.events.info("Sync job completed", {"job_id": job_id, **result.model_dump()}, "sync")
        else:
            self.events.error("Sync job failed", {"job_id": job_id, "errors": result.errors}, "sync")


def create_default_scheduler() -> SyncScheduler:
    """
    Build a scheduler from the default registry and database.

    Sources stored in the database are registered after those from
    the YAML configuration.
    """
    session_factory = get_session_factory()
    registry = get_default_registry()
    with session_factory() as session:
        loaded = registry.load_from_database(session)
    logger.info(f"Loaded {loaded} sources from the database")
    return SyncScheduler.from_registry(registry, session_factory)
