"""
Background Jobs Module
======================

arq worker deployment of the sync scheduler. Uses Redis as the job
queue backend: a cron task ticks the scheduler and the API can wake the
worker to drain the sync queue right after a manual request.

Run with:
    arq manga_sync.ingestion.jobs.WorkerSettings
"""

from __future__ import annotations

import logging
import os
from typing import Any

from arq import ArqRedis, create_pool, cron, func
from arq.connections import RedisSettings

from manga_sync.ingestion.scheduler import SyncScheduler, create_default_scheduler

logger = logging.getLogger(__name__)

SCHEDULER_KEY = "scheduler"
DRAIN_FUNCTION = "process_sync_queue"
DRAIN_JOB_ID = "process_sync_queue"


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def startup(ctx: dict[str, Any]) -> None:
    """Create the scheduler, load the schedule and sweep stale jobs."""
    scheduler = create_default_scheduler()
    scheduler.load_schedule()
    scheduler.sweep_stale_jobs()
    ctx[SCHEDULER_KEY] = scheduler
    logger.info("Sync worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    scheduler: SyncScheduler | None = ctx.get(SCHEDULER_KEY)
    if scheduler is not None:
        scheduler.orchestrator.shutdown()
    logger.info("Sync worker stopped")


async def scheduler_tick(ctx: dict[str, Any]) -> None:
    """
    Cron task: evaluate the schedule, sweep stale jobs, then ask for a drain.

    The drain runs as its own arq job, so ticks keep firing on time while
    a long sync is in progress.
    """
    scheduler: SyncScheduler = ctx[SCHEDULER_KEY]
    await scheduler.tick()
    await enqueue_drain(ctx["redis"])


async def process_sync_queue(ctx: dict[str, Any]) -> dict[str, Any]:
    """
    Run pending sync jobs one at a time until the queue is empty.

    Returns:
        IDs and final statuses of the jobs that ran
    """
    scheduler: SyncScheduler = ctx[SCHEDULER_KEY]
    processed: list[dict[str, str]] = []
    while True:
        job = await scheduler.process_queue()
        if job is None:
            break
        processed.append({"job_id": job.id, "status": job.status.value})
    return {"processed": processed}


async def enqueue_drain(redis: ArqRedis) -> str | None:
    """
    Queue a process_sync_queue run under a fixed job ID.

    Returns:
        arq job ID, or None if a drain is already queued or running
    """
    job = await redis.enqueue_job(DRAIN_FUNCTION, _job_id=DRAIN_JOB_ID)
    return job.job_id if job is not None else None


async def enqueue_queue_kick() -> str | None:
    """Ask the worker to drain the sync queue now."""
    redis = await create_pool(get_redis_settings())
    try:
        return await enqueue_drain(redis)
    finally:
        await redis.close()


class WorkerSettings:
    """arq worker settings."""

    # keep_result=0 lets DRAIN_JOB_ID be reused once a drain ends
    functions = [func(process_sync_queue, keep_result=0)]
    cron_jobs = [cron(scheduler_tick, second={0, 30}, run_at_startup=True)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    # Drain plus ticks; _promote_next keeps syncs single-flight
    max_jobs = 2
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
