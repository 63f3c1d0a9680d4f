"""Admin JSON routes for sources, sync jobs, schedule, review queue and logs."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from manga_sync.core.enums import ApprovalStatus, LogLevel
from manga_sync.core.schema import ScheduleConfig, SourceCreate, SourceUpdate
from manga_sync.ingestion.exceptions import (
    JobNotFoundError,
    JobStateError,
    ReviewItemNotFoundError,
    ReviewStateError,
    SourceNotFoundError,
    SyncConflictError,
)
from manga_sync.services.admin_service import AdminService

router = APIRouter(prefix="/admin", tags=["admin"])


def get_admin_service(request: Request) -> AdminService:
    """Dependency to get the admin service of the running app."""
    return request.app.state.admin


AdminDep = Annotated[AdminService, Depends(get_admin_service)]


class SyncRequest(BaseModel):
    """Body of a manual sync request."""

    source_ids: list[str] | None = None


class ApproveRequest(BaseModel):
    reviewer_id: str = Field(min_length=1)
    notes: str | None = None


class RejectRequest(BaseModel):
    reviewer_id: str = Field(min_length=1)
    notes: str = Field(min_length=1)


# ============================================================================
# Sources
# ============================================================================


@router.get("/sources")
async def list_sources(admin: AdminDep) -> JSONResponse:
    """List all sources in registry order."""
    sources = admin.list_sources()
    return JSONResponse({"sources": [s.model_dump(mode="json") for s in sources]})


@router.post("/sources")
async def add_source(payload: SourceCreate, admin: AdminDep) -> JSONResponse:
    """Add a source."""
    try:
        source = admin.add_source(payload)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse({"source": source.model_dump(mode="json")}, status_code=201)


@router.get("/sources/{source_id}")
async def get_source(source_id: str, admin: AdminDep) -> JSONResponse:
    try:
        source = admin.get_source(source_id)
    except SourceNotFoundError:
        raise HTTPException(status_code=404, detail="Source not found")
    return JSONResponse({"source": source.model_dump(mode="json")})


@router.patch("/sources/{source_id}")
async def update_source(source_id: str, payload: SourceUpdate, admin: AdminDep) -> JSONResponse:
    """Partially update a source."""
    try:
        source = admin.update_source(source_id, payload)
    except SourceNotFoundError:
        raise HTTPException(status_code=404, detail="Source not found")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return JSONResponse({"source": source.model_dump(mode="json")})


@router.delete("/sources/{source_id}")
async def delete_source(source_id: str, admin: AdminDep) -> JSONResponse:
    try:
        admin.delete_source(source_id)
    except SourceNotFoundError:
        raise HTTPException(status_code=404, detail="Source not found")
    return JSONResponse({"success": True, "source_id": source_id})


@router.post("/sources/{source_id}/test")
async def test_source(source_id: str, admin: AdminDep) -> JSONResponse:
    """Fetch a source and return a sample of its catalog without storing anything."""
    try:
        outcome = await admin.test_source(source_id)
    except SourceNotFoundError:
        raise HTTPException(status_code=404, detail="Source not found")
    return JSONResponse(outcome)


# ============================================================================
# Sync Jobs
# ============================================================================


@router.post("/sync")
async def trigger_sync(admin: AdminDep, payload: SyncRequest | None = None) -> JSONResponse:
    """
    Queue a manual sync.

    Returns 202 with the job id; the job runs in the background.
    """
    source_ids = payload.source_ids if payload else None
    try:
        job_id = admin.trigger_sync(source_ids)
    except SourceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncConflictError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "job_id": e.job_id})
    return JSONResponse({"job_id": job_id, "status": "pending"}, status_code=202)


@router.get("/jobs")
async def list_jobs(admin: AdminDep, limit: int = 20) -> JSONResponse:
    """Recent sync jobs, newest first."""
    jobs = admin.list_jobs(limit)
    return JSONResponse({"jobs": [j.model_dump(mode="json") for j in jobs]})


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, admin: AdminDep) -> JSONResponse:
    try:
        job = admin.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return JSONResponse(
        {"job": job.model_dump(mode="json"), "duration_seconds": job.duration_seconds}
    )


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, admin: AdminDep) -> JSONResponse:
    """Cancel a pending job."""
    try:
        job = admin.cancel_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except JobStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse({"job": job.model_dump(mode="json")})


# ============================================================================
# Schedule
# ============================================================================


@router.get("/schedule")
async def get_schedule(admin: AdminDep) -> JSONResponse:
    return JSONResponse({"schedule": admin.get_schedule().model_dump(mode="json")})


@router.put("/schedule")
async def update_schedule(config: ScheduleConfig, admin: AdminDep) -> JSONResponse:
    """Replace the sync schedule."""
    schedule = admin.update_schedule(config)
    return JSONResponse({"schedule": schedule.model_dump(mode="json")})


# ============================================================================
# Review Queue
# ============================================================================


@router.get("/review-queue")
async def list_review_items(
    admin: AdminDep,
    status: ApprovalStatus = ApprovalStatus.PENDING,
    limit: int = 100,
    offset: int = 0,
) -> JSONResponse:
    """Queue items by priority, oldest first within a priority."""
    items = admin.list_review_items(status=status, limit=limit, offset=offset)
    return JSONResponse({"items": [i.model_dump(mode="json") for i in items]})


@router.get("/review-queue/stats")
async def review_stats(admin: AdminDep) -> JSONResponse:
    return JSONResponse({"stats": admin.review_stats().model_dump(mode="json")})


@router.post("/review-queue/{queue_id}/approve")
async def approve_item(queue_id: str, payload: ApproveRequest, admin: AdminDep) -> JSONResponse:
    try:
        item = admin.approve(queue_id, payload.reviewer_id, payload.notes)
    except ReviewItemNotFoundError:
        raise HTTPException(status_code=404, detail="Review queue item not found")
    except ReviewStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse({"item": item.model_dump(mode="json")})


@router.post("/review-queue/{queue_id}/reject")
async def reject_item(queue_id: str, payload: RejectRequest, admin: AdminDep) -> JSONResponse:
    try:
        item = admin.reject(queue_id, payload.reviewer_id, payload.notes)
    except ReviewItemNotFoundError:
        raise HTTPException(status_code=404, detail="Review queue item not found")
    except ReviewStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse({"item": item.model_dump(mode="json")})


# ============================================================================
# Observability
# ============================================================================


@router.get("/logs")
async def recent_logs(
    admin: AdminDep,
    limit: int = 50,
    level: LogLevel | None = None,
    source: str | None = None,
) -> JSONResponse:
    """Most recent sync log entries, newest first."""
    entries = admin.recent_logs(limit=limit, level=level, source=source)
    return JSONResponse({"logs": [e.model_dump(mode="json") for e in entries]})


@router.get("/stats")
async def system_stats(admin: AdminDep) -> JSONResponse:
    return JSONResponse({"stats": admin.system_stats().model_dump(mode="json")})
