"""Notification submission and management routes."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from nudge.scheduling.scheduler import Scheduler
from nudge.server.schemas import (
    HistoryList,
    JobList,
    NotificationRequest,
    SubmitResponse,
)

router = APIRouter()


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]


def _job_or_404(scheduler: Scheduler, job_id: str) -> dict[str, Any]:
    job = scheduler.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job.to_dict()


@router.post("/notifications", response_model=SubmitResponse)
async def submit_notification(
    body: NotificationRequest, scheduler: SchedulerDep, response: Response
) -> SubmitResponse:
    """Schedule a notification, or send it now when no time is given."""
    payload = body.to_payload()

    if body.schedule_time is None:
        result = await scheduler.dispatch_now(payload)
        return SubmitResponse.sent(result)

    recurrence = body.recurrence.to_rule() if body.recurrence else None
    job_id = await scheduler.submit(payload, body.schedule_time, recurrence)
    job = scheduler.get_job(job_id)
    assert job is not None
    response.status_code = 201
    return SubmitResponse.scheduled(job)


@router.get("/notifications", response_model=JobList)
async def list_notifications(
    scheduler: SchedulerDep,
    active: Annotated[bool | None, Query()] = None,
) -> JobList:
    jobs = scheduler.list_jobs()
    if active is not None:
        jobs = [job for job in jobs if job.active == active]
    return JobList.from_jobs(jobs)


@router.get("/notifications/{job_id}")
async def get_notification(job_id: str, scheduler: SchedulerDep) -> dict[str, Any]:
    return _job_or_404(scheduler, job_id)


@router.post("/notifications/{job_id}/cancel")
async def cancel_notification(job_id: str, scheduler: SchedulerDep) -> dict[str, Any]:
    if not await scheduler.cancel(job_id):
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return _job_or_404(scheduler, job_id)


@router.post("/notifications/{job_id}/pause")
async def pause_notification(job_id: str, scheduler: SchedulerDep) -> dict[str, Any]:
    if not await scheduler.pause(job_id):
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return _job_or_404(scheduler, job_id)


@router.post("/notifications/{job_id}/resume")
async def resume_notification(job_id: str, scheduler: SchedulerDep) -> dict[str, Any]:
    if not await scheduler.resume(job_id):
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return _job_or_404(scheduler, job_id)


@router.get("/history", response_model=HistoryList)
async def get_history(
    scheduler: SchedulerDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 50,
) -> HistoryList:
    return HistoryList.from_entries(scheduler.history(limit))


@router.get("/stats")
async def get_stats(scheduler: SchedulerDep) -> dict[str, Any]:
    return scheduler.get_stats()
