"""
Manpower compute queue admin endpoints.

Provides producer, monitoring and operator endpoints for the recompute queue.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Query

from manpower_api.config.logging import get_logger
from manpower_api.config.settings import Settings, SettingsDep
from manpower_api.v1.core.exceptions import create_success_response
from manpower_api.v1.infra.jobs.health import evaluate_health
from manpower_api.v1.infra.jobs.models import JobStatus
from manpower_api.v1.infra.jobs.schemas import (
    JobActionResponse,
    JobCountResponse,
    JobEnqueueRequest,
    JobEnqueueResponse,
    JobListResponse,
    JobPositionResponse,
    JobResponse,
    ProcessorStatusResponse,
)
from manpower_api.v1.infra.jobs.service import QueueService, QueueServiceDep
from manpower_api.v1.infra.jobs.worker import JobProcessor, ProcessorDep

logger = get_logger(__name__)
router = APIRouter(prefix="/manpower-queue", tags=["manpower-queue"])


@router.post("/jobs", response_model=dict)
async def enqueue_job(
    job_request: JobEnqueueRequest,
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Enqueue a recompute job for an employee day."""
    job = await service.enqueue(
        employee_id=job_request.employee_id,
        employee_name=job_request.employee_name,
        device_id=job_request.device_id,
        device_name=job_request.device_name,
        date=job_request.date,
    )
    position = await service.queue_position(job.id)

    response = JobEnqueueResponse(
        job=JobResponse.model_validate(job), queue_position=position
    )
    return create_success_response(
        data=response.model_dump(mode="json"), message="Job enqueued"
    )


@router.get("/stats", response_model=dict)
async def get_stats(
    date: str | None = Query(default=None, description="Day to report (YYYY-MM-DD)"),
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Get queue statistics for a day, today by default."""
    try:
        stats = await service.get_stats(date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return create_success_response(data=stats.model_dump(mode="json"))


@router.get("/jobs", response_model=dict)
async def list_jobs(
    status: JobStatus = Query(..., description="List to read"),
    date: str | None = Query(
        default=None, description="Day of the completed list (YYYY-MM-DD)"
    ),
    limit: int = Query(default=100, ge=1, le=1000, description="Maximum results"),
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """List jobs currently held in a status list."""
    try:
        jobs = await service.list_by_status(status, date=date, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        status=status,
        date=date,
        limit=limit,
        count=len(jobs),
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/job/{job_id}", response_model=dict)
async def get_job(
    job_id: str,
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Get a single job by ID."""
    job = await service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=400, detail=f"Job {job_id} not found")

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.get("/job/{job_id}/position", response_model=dict)
async def get_job_position(
    job_id: str,
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Get the 1-based pending position of a job, 0 if not pending."""
    position = await service.queue_position(job_id)
    response = JobPositionResponse(job_id=job_id, position=position)
    return create_success_response(data=response.model_dump())


# Declared before /failed/{job_id} so "all" is never read as an ID
@router.delete("/failed/all", response_model=dict)
async def clear_all_failed(
    confirm: str | None = Query(default=None, description="Must be 'yes'"),
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Delete every permanently failed job."""
    if confirm != "yes":
        raise HTTPException(
            status_code=400,
            detail="Clearing failed jobs requires confirm=yes",
        )

    count = await service.clear_all_failed()
    logger.info("Failed jobs cleared via API", count=count)

    response = JobCountResponse(success=True, count=count)
    return create_success_response(
        data=response.model_dump(), message=f"Cleared {count} failed jobs"
    )


@router.delete("/failed/{job_id}", response_model=dict)
async def delete_failed_job(
    job_id: str,
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Delete one permanently failed job."""
    if not await service.delete_failed(job_id):
        raise HTTPException(
            status_code=400, detail=f"Job {job_id} not found in failed list"
        )

    response = JobActionResponse(success=True, message=f"Job {job_id} deleted")
    return create_success_response(data=response.model_dump())


@router.post("/retry/{job_id}", response_model=dict)
async def retry_failed_job(
    job_id: str,
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Reset a permanently failed job and requeue it."""
    if not await service.retry_failed(job_id):
        raise HTTPException(
            status_code=400, detail=f"Job {job_id} not found or not failed"
        )

    logger.info("Failed job retried via API", job_id=job_id)
    response = JobActionResponse(success=True, message=f"Job {job_id} queued for retry")
    return create_success_response(data=response.model_dump())


@router.get("/processor/status", response_model=dict)
async def get_processor_status(
    processor: JobProcessor = ProcessorDep,
) -> dict[str, Any]:
    """Get the processor state and counters."""
    status = processor.status()
    response = ProcessorStatusResponse(
        is_processing=status["running"],
        should_stop=status["stopping"],
        healthy=status["healthy"],
        state=status["state"],
        current_job_id=status["current_job_id"],
        processed=status["processed"],
        failed=status["failed"],
        restarts=status["restarts"],
    )
    return create_success_response(data=response.model_dump())


@router.post("/processor/trigger", response_model=dict)
async def trigger_processor(
    processor: JobProcessor = ProcessorDep,
) -> dict[str, Any]:
    """Start the processor loop if it is not running."""
    started = await processor.trigger_once()
    message = "Processor started" if started else "Processor already running"

    response = JobActionResponse(success=True, message=message)
    return create_success_response(data=response.model_dump())


@router.post("/processor/sweep", response_model=dict)
async def sweep_stale_jobs(
    service: QueueService = QueueServiceDep,
) -> dict[str, Any]:
    """Recover processing jobs orphaned by crashed workers."""
    count = await service.requeue_stale()

    response = JobCountResponse(success=True, count=count)
    return create_success_response(
        data=response.model_dump(), message=f"Recovered {count} stale jobs"
    )


@router.get("/health", response_model=dict)
async def get_queue_health(
    service: QueueService = QueueServiceDep,
    processor: JobProcessor = ProcessorDep,
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Evaluate queue health with recommendations."""
    stats = await service.get_stats()
    health = evaluate_health(stats, processor.status(), settings)
    return create_success_response(data=health.model_dump(mode="json"))
