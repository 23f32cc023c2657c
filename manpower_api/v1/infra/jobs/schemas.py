"""
Compute queue Pydantic schemas.
"""

from datetime import date as date_type
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from manpower_api.v1.infra.jobs.models import JobStatus


class JobEnqueueRequest(BaseModel):
    """Producer contract used by the device clock-out handler."""

    employee_id: str = Field(..., min_length=1, description="Employee identifier")
    employee_name: str = Field(default="", description="Employee display name")
    device_id: str = Field(..., min_length=1, description="Originating device")
    device_name: str = Field(default="", description="Originating device name")
    date: date_type = Field(..., description="Day whose totals must be recomputed")


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    employee_id: str
    employee_name: str
    device_id: str
    device_name: str
    date: str
    status: JobStatus
    attempts: int
    max_attempts: int
    created_at: datetime
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    error: str | None = None
    error_trace: str | None = None


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job: JobResponse
    queue_position: int = Field(description="1-based position in the pending list")


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    status: JobStatus
    date: str | None = None
    limit: int
    count: int


class JobPositionResponse(BaseModel):
    job_id: str
    position: int


class QueueStats(BaseModel):
    """Daily statistics merged with live queue lengths."""

    date: str
    total_today: int = 0
    completed: int = 0
    failed: int = 0
    pending: int = 0
    processing: int = 0
    avg_processing_time_ms: float = 0.0
    success_rate: float = 0.0
    last_processed_at: datetime | None = None


class JobActionResponse(BaseModel):
    """Schema for single-job operator actions (retry, delete)."""

    success: bool
    message: str


class JobCountResponse(BaseModel):
    """Schema for bulk operator actions."""

    success: bool
    count: int


class ProcessorStatusResponse(BaseModel):
    is_processing: bool
    should_stop: bool
    healthy: bool
    state: str
    current_job_id: str | None = None
    processed: int = 0
    failed: int = 0
    restarts: int = 0


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class QueueHealthResponse(BaseModel):
    status: HealthStatus
    stats: QueueStats
    processor: dict[str, Any]
    recommendations: list[str] = Field(default_factory=list)
