"""
Compute job record for the manpower recompute queue.
"""

from dataclasses import dataclass, field, fields
from datetime import UTC, date, datetime
from enum import Enum
from uuid import uuid4

from manpower_api.v1.core.exceptions import MalformedJobError

DEFAULT_MAX_ATTEMPTS = 3


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ComputeJob:
    """
    One requested recomputation of an employee's timekeeping totals for a day.

    Stored as a flat string hash; ``to_hash``/``from_hash`` are the only
    serialization path so every field has an explicit type on the way back.
    """

    employee_id: str
    employee_name: str
    device_id: str
    device_name: str
    date: str
    id: str = field(default_factory=lambda: str(uuid4()))
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: datetime = field(default_factory=utcnow)
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    error: str | None = None
    error_trace: str | None = None

    def to_hash(self) -> dict[str, str]:
        """Serialize to a string hash, omitting unset optional fields."""
        serialized: dict[str, str] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, datetime):
                serialized[f.name] = value.isoformat()
            elif isinstance(value, JobStatus):
                serialized[f.name] = value.value
            else:
                serialized[f.name] = str(value)
        return serialized

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> "ComputeJob":
        """Rebuild a job from its stored hash."""
        try:
            return cls(
                id=data["id"],
                employee_id=data["employee_id"],
                employee_name=data.get("employee_name", ""),
                device_id=data.get("device_id", ""),
                device_name=data.get("device_name", ""),
                date=data["date"],
                status=JobStatus(data["status"]),
                attempts=int(data.get("attempts", "0")),
                max_attempts=int(data.get("max_attempts", str(DEFAULT_MAX_ATTEMPTS))),
                created_at=datetime.fromisoformat(data["created_at"]),
                processing_started_at=_parse_datetime(data.get("processing_started_at")),
                completed_at=_parse_datetime(data.get("completed_at")),
                processing_time_ms=(
                    int(data["processing_time_ms"])
                    if data.get("processing_time_ms")
                    else None
                ),
                error=data.get("error"),
                error_trace=data.get("error_trace"),
            )
        except (KeyError, ValueError) as e:
            raise MalformedJobError(
                f"Malformed job record {data.get('id', '<unknown>')}: {e}"
            ) from e

    def elapsed_ms(self, now: datetime | None = None) -> int:
        """Milliseconds since processing started, 0 if never started."""
        if not self.processing_started_at:
            return 0
        now = now or utcnow()
        return max(0, int((now - self.processing_started_at).total_seconds() * 1000))

    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_retry(self) -> bool:
        """Check whether a failed attempt still leaves budget for another one."""
        return self.attempts < self.max_attempts


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def parse_target_date(value: str | date) -> str:
    """Normalize a target day to ``YYYY-MM-DD``, rejecting anything else."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as e:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e
