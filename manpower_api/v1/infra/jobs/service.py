"""
Queue service for enqueueing and managing manpower compute jobs.

This is the only writer of job records, list memberships and daily
statistics. The processor and the admin routes go through it for every
state change.
"""

import asyncio
from datetime import date as date_type
from datetime import datetime, timedelta

from fastapi import Depends, Request

from manpower_api.config.logging import get_logger
from manpower_api.config.settings import Settings
from manpower_api.infra.store import Store
from manpower_api.v1.core.exceptions import (
    JobNotFoundError,
    JobStateError,
    MalformedJobError,
)
from manpower_api.v1.infra.jobs.models import (
    ComputeJob,
    JobStatus,
    parse_target_date,
    utcnow,
)
from manpower_api.v1.infra.jobs.schemas import QueueStats

logger = get_logger(__name__)


class QueueKeys:
    """Logical key layout inside the store."""

    def __init__(self, prefix: str):
        self.prefix = prefix.rstrip(":")

    @property
    def pending(self) -> str:
        return f"{self.prefix}:queue"

    @property
    def processing(self) -> str:
        return f"{self.prefix}:processing"

    @property
    def failed(self) -> str:
        return f"{self.prefix}:failed"

    def job(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def completed(self, day: str) -> str:
        return f"{self.prefix}:completed:{day}"

    def stats(self, day: str) -> str:
        return f"{self.prefix}:stats:{day}"

    def lock(self, employee_id: str, day: str) -> str:
        return f"{self.prefix}:lock:{employee_id}:{day}"


def today() -> str:
    """Current UTC day, matching the job timestamps."""
    return utcnow().date().isoformat()


class QueueService:
    """Service owning job identity, state transitions and statistics."""

    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings
        self.keys = QueueKeys(settings.redis_key_prefix)

    async def enqueue(
        self,
        employee_id: str,
        employee_name: str,
        device_id: str,
        device_name: str,
        date: str | date_type,
    ) -> ComputeJob:
        """
        Create a pending job and append it to the tail of the pending list.

        Args:
            employee_id: Employee whose totals must be recomputed
            employee_name: Display name, kept for observability
            device_id: Device that recorded the clock-out
            device_name: Device display name
            date: Target day (``YYYY-MM-DD``)

        Returns:
            The stored job
        """
        job = ComputeJob(
            employee_id=employee_id,
            employee_name=employee_name,
            device_id=device_id,
            device_name=device_name,
            date=parse_target_date(date),
            max_attempts=self.settings.job_max_attempts,
        )

        job_key = self.keys.job(job.id)
        await self.store.hset_many(job_key, job.to_hash())
        await self.store.expire(job_key, self.settings.job_ttl_s)
        await self.store.rpush(self.keys.pending, job.id)
        await self._bump_stats(job.date, total_today=1)

        logger.info(
            "Job enqueued",
            job_id=job.id,
            employee_id=job.employee_id,
            employee_name=job.employee_name,
            date=job.date,
        )
        return job

    async def claim_next(self, timeout_s: float | None = None) -> ComputeJob | None:
        """
        Claim the job at the head of the pending list.

        Blocks up to ``timeout_s`` for work. The pending -> processing move is
        a single atomic store operation, so exactly one worker gets each id.
        Returns None on timeout or when the claimed id has no usable record.
        """
        timeout = timeout_s if timeout_s is not None else self.settings.job_claim_timeout_s
        job_id = await self.store.blocking_move(
            self.keys.pending, self.keys.processing, timeout
        )
        if job_id is None:
            return None

        data = await self.store.hgetall(self.keys.job(job_id))
        if not data:
            logger.warning("Claimed job has no stored record, skipping", job_id=job_id)
            await self.store.lrem(self.keys.processing, job_id)
            return None

        try:
            job = ComputeJob.from_hash(data)
        except MalformedJobError:
            logger.exception("Claimed job record is malformed", job_id=job_id)
            await self._quarantine(job_id)
            return None

        job.status = JobStatus.PROCESSING
        job.processing_started_at = utcnow()
        await self._save(job)

        logger.info(
            "Job claimed",
            job_id=job.id,
            employee_id=job.employee_id,
            date=job.date,
            attempt=job.attempts + 1,
        )
        return job

    async def mark_completed(self, job_id: str) -> ComputeJob:
        """Move a processing job to the completed list for its target day."""
        job = await self._require(job_id)
        if job.status != JobStatus.PROCESSING:
            raise JobStateError(job_id, job.status.value, "complete")

        now = utcnow()
        job.status = JobStatus.COMPLETED
        job.completed_at = now
        job.processing_time_ms = job.elapsed_ms(now)
        await self._save(job)

        await self.store.lrem(self.keys.processing, job_id)
        completed_key = self.keys.completed(job.date)
        await self.store.lpush(completed_key, job_id)
        await self.store.expire(completed_key, self.settings.job_ttl_s)

        await self._bump_stats(
            job.date, completed=1, total_processing_time_ms=job.processing_time_ms
        )
        await self.store.hset(
            self.keys.stats(job.date), "last_processed_at", now.isoformat()
        )

        logger.info(
            "Job completed",
            job_id=job_id,
            processing_time_ms=job.processing_time_ms,
        )
        return job

    async def mark_failed(
        self, job_id: str, error: str, error_trace: str | None = None
    ) -> ComputeJob:
        """
        Record a failed attempt.

        Below the attempt budget the job goes back to the tail of the pending
        list; on the last attempt it moves to the permanent failed list and
        loses its expiry.
        """
        job = await self._require(job_id)
        if job.is_terminal():
            raise JobStateError(job_id, job.status.value, "fail")

        await self.store.lrem(self.keys.processing, job_id)
        await self.store.lrem(self.keys.pending, job_id)
        return await self._record_failure(job, error, error_trace)

    async def _record_failure(
        self, job: ComputeJob, error: str, error_trace: str | None
    ) -> ComputeJob:
        now = utcnow()
        if job.status == JobStatus.PROCESSING:
            job.processing_time_ms = job.elapsed_ms(now)
        job.attempts += 1

        if job.can_retry():
            job.status = JobStatus.PENDING
            await self._save(job)
            await self.store.rpush(self.keys.pending, job.id)

            logger.warning(
                "Job attempt failed, requeued",
                job_id=job.id,
                attempts=job.attempts,
                max_attempts=job.max_attempts,
                error=error,
            )
            return job

        job.status = JobStatus.FAILED
        job.error = error
        job.error_trace = error_trace
        job.completed_at = now
        await self._save(job)

        await self.store.lpush(self.keys.failed, job.id)
        await self.store.persist(self.keys.job(job.id))
        await self._bump_stats(job.date, failed=1)

        logger.error(
            "Job failed permanently",
            job_id=job.id,
            attempts=job.attempts,
            employee_id=job.employee_id,
            date=job.date,
            error=error,
        )
        return job

    async def get_job(self, job_id: str) -> ComputeJob | None:
        """Get job by ID, None when absent or unreadable."""
        data = await self.store.hgetall(self.keys.job(job_id))
        if not data:
            return None

        try:
            return ComputeJob.from_hash(data)
        except MalformedJobError:
            logger.warning("Skipping malformed job record", job_id=job_id)
            return None

    async def list_by_status(
        self,
        status: JobStatus | str,
        date: str | date_type | None = None,
        limit: int = 100,
    ) -> list[ComputeJob]:
        """List jobs currently held in the list that backs ``status``."""
        status = JobStatus(status)
        if status == JobStatus.PENDING:
            key = self.keys.pending
        elif status == JobStatus.PROCESSING:
            key = self.keys.processing
        elif status == JobStatus.COMPLETED:
            key = self.keys.completed(parse_target_date(date) if date else today())
        else:
            key = self.keys.failed

        if limit <= 0:
            return []

        job_ids = await self.store.lrange(key, 0, limit - 1)
        jobs = await asyncio.gather(*(self.get_job(job_id) for job_id in job_ids))
        return [job for job in jobs if job is not None]

    async def queue_position(self, job_id: str) -> int:
        """1-based position in the pending list, 0 if the job is not pending."""
        job_ids = await self.store.lrange(self.keys.pending, 0, -1)
        try:
            return job_ids.index(job_id) + 1
        except ValueError:
            return 0

    async def delete_failed(self, job_id: str) -> bool:
        """Delete a permanently failed job."""
        removed = await self.store.lrem(self.keys.failed, job_id)
        if not removed:
            return False

        await self.store.delete(self.keys.job(job_id))
        logger.info("Failed job deleted", job_id=job_id)
        return True

    async def retry_failed(self, job_id: str) -> bool:
        """Reset a permanently failed job and put it back in the pending list."""
        job = await self.get_job(job_id)
        if job is None or job.status != JobStatus.FAILED:
            return False

        # Lost a race with another retry or delete
        if not await self.store.lrem(self.keys.failed, job_id):
            return False

        job.status = JobStatus.PENDING
        job.attempts = 0
        job.error = None
        job.error_trace = None
        job.completed_at = None
        job.processing_started_at = None
        job.processing_time_ms = None
        await self._save(job, replace=True)

        await self.store.expire(self.keys.job(job_id), self.settings.job_ttl_s)
        await self.store.rpush(self.keys.pending, job_id)
        await self._bump_stats(job.date, failed=-1)

        logger.info("Failed job queued for retry", job_id=job_id)
        return True

    async def clear_all_failed(self) -> int:
        """Delete every permanently failed job, returning how many were removed."""
        removed = 0
        for job_id in await self.store.lrange(self.keys.failed, 0, -1):
            # Ids failed after the read stay listed for the next clear
            if await self.store.lrem(self.keys.failed, job_id):
                await self.store.delete(self.keys.job(job_id))
                removed += 1

        logger.info("Cleared failed jobs", count=removed)
        return removed

    async def get_stats(self, date: str | date_type | None = None) -> QueueStats:
        """Daily counters merged with live pending/processing lengths."""
        target = parse_target_date(date) if date else today()
        raw = await self.store.hgetall(self.keys.stats(target))

        total_today = int(raw.get("total_today", "0"))
        completed = int(raw.get("completed", "0"))
        failed = int(raw.get("failed", "0"))
        total_processing_time_ms = int(raw.get("total_processing_time_ms", "0"))
        last_processed_at = raw.get("last_processed_at")

        # Derived from the lists, never stored, so a crash cannot skew them
        pending = await self.store.llen(self.keys.pending)
        processing = await self.store.llen(self.keys.processing)

        return QueueStats(
            date=target,
            total_today=total_today,
            completed=completed,
            failed=failed,
            pending=pending,
            processing=processing,
            avg_processing_time_ms=(
                total_processing_time_ms / completed if completed > 0 else 0.0
            ),
            success_rate=(completed * 100 / total_today if total_today > 0 else 0.0),
            last_processed_at=(
                datetime.fromisoformat(last_processed_at) if last_processed_at else None
            ),
        )

    async def requeue_stale(self, max_age_s: int | None = None) -> int:
        """
        Recover ids stranded in the processing list by a crashed worker.

        Jobs processing for longer than ``max_age_s`` are reported as a failed
        attempt, so the retry budget still bounds them. Ids without a record
        are unlinked, malformed ones are moved to the failed list.

        Returns:
            Number of processing entries recovered
        """
        max_age_s = max_age_s if max_age_s is not None else self.settings.job_stale_after_s
        cutoff = utcnow() - timedelta(seconds=max_age_s)
        recovered = 0

        for job_id in await self.store.lrange(self.keys.processing, 0, -1):
            data = await self.store.hgetall(self.keys.job(job_id))
            if not data:
                if await self.store.lrem(self.keys.processing, job_id):
                    logger.warning("Unlinked processing job without record", job_id=job_id)
                    recovered += 1
                continue

            try:
                job = ComputeJob.from_hash(data)
            except MalformedJobError:
                logger.warning("Quarantined malformed processing job", job_id=job_id)
                await self._quarantine(job_id)
                recovered += 1
                continue

            if job.is_terminal():
                # Finished, but the worker died before unlinking it
                if await self.store.lrem(self.keys.processing, job_id):
                    recovered += 1
                continue

            started = job.processing_started_at or job.created_at
            if started > cutoff:
                continue

            # Another sweeper or the owning worker got there first
            if not await self.store.lrem(self.keys.processing, job_id):
                continue

            if job.status == JobStatus.PROCESSING:
                await self._record_failure(
                    job, f"Processing exceeded {max_age_s}s, presumed orphaned", None
                )
            else:
                # Claimed but never marked processing
                await self.store.rpush(self.keys.pending, job_id)
            recovered += 1

        if recovered:
            logger.warning(
                "Recovered stale processing jobs",
                count=recovered,
                max_age_s=max_age_s,
            )
        return recovered

    async def _require(self, job_id: str) -> ComputeJob:
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def _save(self, job: ComputeJob, replace: bool = False) -> None:
        job_key = self.keys.job(job.id)
        if replace:
            # Drops cleared optional fields; the caller re-applies expiry
            await self.store.delete(job_key)
        await self.store.hset_many(job_key, job.to_hash())

    async def _quarantine(self, job_id: str) -> None:
        await self.store.lrem(self.keys.processing, job_id)
        await self.store.lpush(self.keys.failed, job_id)
        await self.store.persist(self.keys.job(job_id))

    async def _bump_stats(self, day: str, **increments: int) -> None:
        stats_key = self.keys.stats(day)
        for field_name, amount in increments.items():
            await self.store.hincrby(stats_key, field_name, amount)
        await self.store.expire(stats_key, self.settings.job_stats_ttl_s)


def get_queue_service(request: Request) -> QueueService:
    """Dependency injection function for the application's queue service."""
    return request.app.state.queue_service


# Convenience type alias for dependency injection
QueueServiceDep = Depends(get_queue_service)
