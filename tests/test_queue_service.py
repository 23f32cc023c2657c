"""Tests for the queue service state transitions and statistics."""

import time
from datetime import UTC, date, datetime, timedelta

import pytest

from manpower_api.infra.store import MemoryStore
from manpower_api.v1.core.exceptions import JobNotFoundError, JobStateError
from manpower_api.v1.infra.jobs import service as service_module
from manpower_api.v1.infra.jobs.models import JobStatus, utcnow
from manpower_api.v1.infra.jobs.service import QueueService

DAY = "2025-01-15"


async def enqueue(service: QueueService, employee_id: str = "emp-1", day: str = DAY):
    return await service.enqueue(
        employee_id=employee_id,
        employee_name="Juan Dela Cruz",
        device_id="dev-1",
        device_name="Main Gate",
        date=day,
    )


async def memberships(service: QueueService, job_id: str, day: str = DAY) -> list[str]:
    """Names of every list currently holding ``job_id``."""
    keys = service.keys
    lists = {
        "pending": keys.pending,
        "processing": keys.processing,
        "completed": keys.completed(day),
        "failed": keys.failed,
    }
    found = []
    for name, key in lists.items():
        found.extend(name for item in await service.store.lrange(key, 0, -1) if item == job_id)
    return found


async def fail_attempt(service: QueueService, job_id: str, error: str = "boom"):
    claimed = await service.claim_next(0.01)
    assert claimed is not None and claimed.id == job_id
    return await service.mark_failed(job_id, error, "Traceback: boom")


class TestEnqueue:
    async def test_enqueue_creates_pending_job(self, service: QueueService):
        job = await enqueue(service)

        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert job.date == DAY

        stored = await service.get_job(job.id)
        assert stored is not None
        assert stored.employee_name == "Juan Dela Cruz"
        assert await memberships(service, job.id) == ["pending"]

        stats = await service.get_stats(DAY)
        assert stats.total_today == 1
        assert stats.pending == 1

    async def test_enqueue_accepts_date_objects(self, service: QueueService):
        job = await service.enqueue("emp-1", "", "dev-1", "", date(2025, 1, 15))
        assert job.date == DAY

    async def test_enqueue_rejects_bad_date(self, service: QueueService):
        with pytest.raises(ValueError, match="expected YYYY-MM-DD"):
            await service.enqueue("emp-1", "", "dev-1", "", "15/01/2025")

    async def test_queue_position(self, service: QueueService):
        a = await enqueue(service, "emp-a")
        b = await enqueue(service, "emp-b")
        c = await enqueue(service, "emp-c")

        assert await service.queue_position(a.id) == 1
        assert await service.queue_position(b.id) == 2
        assert await service.queue_position(c.id) == 3
        assert await service.queue_position("unknown") == 0


class TestClaim:
    async def test_claim_is_fifo(self, service: QueueService):
        first = await enqueue(service, "emp-a")
        second = await enqueue(service, "emp-b")

        claimed = await service.claim_next(0.01)
        assert claimed.id == first.id
        assert claimed.status == JobStatus.PROCESSING
        assert claimed.processing_started_at is not None

        assert await memberships(service, first.id) == ["processing"]
        assert await service.queue_position(second.id) == 1

    async def test_claim_returns_none_after_timeout(self, service: QueueService):
        started = time.monotonic()
        assert await service.claim_next(0.1) is None
        assert time.monotonic() - started >= 0.09

    async def test_claim_skips_expired_record(self, service: QueueService):
        job = await enqueue(service)
        await service.store.delete(service.keys.job(job.id))

        assert await service.claim_next(0.01) is None
        assert await memberships(service, job.id) == []

    async def test_claim_quarantines_malformed_record(self, service: QueueService):
        job = await enqueue(service)
        await service.store.hset(service.keys.job(job.id), "created_at", "yesterday")

        assert await service.claim_next(0.01) is None
        assert await memberships(service, job.id) == ["failed"]


class TestComplete:
    async def test_mark_completed(self, service: QueueService):
        job = await enqueue(service)
        await service.claim_next(0.01)

        done = await service.mark_completed(job.id)

        assert done.status == JobStatus.COMPLETED
        assert done.completed_at is not None
        assert done.processing_time_ms is not None
        assert await memberships(service, job.id) == ["completed"]

        stats = await service.get_stats(DAY)
        assert stats.completed == 1
        assert stats.pending == 0
        assert stats.processing == 0
        assert stats.success_rate == 100.0
        assert stats.last_processed_at is not None

    async def test_double_complete_does_not_double_count(self, service: QueueService):
        job = await enqueue(service)
        await service.claim_next(0.01)
        await service.mark_completed(job.id)

        with pytest.raises(JobStateError):
            await service.mark_completed(job.id)

        stats = await service.get_stats(DAY)
        assert stats.completed == 1
        assert await memberships(service, job.id) == ["completed"]

    async def test_complete_requires_processing(self, service: QueueService):
        job = await enqueue(service)
        with pytest.raises(JobStateError):
            await service.mark_completed(job.id)

    async def test_complete_unknown_job(self, service: QueueService):
        with pytest.raises(JobNotFoundError):
            await service.mark_completed("missing")


class TestFailure:
    async def test_failed_attempt_requeues_at_tail(self, service: QueueService):
        job = await enqueue(service, "emp-a")
        other = await enqueue(service, "emp-b")

        result = await fail_attempt(service, job.id)

        assert result.status == JobStatus.PENDING
        assert result.attempts == 1
        assert await service.queue_position(other.id) == 1
        assert await service.queue_position(job.id) == 2

    async def test_three_failures_fail_permanently(self, service: QueueService):
        job = await enqueue(service)

        for attempt in range(1, 4):
            result = await fail_attempt(service, job.id, f"error {attempt}")
            assert result.attempts == attempt
            assert await memberships(service, job.id) == [
                "pending" if attempt < 3 else "failed"
            ]

        assert result.status == JobStatus.FAILED
        assert result.attempts == 3
        assert result.error == "error 3"
        assert result.error_trace == "Traceback: boom"

        stats = await service.get_stats(DAY)
        assert stats.failed == 1
        assert stats.total_today == 1

        # Permanent failures lose their expiry
        assert service.keys.job(job.id) not in service.store._expires_at

    async def test_attempts_never_exceed_max(self, service: QueueService):
        job = await enqueue(service)
        for _ in range(3):
            await fail_attempt(service, job.id)

        with pytest.raises(JobStateError):
            await service.mark_failed(job.id, "again")

        stored = await service.get_job(job.id)
        assert stored.attempts == stored.max_attempts == 3

    async def test_mark_failed_from_pending(self, service: QueueService):
        job = await enqueue(service)

        result = await service.mark_failed(job.id, "rejected")

        assert result.attempts == 1
        assert await memberships(service, job.id) == ["pending"]


class TestRetryAndDelete:
    async def _failed_job(self, service: QueueService):
        job = await enqueue(service)
        for _ in range(3):
            await fail_attempt(service, job.id)
        return job

    async def test_retry_failed_resets_job(self, service: QueueService):
        job = await self._failed_job(service)

        assert await service.retry_failed(job.id) is True

        stored = await service.get_job(job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.attempts == 0
        assert stored.error is None
        assert stored.error_trace is None
        assert stored.completed_at is None
        assert stored.processing_started_at is None
        assert await memberships(service, job.id) == ["pending"]
        assert (await service.get_stats(DAY)).failed == 0

    async def test_retry_is_noop_for_non_failed_jobs(self, service: QueueService):
        completed = await enqueue(service, "emp-a")
        pending = await enqueue(service, "emp-b")
        await service.claim_next(0.01)
        await service.mark_completed(completed.id)

        assert await service.retry_failed(completed.id) is False
        assert await service.retry_failed(pending.id) is False
        assert await service.retry_failed("missing") is False
        assert await memberships(service, completed.id) == ["completed"]
        assert await memberships(service, pending.id) == ["pending"]

    async def test_retry_twice_only_requeues_once(self, service: QueueService):
        job = await self._failed_job(service)

        assert await service.retry_failed(job.id) is True
        assert await service.retry_failed(job.id) is False
        assert await memberships(service, job.id) == ["pending"]

    async def test_delete_failed(self, service: QueueService):
        job = await self._failed_job(service)

        assert await service.delete_failed(job.id) is True
        assert await service.get_job(job.id) is None
        assert await memberships(service, job.id) == []
        assert await service.delete_failed(job.id) is False

    async def test_delete_failed_ignores_pending(self, service: QueueService):
        job = await enqueue(service)
        assert await service.delete_failed(job.id) is False
        assert await service.get_job(job.id) is not None

    async def test_clear_all_failed(self, service: QueueService):
        first = await self._failed_job(service)
        second = await self._failed_job(service)

        assert await service.clear_all_failed() == 2
        assert await service.get_job(first.id) is None
        assert await service.get_job(second.id) is None
        assert await service.list_by_status(JobStatus.FAILED) == []
        assert await service.clear_all_failed() == 0

    async def test_clear_keeps_jobs_failed_during_the_clear(
        self, service: QueueService, monkeypatch
    ):
        cleared = await self._failed_job(service)
        late = await enqueue(service, "emp-late")
        for _ in range(2):
            await fail_attempt(service, late.id)
        await service.claim_next(0.01)

        read_failed = service.store.lrange

        async def lrange_then_fail(key: str, start: int, stop: int) -> list[str]:
            job_ids = await read_failed(key, start, stop)
            if key == service.keys.failed and late.id not in job_ids:
                # Another worker fails its job between the read and the removal
                await service.mark_failed(late.id, "boom")
            return job_ids

        monkeypatch.setattr(service.store, "lrange", lrange_then_fail)
        assert await service.clear_all_failed() == 1
        monkeypatch.undo()

        assert await service.get_job(cleared.id) is None
        stored = await service.get_job(late.id)
        assert stored.status == JobStatus.FAILED
        assert await memberships(service, late.id) == ["failed"]
        assert [job.id for job in await service.list_by_status(JobStatus.FAILED)] == [
            late.id
        ]
        assert await service.retry_failed(late.id) is True


class TestListingAndStats:
    async def test_list_by_status(self, service: QueueService):
        done = await enqueue(service, "emp-a")
        waiting = await enqueue(service, "emp-b")
        await service.claim_next(0.01)
        await service.mark_completed(done.id)

        pending = await service.list_by_status(JobStatus.PENDING)
        completed = await service.list_by_status("completed", date=DAY)

        assert [job.id for job in pending] == [waiting.id]
        assert [job.id for job in completed] == [done.id]
        assert await service.list_by_status(JobStatus.PROCESSING) == []

    async def test_list_respects_limit(self, service: QueueService):
        for i in range(5):
            await enqueue(service, f"emp-{i}")

        jobs = await service.list_by_status(JobStatus.PENDING, limit=2)
        assert [job.employee_id for job in jobs] == ["emp-0", "emp-1"]

    @pytest.mark.parametrize("limit", [0, -1])
    async def test_list_with_non_positive_limit_is_empty(
        self, service: QueueService, limit: int
    ):
        await enqueue(service)

        assert await service.list_by_status(JobStatus.PENDING, limit=limit) == []

    async def test_default_day_is_utc(self, service: QueueService, monkeypatch):
        late_evening = datetime(2025, 1, 15, 23, 30, tzinfo=UTC)
        monkeypatch.setattr(service_module, "utcnow", lambda: late_evening)
        await enqueue(service)

        assert service_module.today() == DAY
        assert (await service.get_stats()).total_today == 1

    async def test_list_skips_missing_records(self, service: QueueService):
        job = await enqueue(service)
        await service.store.delete(service.keys.job(job.id))

        assert await service.list_by_status(JobStatus.PENDING) == []

    async def test_success_rate_and_average(self, service: QueueService):
        jobs = [await enqueue(service, f"emp-{i}") for i in range(10)]

        for job in jobs[:9]:
            await service.claim_next(0.01)
            await service.mark_completed(job.id)
        for _ in range(3):
            await fail_attempt(service, jobs[9].id)

        stats = await service.get_stats(DAY)
        assert stats.total_today == 10
        assert stats.completed == 9
        assert stats.failed == 1
        assert stats.success_rate == 90.0
        assert stats.avg_processing_time_ms >= 0

    async def test_empty_stats(self, service: QueueService):
        stats = await service.get_stats(DAY)
        assert stats.total_today == 0
        assert stats.success_rate == 0.0
        assert stats.avg_processing_time_ms == 0.0
        assert stats.last_processed_at is None

    async def test_stats_are_per_day(self, service: QueueService):
        await enqueue(service, day="2025-01-15")
        await enqueue(service, day="2025-01-16")

        assert (await service.get_stats("2025-01-15")).total_today == 1
        assert (await service.get_stats("2025-01-16")).total_today == 1


class TestRequeueStale:
    async def _backdate(self, service: QueueService, job_id: str, seconds: int):
        started = utcnow() - timedelta(seconds=seconds)
        await service.store.hset(
            service.keys.job(job_id), "processing_started_at", started.isoformat()
        )

    async def test_stale_job_counts_as_failed_attempt(self, service: QueueService):
        job = await enqueue(service)
        await service.claim_next(0.01)
        await self._backdate(service, job.id, 3600)

        assert await service.requeue_stale(1800) == 1

        stored = await service.get_job(job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.attempts == 1
        assert await memberships(service, job.id) == ["pending"]

    async def test_fresh_job_is_left_alone(self, service: QueueService):
        job = await enqueue(service)
        await service.claim_next(0.01)

        assert await service.requeue_stale(1800) == 0
        assert await memberships(service, job.id) == ["processing"]

    async def test_orphan_without_record_is_unlinked(self, service: QueueService):
        await service.store.rpush(service.keys.processing, "ghost")

        assert await service.requeue_stale(1800) == 1
        assert await service.store.llen(service.keys.processing) == 0

    async def test_stale_on_last_attempt_fails_permanently(self, service: QueueService):
        job = await enqueue(service)
        for _ in range(2):
            await fail_attempt(service, job.id)
        await service.claim_next(0.01)
        await self._backdate(service, job.id, 3600)

        await service.requeue_stale(1800)

        stored = await service.get_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert "presumed orphaned" in stored.error
        assert await memberships(service, job.id) == ["failed"]


async def test_job_records_expire(test_settings):
    """Unfinished records vanish once their expiry passes."""
    store = MemoryStore()
    service = QueueService(store, test_settings.model_copy(update={"job_ttl_s": 0}))

    job = await enqueue(service)

    assert await service.get_job(job.id) is None
