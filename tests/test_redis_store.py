"""Queue behaviour against a real Redis server.

Skipped unless REDIS_URL points at a disposable database.
"""

import os
from uuid import uuid4

import pytest

from manpower_api.infra.store import RedisStore
from manpower_api.v1.infra.jobs.models import JobStatus
from manpower_api.v1.infra.jobs.service import QueueService

REDIS_URL = os.getenv("REDIS_URL")

pytestmark = pytest.mark.skipif(not REDIS_URL, reason="REDIS_URL not set")


@pytest.fixture
async def redis_service(test_settings):
    store = RedisStore(REDIS_URL)
    prefix = f"test:{uuid4().hex}"
    service = QueueService(
        store, test_settings.model_copy(update={"redis_key_prefix": prefix})
    )
    yield service

    keys = [key async for key in store.client.scan_iter(f"{prefix}:*")]
    await store.delete(*keys)
    await store.close()


async def test_job_round_trip(redis_service: QueueService):
    job = await redis_service.enqueue("emp-1", "Ana", "dev-1", "Gate", "2025-01-15")

    claimed = await redis_service.claim_next(1)
    assert claimed.id == job.id
    assert claimed.status == JobStatus.PROCESSING

    done = await redis_service.mark_completed(job.id)
    assert done.status == JobStatus.COMPLETED

    stats = await redis_service.get_stats("2025-01-15")
    assert stats.total_today == 1
    assert stats.completed == 1
    assert stats.pending == 0
    assert stats.processing == 0


async def test_claim_times_out(redis_service: QueueService):
    assert await redis_service.claim_next(0.1) is None


async def test_permanent_failure_and_retry(redis_service: QueueService):
    job = await redis_service.enqueue("emp-1", "", "dev-1", "", "2025-01-15")
    for _ in range(3):
        await redis_service.claim_next(1)
        await redis_service.mark_failed(job.id, "boom")

    failed = await redis_service.list_by_status(JobStatus.FAILED)
    assert [j.id for j in failed] == [job.id]
    assert await redis_service.store.client.ttl(redis_service.keys.job(job.id)) == -1

    assert await redis_service.retry_failed(job.id) is True
    assert await redis_service.queue_position(job.id) == 1
    assert await redis_service.store.client.ttl(redis_service.keys.job(job.id)) > 0


async def test_lock_primitives(redis_service: QueueService):
    store = redis_service.store
    key = redis_service.keys.lock("emp-1", "2025-01-15")

    assert await store.set_if_absent(key, "a", 60) is True
    assert await store.set_if_absent(key, "b", 60) is False
    assert await store.delete_if_equals(key, "b") is False
    assert await store.delete_if_equals(key, "a") is True
