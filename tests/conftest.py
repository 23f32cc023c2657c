import asyncio
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from manpower_api.config.settings import Settings
from manpower_api.infra.store import MemoryStore
from manpower_api.main import create_app
from manpower_api.v1.infra.jobs.service import QueueService


class FakeRecompute:
    """Recompute callback that records calls and fails on demand."""

    def __init__(self, fail_times: int = 0, error: Exception | None = None):
        self.calls: list[tuple[str, str]] = []
        self.fail_times = fail_times
        self.error = error or RuntimeError("timekeeping service unavailable")

    async def __call__(self, employee_id: str, date: str) -> None:
        self.calls.append((employee_id, date))
        if len(self.calls) <= self.fail_times:
            raise self.error


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def test_settings() -> Settings:
    """Settings tuned for fast, deterministic tests."""
    return Settings(
        environment="development",
        debug=True,
        redis_key_prefix="test:compute",
        job_claim_timeout_s=0.05,
        processor_autostart=False,
        processor_supervisor_interval_s=0.05,
        processor_shutdown_grace_s=1,
        processor_error_backoff_s=0,
        job_stale_sweep_enabled=False,
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def service(store: MemoryStore, test_settings: Settings) -> QueueService:
    return QueueService(store, test_settings)


@pytest.fixture
def recompute() -> FakeRecompute:
    return FakeRecompute()


@pytest.fixture
def app(test_settings: Settings, recompute: FakeRecompute):
    """Application wired to a fresh in-memory store."""
    return create_app(test_settings, MemoryStore(), recompute)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client that runs the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_recompute_cls() -> type[FakeRecompute]:
    return FakeRecompute


@pytest.fixture
def eventually():
    """Awaitable poller for conditions reached by background tasks."""
    return wait_until
