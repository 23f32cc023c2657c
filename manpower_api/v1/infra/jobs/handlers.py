"""
Recompute callbacks invoked by the processor.

Each handler implements the RecomputeCallback protocol and is registered in
the recompute registry. The actual timekeeping computation lives outside this
service; these handlers only hand the request over.
"""

import logging
from uuid import uuid4

import httpx

from manpower_api.config.settings import Settings
from manpower_api.infra.store import Store
from manpower_api.v1.core.exceptions import RecomputeBusyError
from manpower_api.v1.core.registries import RecomputeCallback, recompute_registry
from manpower_api.v1.infra.jobs.service import QueueKeys

logger = logging.getLogger(__name__)


class LoggingRecomputeHandler:
    """Development handler: records the request and succeeds."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def __call__(self, employee_id: str, date: str) -> None:
        logger.info(
            "Recompute requested",
            extra={"employee_id": employee_id, "date": date},
        )


class HttpRecomputeHandler:
    """
    Calls the timekeeping service's recompute endpoint.

    Request body:
    {
        "employee_id": "employee-id",
        "date": "YYYY-MM-DD"
    }

    Any non-2xx response or transport error fails the attempt.
    """

    def __init__(
        self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ):
        self.settings = settings
        self.transport = transport

    async def __call__(self, employee_id: str, date: str) -> None:
        if not self.settings.recompute_url:
            raise ValueError("recompute_url is not configured")

        async with httpx.AsyncClient(
            timeout=self.settings.recompute_timeout_s, transport=self.transport
        ) as client:
            response = await client.post(
                self.settings.recompute_url,
                json={"employee_id": employee_id, "date": date},
            )
            response.raise_for_status()

        logger.info(
            "Recompute delivered",
            extra={
                "employee_id": employee_id,
                "date": date,
                "status_code": response.status_code,
            },
        )


class LockedRecompute:
    """
    Serializes recomputes of the same employee day across workers.

    Wraps a callback whose side effects are not naturally idempotent. When
    the lock is held elsewhere the attempt fails with RecomputeBusyError and
    the job goes through the normal retry path.
    """

    def __init__(
        self,
        inner: RecomputeCallback,
        store: Store,
        key_prefix: str,
        ttl_s: int,
    ):
        self.inner = inner
        self.store = store
        self.keys = QueueKeys(key_prefix)
        self.ttl_s = ttl_s

    async def __call__(self, employee_id: str, date: str) -> None:
        key = self.keys.lock(employee_id, date)
        token = str(uuid4())

        if not await self.store.set_if_absent(key, token, self.ttl_s):
            raise RecomputeBusyError(employee_id, date)

        try:
            await self.inner(employee_id, date)
        finally:
            await self.store.delete_if_equals(key, token)


def build_recompute(settings: Settings, store: Store) -> RecomputeCallback:
    """Resolve the configured recompute handler, wrapping it in a lock if enabled."""
    handler = recompute_registry.get(settings.recompute_handler.value)(settings)

    if settings.recompute_lock_enabled:
        return LockedRecompute(
            handler, store, settings.redis_key_prefix, settings.recompute_lock_ttl_s
        )
    return handler
