import time
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from manpower_api.config.settings import Settings, SettingsDep
from manpower_api.infra.store import Store
from manpower_api.v1.core.exceptions import create_success_response

router = APIRouter()


class StoreHealth(BaseModel):
    """Durable store health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class HealthResponse(BaseModel):
    """Liveness response with store and processor status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    store: StoreHealth
    processor: dict[str, Any] | None = None


@router.get("/healthz", response_model=dict)
async def health_check(request: Request, settings: Settings = SettingsDep):
    """Health check endpoint with store and processor status."""

    store_health = await _check_store_health(request.app.state.store)

    processor = getattr(request.app.state, "processor", None)
    processor_status = processor.status() if processor is not None else None

    health = HealthResponse(
        ok=store_health.connected,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        store=store_health,
        processor=processor_status,
    )
    return create_success_response(data=health.model_dump())


async def _check_store_health(store: Store) -> StoreHealth:
    """Check store connectivity and response time."""
    start = time.perf_counter()

    try:
        await store.ping()
    except Exception as e:
        return StoreHealth(connected=False, error=str(e))

    response_time_ms = (time.perf_counter() - start) * 1000
    return StoreHealth(connected=True, response_time_ms=round(response_time_ms, 2))
