"""API Endpoint Wrappers - Typed calls to the admin surface"""

from typing import Any

import httpx

from ..utils.config_manager import config
from .base import APIClient, ComputeQueueError

__all__ = ["ComputeQueueClient", "ComputeQueueError"]

QUEUE_PREFIX = "/manpower-queue"


class ComputeQueueClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers", {})

        self.api = APIClient(
            base_url=final_base_url,
            timeout=api_config.get("timeout", 30),
            headers=final_headers,
            transport=transport,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Job Endpoints
    def enqueue(
        self,
        employee_id: str,
        device_id: str,
        date: str,
        employee_name: str = "",
        device_name: str = "",
    ) -> dict[str, Any]:
        """Enqueue a recompute job"""
        data = {
            "employee_id": employee_id,
            "employee_name": employee_name,
            "device_id": device_id,
            "device_name": device_name,
            "date": date,
        }
        return self.api.post(f"{QUEUE_PREFIX}/jobs", data)

    def get_stats(self, date: str | None = None) -> dict[str, Any]:
        """Get daily queue statistics"""
        params = {"date": date} if date else None
        return self.api.get(f"{QUEUE_PREFIX}/stats", params)

    def list_jobs(
        self, status: str, date: str | None = None, limit: int = 100
    ) -> dict[str, Any]:
        """List jobs held in a status list"""
        params: dict[str, Any] = {"status": status, "limit": limit}
        if date:
            params["date"] = date
        return self.api.get(f"{QUEUE_PREFIX}/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get specific job by ID"""
        return self.api.get(f"{QUEUE_PREFIX}/job/{job_id}")

    def get_position(self, job_id: str) -> dict[str, Any]:
        """Get pending position of a job"""
        return self.api.get(f"{QUEUE_PREFIX}/job/{job_id}/position")

    def retry_job(self, job_id: str) -> dict[str, Any]:
        """Retry a permanently failed job"""
        return self.api.post(f"{QUEUE_PREFIX}/retry/{job_id}")

    def delete_failed(self, job_id: str) -> dict[str, Any]:
        """Delete a permanently failed job"""
        return self.api.delete(f"{QUEUE_PREFIX}/failed/{job_id}")

    def clear_failed(self) -> dict[str, Any]:
        """Delete every permanently failed job"""
        return self.api.delete(f"{QUEUE_PREFIX}/failed/all", {"confirm": "yes"})

    # Processor Endpoints
    def processor_status(self) -> dict[str, Any]:
        """Get processor state"""
        return self.api.get(f"{QUEUE_PREFIX}/processor/status")

    def trigger_processor(self) -> dict[str, Any]:
        """Start the processor if it is not running"""
        return self.api.post(f"{QUEUE_PREFIX}/processor/trigger")

    def sweep_stale(self) -> dict[str, Any]:
        """Recover orphaned processing jobs"""
        return self.api.post(f"{QUEUE_PREFIX}/processor/sweep")

    def queue_health(self) -> dict[str, Any]:
        """Get queue health with recommendations"""
        return self.api.get(f"{QUEUE_PREFIX}/health")
