"""
Queue health evaluation for the admin surface.
"""

from typing import Any

from manpower_api.config.settings import Settings
from manpower_api.v1.infra.jobs.schemas import (
    HealthStatus,
    QueueHealthResponse,
    QueueStats,
)


def evaluate_health(
    stats: QueueStats, processor_status: dict[str, Any], settings: Settings
) -> QueueHealthResponse:
    """
    Classify queue health from today's statistics and the processor state.

    Critical rules win over warning rules; every triggered rule contributes
    one recommendation.
    """
    critical: list[str] = []
    warnings: list[str] = []

    if not processor_status.get("running"):
        critical.append("Processor is not running. Start it with POST /processor/trigger.")
    elif not processor_status.get("healthy", True):
        critical.append("Processor loop is not alive. Check worker logs for errors.")

    if stats.failed > settings.health_failed_critical:
        critical.append(
            f"{stats.failed} jobs failed permanently today. "
            "Inspect the failed list and retry or clear them."
        )

    if stats.pending > settings.health_pending_warning:
        warnings.append(
            f"{stats.pending} jobs are waiting. "
            "Consider running additional workers to drain the backlog."
        )

    processed = stats.completed + stats.failed
    if (
        processed > settings.health_min_sample
        and stats.success_rate < settings.health_success_rate_warning
    ):
        warnings.append(
            f"Success rate is {stats.success_rate:.1f}%. "
            "Check the recompute service for errors."
        )

    if critical:
        status = HealthStatus.CRITICAL
    elif warnings:
        status = HealthStatus.WARNING
    else:
        status = HealthStatus.HEALTHY

    return QueueHealthResponse(
        status=status,
        stats=stats,
        processor=processor_status,
        recommendations=critical + warnings,
    )
