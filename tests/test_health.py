"""Tests for queue health evaluation."""

from manpower_api.config.settings import Settings
from manpower_api.v1.infra.jobs.health import evaluate_health
from manpower_api.v1.infra.jobs.schemas import HealthStatus, QueueStats

RUNNING = {"running": True, "healthy": True, "state": "running"}


def stats(**values) -> QueueStats:
    return QueueStats(date="2025-01-15", **values)


def test_healthy_queue():
    health = evaluate_health(stats(total_today=5, completed=5), RUNNING, Settings())

    assert health.status == HealthStatus.HEALTHY
    assert health.recommendations == []


def test_ninety_percent_success_is_healthy():
    health = evaluate_health(
        stats(total_today=10, completed=9, failed=1, success_rate=90.0),
        RUNNING,
        Settings(),
    )

    assert health.status == HealthStatus.HEALTHY


def test_stopped_processor_is_critical():
    health = evaluate_health(
        stats(), {"running": False, "state": "stopped"}, Settings()
    )

    assert health.status == HealthStatus.CRITICAL
    assert any("not running" in r for r in health.recommendations)


def test_dead_loop_is_critical():
    health = evaluate_health(
        stats(), {"running": True, "healthy": False}, Settings()
    )

    assert health.status == HealthStatus.CRITICAL


def test_many_failures_are_critical():
    health = evaluate_health(
        stats(total_today=20, completed=9, failed=11, success_rate=45.0),
        RUNNING,
        Settings(),
    )

    assert health.status == HealthStatus.CRITICAL
    # The low success rate is still reported
    assert len(health.recommendations) == 2


def test_backlog_is_warning():
    health = evaluate_health(stats(pending=51), RUNNING, Settings())

    assert health.status == HealthStatus.WARNING
    assert "51 jobs are waiting" in health.recommendations[0]


def test_low_success_rate_is_warning():
    health = evaluate_health(
        stats(total_today=20, completed=15, failed=5, success_rate=75.0),
        RUNNING,
        Settings(),
    )

    assert health.status == HealthStatus.WARNING
    assert "75.0%" in health.recommendations[0]


def test_low_success_rate_ignored_on_small_sample():
    health = evaluate_health(
        stats(total_today=4, completed=2, failed=2, success_rate=50.0),
        RUNNING,
        Settings(),
    )

    assert health.status == HealthStatus.HEALTHY


def test_thresholds_come_from_settings():
    settings = Settings(health_pending_warning=5)

    health = evaluate_health(stats(pending=6), RUNNING, settings)

    assert health.status == HealthStatus.WARNING
