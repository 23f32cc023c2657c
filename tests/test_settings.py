import pytest

from manpower_api.config.settings import (
    RecomputeHandlerType,
    Settings,
    StoreBackend,
    get_settings,
)


def test_default_settings():
    """Test default settings values."""
    settings = Settings()

    assert settings.app_name == "Manpower Compute Queue"
    assert settings.version == "1.0.0"
    assert settings.store_backend == StoreBackend.MEMORY
    assert settings.redis_key_prefix == "manpower:compute"
    assert settings.recompute_handler == RecomputeHandlerType.LOG


def test_job_defaults():
    """Retry, retention and sweep defaults."""
    settings = Settings()

    assert settings.job_max_attempts == 3
    assert settings.job_ttl_s == 86400
    assert settings.job_stats_ttl_s == 604800
    assert settings.job_claim_timeout_s == 5
    assert settings.job_stale_after_s == 1800
    assert settings.processor_shutdown_grace_s == 30


def test_production_validation_blocks_memory_store():
    """Test that production environment blocks the memory backend."""
    with pytest.raises(ValueError, match="STORE_BACKEND=memory is not allowed in production"):
        Settings(environment="production", store_backend=StoreBackend.MEMORY)


def test_production_allows_redis_store():
    settings = Settings(environment="production", store_backend=StoreBackend.REDIS)
    assert settings.store_backend == StoreBackend.REDIS


def test_http_handler_requires_url():
    with pytest.raises(ValueError, match="RECOMPUTE_URL is required"):
        Settings(recompute_handler=RecomputeHandlerType.HTTP)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("STORE_BACKEND", "redis")

    settings = Settings()

    assert settings.job_max_attempts == 5
    assert settings.store_backend == StoreBackend.REDIS


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        Settings(job_max_attempts=0)


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert settings.app_name == "Manpower Compute Queue"
