from enum import Enum
from typing import Literal

from fastapi import Depends
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


class RecomputeHandlerType(str, Enum):
    LOG = "log"
    HTTP = "http"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Manpower Compute Queue", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=True, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    workers: int = Field(default=1, description="Number of workers")

    # Durable store
    store_backend: StoreBackend = Field(
        default=StoreBackend.MEMORY, description="Queue store backend"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    redis_key_prefix: str = Field(
        default="manpower:compute", description="Prefix for every queue key"
    )

    # Jobs
    job_max_attempts: int = Field(default=3, ge=1, description="Attempts before a job fails permanently")
    job_ttl_s: int = Field(default=86400, description="Job record and completed list retention")
    job_stats_ttl_s: int = Field(default=604800, description="Daily statistics retention")
    job_claim_timeout_s: float = Field(default=5, gt=0, description="Blocking claim timeout in seconds")

    # Processor
    processor_autostart: bool = Field(
        default=True, description="Start the processor with the application"
    )
    processor_supervisor_interval_s: float = Field(
        default=10, gt=0, description="Supervisor liveness check interval"
    )
    processor_shutdown_grace_s: float = Field(
        default=30, ge=0, description="Grace period for the in-flight job on stop"
    )
    processor_error_backoff_s: float = Field(
        default=5, ge=0, description="Back-off after a store error in the loop"
    )

    # Orphaned processing jobs
    job_stale_sweep_enabled: bool = Field(
        default=True, description="Periodically requeue orphaned processing jobs"
    )
    job_stale_after_s: int = Field(
        default=1800, description="Age after which a processing job is presumed orphaned"
    )
    job_stale_sweep_interval_s: float = Field(
        default=300, gt=0, description="Interval between orphan sweeps"
    )

    # Recompute callback
    recompute_handler: RecomputeHandlerType = Field(
        default=RecomputeHandlerType.LOG, description="Recompute callback implementation"
    )
    recompute_url: str | None = Field(
        default=None, description="Endpoint used by the http recompute handler"
    )
    recompute_timeout_s: float = Field(default=120, description="HTTP recompute timeout")
    recompute_lock_enabled: bool = Field(
        default=False, description="Serialize recomputes per employee and date"
    )
    recompute_lock_ttl_s: int = Field(default=600, description="Recompute lock expiry")

    # Health thresholds
    health_failed_critical: int = Field(default=10, description="Failed jobs above which health is critical")
    health_pending_warning: int = Field(default=50, description="Pending backlog above which health is warning")
    health_success_rate_warning: float = Field(
        default=90.0, description="Success rate (%) below which health is warning"
    )
    health_min_sample: int = Field(
        default=10, description="Jobs processed today before the success rate counts"
    )

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        # The memory store does not survive a restart
        if (
            self.environment == "production"
            and self.store_backend == StoreBackend.MEMORY
        ):
            raise ValueError(
                "STORE_BACKEND=memory is not allowed in production environment. "
                "Use STORE_BACKEND=redis for production deployments."
            )

        if self.recompute_handler == RecomputeHandlerType.HTTP and not self.recompute_url:
            raise ValueError("RECOMPUTE_URL is required when RECOMPUTE_HANDLER=http")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings


# Convenience type alias for dependency injection
SettingsDep = Depends(get_settings)
