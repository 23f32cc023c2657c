"""
Recompute registry initialization.

Registers the built-in recompute handlers with the global recompute registry.
"""

import logging

from manpower_api.v1.core.registries import recompute_registry
from manpower_api.v1.infra.jobs.handlers import (
    HttpRecomputeHandler,
    LoggingRecomputeHandler,
)

logger = logging.getLogger(__name__)


def register_recompute_handlers() -> None:
    """Register all recompute handlers with the recompute registry."""

    logger.info("Registering recompute handlers")

    recompute_registry.register("log", LoggingRecomputeHandler)
    recompute_registry.register("http", HttpRecomputeHandler)

    logger.info(
        "Recompute handlers registered",
        extra={"registered_handlers": recompute_registry.list()},
    )


# Auto-register handlers when module is imported
register_recompute_handlers()
