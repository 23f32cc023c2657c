"""
Supervised worker loop that drains the compute queue.
"""

import asyncio
import os
import signal
import socket
import traceback
from enum import Enum
from typing import Any

from fastapi import Depends, Request

from manpower_api.config.logging import get_logger
from manpower_api.config.settings import Settings
from manpower_api.v1.core.registries import RecomputeCallback
from manpower_api.v1.infra.jobs.models import ComputeJob
from manpower_api.v1.infra.jobs.service import QueueService

logger = get_logger(__name__)


class ProcessorState(str, Enum):
    """Processor lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class JobProcessor:
    """
    Claims jobs one at a time and drives each to a terminal outcome.

    Features:
    - Blocking claim with a bounded timeout instead of polling
    - Supervisor task that restarts a main loop which died unexpectedly
    - Periodic sweep of processing jobs orphaned by crashed workers
    - Cooperative stop with a bounded grace period for the in-flight job

    State transitions happen under a single lock. Each main loop carries the
    generation it was started with and exits once a newer generation exists,
    so a supervisor restart can never leave two loops claiming work.
    """

    def __init__(
        self,
        service: QueueService,
        recompute: RecomputeCallback,
        settings: Settings,
    ):
        self.service = service
        self.recompute = recompute
        self.settings = settings
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"

        self._state = ProcessorState.IDLE
        self._generation = 0
        self._transition_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None
        self._supervisor_task: asyncio.Task | None = None
        self._sweep_task: asyncio.Task | None = None

        self.current_job_id: str | None = None
        self.processed_count = 0
        self.failed_count = 0
        self.restart_count = 0

    @property
    def state(self) -> ProcessorState:
        return self._state

    def is_loop_alive(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def status(self) -> dict[str, Any]:
        """Snapshot of the processor for the admin surface."""
        running = self._state == ProcessorState.RUNNING
        return {
            "running": running,
            "stopping": self._state == ProcessorState.STOPPING,
            "state": self._state.value,
            "healthy": running and self.is_loop_alive(),
            "worker_id": self.worker_id,
            "current_job_id": self.current_job_id,
            "processed": self.processed_count,
            "failed": self.failed_count,
            "restarts": self.restart_count,
        }

    async def start(self) -> bool:
        """Start the main loop and its helpers. False if already running."""
        async with self._transition_lock:
            if self._state == ProcessorState.RUNNING and self.is_loop_alive():
                return False

            self._state = ProcessorState.RUNNING
            self._spawn_loop()

            if self._supervisor_task is None or self._supervisor_task.done():
                self._supervisor_task = asyncio.create_task(
                    self._supervise(), name="compute-queue-supervisor"
                )
            if self.settings.job_stale_sweep_enabled and (
                self._sweep_task is None or self._sweep_task.done()
            ):
                self._sweep_task = asyncio.create_task(
                    self._sweep_loop(), name="compute-queue-sweeper"
                )

        logger.info(
            "Processor started",
            worker_id=self.worker_id,
            claim_timeout_s=self.settings.job_claim_timeout_s,
        )
        return True

    async def stop(self) -> None:
        """
        Stop the processor gracefully.

        The in-flight recompute cannot be interrupted; this waits up to the
        configured grace period for it and then returns regardless.
        """
        async with self._transition_lock:
            if self._state not in (ProcessorState.RUNNING, ProcessorState.STOPPING):
                return
            self._state = ProcessorState.STOPPING
            loop_task = self._loop_task
            helpers = [t for t in (self._supervisor_task, self._sweep_task) if t]
            self._supervisor_task = None
            self._sweep_task = None

        logger.info("Stopping processor", worker_id=self.worker_id)

        for task in helpers:
            task.cancel()
        if helpers:
            await asyncio.gather(*helpers, return_exceptions=True)

        if loop_task is not None and not loop_task.done():
            done, _ = await asyncio.wait(
                {loop_task}, timeout=self.settings.processor_shutdown_grace_s
            )
            if not done:
                logger.warning(
                    "Processor stopped with a job still in flight",
                    worker_id=self.worker_id,
                    current_job_id=self.current_job_id,
                    grace_s=self.settings.processor_shutdown_grace_s,
                )

        async with self._transition_lock:
            if self._state == ProcessorState.STOPPING:
                self._state = ProcessorState.STOPPED

        logger.info("Processor stopped", worker_id=self.worker_id)

    async def trigger_once(self) -> bool:
        """Start the loop if it is not running; used for diagnostics."""
        if self._state == ProcessorState.RUNNING and self.is_loop_alive():
            return False
        if self._state == ProcessorState.STOPPING:
            return False
        return await self.start()

    def _spawn_loop(self) -> None:
        self._generation += 1
        self._loop_task = asyncio.create_task(
            self._run_loop(self._generation), name="compute-queue-loop"
        )

    def _is_current(self, generation: int) -> bool:
        return self._state == ProcessorState.RUNNING and generation == self._generation

    async def _run_loop(self, generation: int) -> None:
        """Main worker loop that claims and processes jobs."""
        while self._is_current(generation):
            try:
                job = await self.service.claim_next(self.settings.job_claim_timeout_s)
            except Exception:
                logger.exception("Failed to claim job", worker_id=self.worker_id)
                await asyncio.sleep(self.settings.processor_error_backoff_s)
                continue

            if job is None:
                continue

            # A claimed job is always finished, even when a stop arrived mid-claim
            await self.process_job(job)

    async def process_job(self, job: ComputeJob) -> None:
        """Run the recompute callback for one job and report the outcome."""
        job_logger = logger.bind(
            job_id=job.id, employee_id=job.employee_id, date=job.date
        )
        self.current_job_id = job.id

        try:
            await self.recompute(job.employee_id, job.date)
        except Exception as e:
            job_logger.warning("Recompute failed", error=str(e))
            self.failed_count += 1
            await self._report(
                job_logger,
                self.service.mark_failed,
                job.id,
                str(e) or e.__class__.__name__,
                traceback.format_exc(),
            )
        else:
            self.processed_count += 1
            await self._report(job_logger, self.service.mark_completed, job.id)
        finally:
            self.current_job_id = None

    async def _report(self, job_logger, report, *args: Any) -> None:
        try:
            await report(*args)
        except Exception:
            # The job stays in the processing list for the stale sweep
            job_logger.exception("Failed to report job outcome")
            await asyncio.sleep(self.settings.processor_error_backoff_s)

    async def _supervise(self) -> None:
        """Restart the main loop if it died while the processor should run."""
        while True:
            await asyncio.sleep(self.settings.processor_supervisor_interval_s)

            async with self._transition_lock:
                if self._state != ProcessorState.RUNNING or self.is_loop_alive():
                    continue

                dead = self._loop_task
                error = None
                if dead is not None and not dead.cancelled():
                    error = dead.exception()

                logger.error(
                    "Processor loop died, restarting",
                    worker_id=self.worker_id,
                    error=repr(error) if error else None,
                )
                self.restart_count += 1
                self._spawn_loop()

    async def _sweep_loop(self) -> None:
        """Requeue processing jobs orphaned by crashed workers."""
        while True:
            try:
                await self.service.requeue_stale(self.settings.job_stale_after_s)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in stale job sweep", worker_id=self.worker_id)

            await asyncio.sleep(self.settings.job_stale_sweep_interval_s)


def get_processor(request: Request) -> JobProcessor:
    """Dependency injection function for the application's processor."""
    return request.app.state.processor


# Convenience type alias for dependency injection
ProcessorDep = Depends(get_processor)


async def run_worker(settings: Settings) -> None:
    """Run a standalone processor until SIGINT/SIGTERM."""
    from manpower_api.infra.store import create_store
    from manpower_api.v1.infra.jobs import registry_init  # noqa: F401
    from manpower_api.v1.infra.jobs.handlers import build_recompute

    store = create_store(settings)
    service = QueueService(store, settings)
    processor = JobProcessor(service, build_recompute(settings, store), settings)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    await processor.start()
    try:
        await stop_requested.wait()
    finally:
        await processor.stop()
        await store.close()


def main() -> None:
    """Entry point for the ``manpower-worker`` command."""
    from manpower_api.config.logging import setup_logging
    from manpower_api.config.settings import settings

    setup_logging()
    asyncio.run(run_worker(settings))
