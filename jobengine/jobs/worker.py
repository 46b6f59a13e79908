"""Job worker - repeatedly dispatches eligible jobs."""
import asyncio
import os
import socket
import traceback
from typing import Optional

import structlog

from jobengine import __version__
from jobengine.jobs.dispatcher import Dispatcher

logger = structlog.get_logger(__name__)


def generate_worker_id() -> str:
    """Generate a unique worker ID: hostname:pid."""
    return f"{socket.gethostname()}:{os.getpid()}"


class WorkerRunner:
    """Single logical worker: at most one job is processing under it."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        poll_interval_s: float = 1.0,
        worker_id: Optional[str] = None,
    ):
        self._dispatcher = dispatcher
        self._poll_interval_s = poll_interval_s
        self._worker_id = worker_id or generate_worker_id()
        self._running = False

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the worker loop. Returns once stop() is called or the task is cancelled."""
        self._running = True

        logger.info(
            "worker_started",
            worker_id=self._worker_id,
            version=__version__,
            poll_interval_s=self._poll_interval_s,
        )

        while self._running:
            try:
                job = await self._dispatcher.dispatch_next()
                if job is None:
                    # No job available, sleep
                    await asyncio.sleep(self._poll_interval_s)

            except asyncio.CancelledError:
                logger.info("worker_cancelled", worker_id=self._worker_id)
                break
            except Exception as e:
                logger.error(
                    "worker_loop_error", error=str(e), traceback=traceback.format_exc()
                )
                await asyncio.sleep(self._poll_interval_s)

        self._running = False
        logger.info("worker_stopped", worker_id=self._worker_id)

    async def stop(self):
        """Stop the worker loop gracefully after the current job."""
        self._running = False

    async def run_until_idle(self, max_jobs: Optional[int] = None) -> int:
        """Dispatch until nothing is eligible. Returns the number of jobs run."""
        count = 0
        while max_jobs is None or count < max_jobs:
            job = await self._dispatcher.dispatch_next()
            if job is None:
                break
            count += 1
        logger.info("worker_drained", worker_id=self._worker_id, jobs_run=count)
        return count
