"""Starts and stops the worker and janitor alongside the process."""
import asyncio
import logging
import signal
from typing import Callable

from .janitor import Janitor
from .job_manager import JobManager
from .redis_client import StoreContext
from .settings import Settings
from .worker import CrawlWorker, EngineFactory

log = logging.getLogger("service")

class BackgroundServices:
    def __init__(self, worker: CrawlWorker, janitor: Janitor, *, grace: float = 30.0):
        self.worker = worker
        self.janitor = janitor
        self.grace = grace
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_settings(
        cls, manager: JobManager, s: Settings, engine_factory: EngineFactory | None = None
    ) -> "BackgroundServices":
        return cls(
            CrawlWorker.from_settings(manager, s, engine_factory),
            Janitor.from_settings(manager, s),
            grace=s.shutdown_grace_seconds,
        )

    def start(self) -> None:
        self._tasks = [
            asyncio.create_task(self.worker.run(), name="worker"),
            asyncio.create_task(self.janitor.run(), name="janitor"),
        ]

    @property
    def alive(self) -> bool:
        return bool(self._tasks) and not any(task.done() for task in self._tasks)

    def request_stop(self) -> None:
        self.worker.request_stop()
        self.janitor.request_stop()

    async def wait(self) -> None:
        await asyncio.gather(*self._tasks)

    async def stop(self) -> None:
        """Ask both loops to finish, then cancel whatever outlives the grace period."""
        self.request_stop()
        if not self._tasks:
            return
        _, pending = await asyncio.wait(self._tasks, timeout=self.grace)
        for task in pending:
            log.warning(
                f"{task.get_name()} did not stop within {self.grace}s, cancelling",
                extra={"job_id": self.worker.current_job_id, "event": "shutdown_forced"},
            )
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

def install_fault_handler(loop: asyncio.AbstractEventLoop, on_fault: Callable[[], None]) -> None:
    """Unhandled errors in the loop are logged, then ``on_fault`` starts an orderly shutdown."""

    def handler(loop, context):
        log.error(
            context.get("message", "unhandled error in event loop"),
            extra={"event": "loop_error"},
            exc_info=context.get("exception"),
        )
        on_fault()

    loop.set_exception_handler(handler)

async def run_standalone(s: Settings, engine_factory: EngineFactory | None = None) -> None:
    ctx = StoreContext.from_settings(s)
    manager = JobManager.from_context(ctx, s)
    services = BackgroundServices.from_settings(manager, s, engine_factory)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, services.request_stop)
    install_fault_handler(loop, services.request_stop)

    services.start()
    try:
        await services.wait()
    finally:
        await services.stop()
        await ctx.close()
