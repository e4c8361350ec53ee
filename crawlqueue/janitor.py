"""Periodic sweep that deletes jobs past the retention window."""
import asyncio
import logging
from datetime import timedelta

from .job_manager import JobManager
from .models import utcnow
from .settings import Settings

log = logging.getLogger("janitor")

class Janitor:
    """
    Backstop for Redis expiry: if TTLs are missing or misconfigured, jobs older
    than ``retention_seconds`` are still removed together with their results.
    """

    def __init__(self, manager: JobManager, *, interval: float = 43200.0, retention: int = 172800):
        self.manager = manager
        self.interval = interval
        self.retention = timedelta(seconds=retention)
        self._stop = asyncio.Event()

    @classmethod
    def from_settings(cls, manager: JobManager, s: Settings) -> "Janitor":
        return cls(manager, interval=s.janitor_interval_seconds, retention=s.retention_seconds)

    def request_stop(self) -> None:
        self._stop.set()

    async def sweep(self) -> int:
        cutoff = utcnow() - self.retention
        deleted = 0
        async for job_id in self.manager.store.iter_job_ids():
            try:
                job = await self.manager.get_job(job_id)
                if job is None or job.created_at >= cutoff:
                    continue
                if await self.manager.delete_job(job_id):
                    deleted += 1
            except Exception:
                log.error("sweep failed for job", extra={"job_id": job_id, "event": "janitor_error"}, exc_info=True)

        log.info(f"cleanup completed: deleted {deleted} old jobs", extra={"event": "janitor_sweep"})
        return deleted

    async def run(self) -> None:
        log.info("janitor started", extra={"event": "janitor_start"})
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.sweep()
            except Exception:
                # the key scan itself failed; try again next interval
                log.error("sweep aborted", extra={"event": "janitor_error"}, exc_info=True)
        log.info("janitor stopped", extra={"event": "janitor_stop"})
