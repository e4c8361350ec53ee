import asyncio
import logging
from typing import Callable

from .fetcher import CrawlEngine, CrawlOptions, HttpCrawler, Page
from .errors import FetchError
from .job_manager import JobManager
from .models import CrawlResult, Job, JobStatus, utcnow
from .logging_utils import setup_logging
from .settings import Settings, settings

log = logging.getLogger("worker")

EngineFactory = Callable[[Job], CrawlEngine]

def http_engine_factory(s: Settings) -> EngineFactory:
    def factory(job: Job) -> CrawlEngine:
        return HttpCrawler(CrawlOptions.from_settings(s, job.max_requests))
    return factory

class JobProgress:
    """
    Engine callbacks for one running job.

    Pages finish concurrently, so counter writes go through one lock: the
    worker is the job's only writer and its own updates must not interleave.
    """

    def __init__(self, manager: JobManager, job: Job):
        self.manager = manager
        self.job_id = job.id
        self.total_urls = job.total_urls
        self.processed_urls = job.processed_urls
        self.failed_urls = job.failed_urls
        self.vanished = False
        self._lock = asyncio.Lock()

    async def _flush(self) -> None:
        job = await self.manager.update_job(
            self.job_id,
            total_urls=self.total_urls,
            processed_urls=self.processed_urls,
            failed_urls=self.failed_urls,
        )
        if job is None and not self.vanished:
            self.vanished = True
            log.warning("job record gone while running", extra={"job_id": self.job_id, "event": "job_vanished"})

    async def on_enqueued(self, url: str) -> None:
        async with self._lock:
            self.total_urls += 1
            await self._flush()

    async def on_page(self, page: Page) -> None:
        result = CrawlResult(url=page.url, title=page.title, full_text=page.text)
        async with self._lock:
            self.processed_urls += 1
            if self.vanished:
                return
            await self.manager.save_result(self.job_id, result)
            await self._flush()
        log.info("page stored", extra={"job_id": self.job_id, "url": page.url, "event": "page_stored"})

    async def on_failed(self, url: str, error: FetchError) -> None:
        async with self._lock:
            self.failed_urls += 1
            await self._flush()

class CrawlWorker:
    """
    idle -> claimed -> fetching -> finalizing -> idle, one job at a time.

    ``request_stop()`` is checked between jobs only; a job being fetched always
    runs to completion or failure. A job popped after the stop request is put
    back on the queue unclaimed.
    """

    def __init__(
        self,
        manager: JobManager,
        engine_factory: EngineFactory,
        *,
        poll_seconds: float = 5.0,
        dequeue_timeout: float = 5,
    ):
        self.manager = manager
        self.engine_factory = engine_factory
        self.poll_seconds = poll_seconds
        self.dequeue_timeout = dequeue_timeout
        self.current_job_id: str | None = None
        self._stop = asyncio.Event()

    @classmethod
    def from_settings(cls, manager: JobManager, s: Settings, engine_factory: EngineFactory | None = None):
        return cls(
            manager,
            engine_factory or http_engine_factory(s),
            poll_seconds=s.worker_poll_seconds,
            dequeue_timeout=s.dequeue_timeout_seconds,
        )

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        if not self._stop.is_set():
            log.info("worker stop requested", extra={"job_id": self.current_job_id, "event": "worker_stop_requested"})
        self._stop.set()

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.poll_seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> None:
        log.info("worker started", extra={"event": "worker_start"})

        while not self._stop.is_set():
            try:
                job = await self.manager.get_next_job(self.dequeue_timeout)
                if job is None:
                    await self._idle()
                    continue

                if self._stop.is_set():
                    # popped after a stop request while blocked on the queue
                    await self.manager.requeue_job(job.id)
                    break

                await self.process_job(job)

            except Exception:
                log.error("worker loop error", extra={"event": "worker_loop_error"}, exc_info=True)
                await self._idle()

        log.info("worker stopped", extra={"event": "worker_stop"})

    async def process_job(self, job: Job) -> None:
        job_id = job.id

        # a duplicate queue entry for a job that already left "queued"
        if job.status != JobStatus.queued:
            log.info("job already claimed, skipping", extra={"job_id": job_id, "event": "job_already_claimed"})
            return

        claimed = await self.manager.update_job(job_id, status=JobStatus.running, started_at=utcnow())
        if claimed is None:
            log.warning("job gone before claim", extra={"job_id": job_id, "event": "job_lost"})
            return
        log.info("job claimed", extra={"job_id": job_id, "event": "job_claimed"})

        self.current_job_id = job_id
        progress = JobProgress(self.manager, claimed)
        try:
            async with self.engine_factory(claimed) as engine:
                await engine.run(claimed.urls, progress)

        except Exception as e:
            await self.manager.update_job(
                job_id,
                status=JobStatus.failed,
                error=str(e) or type(e).__name__,
                completed_at=utcnow(),
            )
            log.error("job failed", extra={"job_id": job_id, "event": "job_failed"}, exc_info=True)
            return

        finally:
            self.current_job_id = None

        await self.manager.update_job(job_id, status=JobStatus.completed, completed_at=utcnow())
        log.info(
            f"job completed: {progress.processed_urls} processed, {progress.failed_urls} failed",
            extra={"job_id": job_id, "event": "job_completed"},
        )

def main():
    from .service import run_standalone

    setup_logging(settings.log_level, settings.log_format)
    asyncio.run(run_standalone(settings))

if __name__ == "__main__":
    main()
