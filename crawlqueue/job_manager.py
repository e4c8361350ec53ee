import logging
import uuid

from .errors import JobStateError, JobValidationError
from .job_queue import JobQueue
from .job_store import JobStore
from .models import CrawlResult, Job, JobStatus
from .redis_client import StoreContext
from .settings import Settings

log = logging.getLogger("jobs")

class JobManager:
    """
    Lifecycle API shared by the producer (HTTP) path and the worker.

    ``update_job`` is a read-merge-write of the whole record and is not atomic.
    While a job is running the worker is its only writer; nothing else may
    update a running job's status or counters.
    """

    def __init__(self, store: JobStore, queue: JobQueue, *, default_max_requests: int = 100):
        self.store = store
        self.queue = queue
        self.default_max_requests = default_max_requests

    @classmethod
    def from_context(cls, ctx: StoreContext, s: Settings) -> "JobManager":
        store = JobStore(
            ctx.redis,
            job_ttl=s.job_ttl_seconds,
            results_ttl=s.results_ttl_seconds,
            job_key_prefix=s.job_key_prefix,
            results_key_prefix=s.results_key_prefix,
        )
        queue = JobQueue(ctx.redis, ctx.blocking, name=s.job_queue)
        return cls(store, queue, default_max_requests=s.default_max_requests)

    async def create_job(self, urls: list[str], max_requests: int | None = None) -> str:
        if not urls:
            raise JobValidationError("at least one url is required")
        if max_requests is None:
            max_requests = self.default_max_requests
        if max_requests <= 0:
            raise JobValidationError("max_requests must be a positive integer")

        job = Job(id=str(uuid.uuid4()), urls=list(urls), max_requests=max_requests)

        # record first, then the id: a consumer must never pop an id without a record
        await self.store.put(job)
        await self.queue.enqueue(job.id)
        log.info("job queued", extra={"job_id": job.id, "event": "job_queued"})
        return job.id

    async def get_job(self, job_id: str) -> Job | None:
        return await self.store.get(job_id)

    async def update_job(self, job_id: str, **fields) -> Job | None:
        job = await self.store.get(job_id)
        if job is None:
            return None

        if "status" in fields:
            new_status = JobStatus(fields["status"])
            if not job.status.can_move_to(new_status):
                raise JobStateError(job_id, job.status.value, new_status.value)
            fields["status"] = new_status

        unknown = set(fields) - set(Job.model_fields)
        if unknown:
            raise TypeError(f"unknown job fields: {', '.join(sorted(unknown))}")

        updated = Job.model_validate({**job.model_dump(), **fields})
        await self.store.put(updated)
        return updated

    async def get_next_job(self, timeout: float = 0) -> Job | None:
        job_id = await self.queue.dequeue(timeout)
        if job_id is None:
            return None

        job = await self.store.get(job_id)
        if job is None:
            # expired or deleted before a worker got to it; nothing to retry
            log.warning("queued job has no record", extra={"job_id": job_id, "event": "job_lost"})
        return job

    async def requeue_job(self, job_id: str) -> None:
        await self.queue.requeue(job_id)
        log.info("job returned to queue", extra={"job_id": job_id, "event": "job_requeued"})

    async def save_result(self, job_id: str, result: CrawlResult) -> None:
        await self.store.append_result(job_id, result)

    async def get_results(self, job_id: str, limit: int = 100, offset: int = 0) -> list[CrawlResult]:
        return await self.store.list_results(job_id, offset, limit)

    async def get_all_results(self, job_id: str) -> list[CrawlResult]:
        return await self.store.list_all_results(job_id)

    async def get_results_count(self, job_id: str) -> int:
        return await self.store.count_results(job_id)

    async def delete_job(self, job_id: str) -> bool:
        removed = await self.store.delete(job_id)
        if removed:
            log.info("job deleted", extra={"job_id": job_id, "event": "job_deleted"})
        return removed

    async def count_jobs(self) -> int:
        n = 0
        async for _ in self.store.iter_job_ids():
            n += 1
        return n

    async def ping(self) -> bool:
        return await self.store.ping()
