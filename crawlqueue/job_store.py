"""Redis-backed persistence for job records and their result lists."""
import logging
from typing import AsyncIterator

from redis.asyncio import Redis

from .models import CrawlResult, Job

log = logging.getLogger("jobs")

class JobStore:
    """
    Keys:
    - ``{job_key_prefix}{id}``: the job record as JSON, ``EX job_ttl``
    - ``{results_key_prefix}{id}``: list of result JSON documents, ``EX results_ttl``

    There is no partial update; callers read, modify and ``put`` the whole record.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        job_ttl: int,
        results_ttl: int,
        job_key_prefix: str = "job:",
        results_key_prefix: str = "results:",
    ):
        self.redis = redis
        self.job_ttl = job_ttl
        self.results_ttl = results_ttl
        self.job_key_prefix = job_key_prefix
        self.results_key_prefix = results_key_prefix

    def job_key(self, job_id: str) -> str:
        return f"{self.job_key_prefix}{job_id}"

    def results_key(self, job_id: str) -> str:
        return f"{self.results_key_prefix}{job_id}"

    async def put(self, job: Job) -> None:
        await self.redis.set(self.job_key(job.id), job.to_json(), ex=self.job_ttl)

    async def get(self, job_id: str) -> Job | None:
        raw = await self.redis.get(self.job_key(job_id))
        if raw is None:
            return None
        return Job.from_json(raw)

    async def append_result(self, job_id: str, result: CrawlResult) -> int:
        key = self.results_key(job_id)
        size = await self.redis.rpush(key, result.to_json())
        await self.redis.expire(key, self.results_ttl)
        return size

    async def list_results(self, job_id: str, offset: int, limit: int) -> list[CrawlResult]:
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if limit <= 0:
            return []
        rows = await self.redis.lrange(self.results_key(job_id), offset, offset + limit - 1)
        return [CrawlResult.from_json(r) for r in rows]

    async def list_all_results(self, job_id: str) -> list[CrawlResult]:
        rows = await self.redis.lrange(self.results_key(job_id), 0, -1)
        return [CrawlResult.from_json(r) for r in rows]

    async def count_results(self, job_id: str) -> int:
        return await self.redis.llen(self.results_key(job_id))

    async def delete(self, job_id: str) -> bool:
        # two commands: a crash in between leaves results that expire on their own
        removed = await self.redis.delete(self.job_key(job_id))
        await self.redis.delete(self.results_key(job_id))
        return bool(removed)

    async def iter_job_ids(self) -> AsyncIterator[str]:
        async for key in self.redis.scan_iter(match=f"{self.job_key_prefix}*", count=500):
            yield key[len(self.job_key_prefix):]

    async def ping(self) -> bool:
        return bool(await self.redis.ping())
