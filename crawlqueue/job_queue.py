"""FIFO channel of job ids on a Redis list."""
from redis.asyncio import Redis

class JobQueue:
    """
    LPUSH on enqueue, BRPOP on dequeue: oldest id comes out first.

    Only ids travel through the queue; job content lives in the JobStore.
    BRPOP hands each id to exactly one consumer, so several workers may share
    one queue.
    """

    def __init__(self, redis: Redis, blocking: Redis, *, name: str = "jobs:queue"):
        self.redis = redis
        self.blocking = blocking
        self.name = name

    async def enqueue(self, job_id: str) -> int:
        # not idempotent: pushing the same id twice delivers it twice
        return await self.redis.lpush(self.name, job_id)

    async def requeue(self, job_id: str) -> int:
        """Put an id back at the consumer end so it is the next one popped."""
        return await self.redis.rpush(self.name, job_id)

    async def dequeue(self, timeout: float = 0) -> str | None:
        """Pop the oldest id, waiting up to ``timeout`` seconds (0 waits forever)."""
        item = await self.blocking.brpop([self.name], timeout=timeout)
        if not item:
            return None
        _, job_id = item
        return job_id

    async def length(self) -> int:
        return await self.redis.llen(self.name)
