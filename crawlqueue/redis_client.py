import logging
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError

from .settings import Settings

log = logging.getLogger("store")

def get_redis(url: str, retries: int = 3) -> Redis:
    return Redis.from_url(
        url,
        decode_responses=True,
        retry=Retry(ExponentialBackoff(cap=2, base=0.05), retries),
        retry_on_error=[ConnectionError, TimeoutError],
    )

@dataclass
class StoreContext:
    """
    Two handles on the same Redis:
    - redis: every ordinary read/write
    - blocking: reserved for BRPOP so a long dequeue never delays API reads
    """

    redis: Redis
    blocking: Redis

    @classmethod
    def from_settings(cls, s: Settings) -> "StoreContext":
        ctx = cls(
            redis=get_redis(s.redis_url, s.store_retries),
            blocking=get_redis(s.redis_url, s.store_retries),
        )
        if s.job_ttl_seconds != s.results_ttl_seconds:
            log.warning(
                "job and results TTL differ; job record stays authoritative",
                extra={"event": "ttl_mismatch"},
            )
        return ctx

    async def close(self) -> None:
        for client in (self.blocking, self.redis):
            await client.aclose()
        log.info("redis connections closed", extra={"event": "store_closed"})
