import asyncio
import fnmatch
import os
import time

import pytest
from redis.exceptions import ConnectionError, ResponseError

os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("RUN_WORKER", "false")

from crawlqueue.job_manager import JobManager  # noqa: E402
from crawlqueue.job_queue import JobQueue  # noqa: E402
from crawlqueue.job_store import JobStore  # noqa: E402

class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands crawlqueue issues."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.fail_on = {}
        self.closed = False

    def _maybe_fail(self, command):
        left = self.fail_on.get(command, 0)
        if left:
            self.fail_on[command] = left - 1
            raise ConnectionError(f"{command}: connection reset")

    def _list(self, key):
        value = self.data.get(key)
        if value is not None and not isinstance(value, list):
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return value

    async def set(self, key, value, ex=None):
        self._maybe_fail("set")
        self.data[key] = value
        if ex:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def get(self, key):
        self._maybe_fail("get")
        value = self.data.get(key)
        if isinstance(value, list):
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return value

    async def rpush(self, key, *values):
        self._maybe_fail("rpush")
        lst = self._list(key)
        if lst is None:
            lst = self.data[key] = []
        lst.extend(values)
        return len(lst)

    async def lpush(self, key, *values):
        self._maybe_fail("lpush")
        lst = self._list(key)
        if lst is None:
            lst = self.data[key] = []
        for v in values:
            lst.insert(0, v)
        return len(lst)

    async def lrange(self, key, start, end):
        lst = self._list(key) or []
        n = len(lst)
        if start < 0:
            start = max(0, n + start)
        if end < 0:
            end = n + end
        return lst[start:end + 1]

    async def llen(self, key):
        return len(self._list(key) or [])

    async def expire(self, key, seconds):
        if key not in self.data:
            return False
        self.ttls[key] = seconds
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def brpop(self, keys, timeout=0):
        deadline = time.monotonic() + timeout if timeout else None
        while True:
            self._maybe_fail("brpop")
            for key in keys:
                lst = self._list(key)
                if lst:
                    value = lst.pop()
                    if not lst:
                        del self.data[key]
                    return (key, value)
            if deadline is not None and time.monotonic() >= deadline:
                return None
            await asyncio.sleep(0.005)

    async def scan_iter(self, match=None, count=None):
        self._maybe_fail("scan")
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self):
        self._maybe_fail("ping")
        return True

    async def aclose(self):
        self.closed = True

@pytest.fixture
def redis():
    return FakeRedis()

@pytest.fixture
def store(redis):
    return JobStore(redis, job_ttl=172800, results_ttl=172800)

@pytest.fixture
def queue(redis):
    return JobQueue(redis, redis, name="jobs:queue")

@pytest.fixture
def manager(store, queue):
    return JobManager(store, queue, default_max_requests=100)

@pytest.fixture
def client(manager):
    from fastapi.testclient import TestClient

    from crawlqueue.main import app, get_jobs

    app.dependency_overrides[get_jobs] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()
