"""
Page-fetching engine used by the worker.

The worker only relies on the ``CrawlEngine`` contract: given seed URLs it
reports every scheduled request, every fetched page and every page that ran
out of retries to a ``CrawlHandler``. ``HttpCrawler`` is the default engine,
built on httpx and BeautifulSoup.
"""
import asyncio
import logging
import time
import urllib.parse
from dataclasses import dataclass
from typing import Iterable, Protocol

import httpx
from bs4 import BeautifulSoup

from .errors import FetchError
from .settings import Settings

log = logging.getLogger("fetcher")

# statuses worth another attempt; any other 4xx fails the page at once
RETRY_STATUSES = (408, 425, 429)

_SKIP_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg",
    ".zip", ".rar", ".7z", ".tar", ".gz",
    ".mp4", ".mov", ".avi", ".mp3", ".wav",
    ".css", ".js", ".xml",
)

@dataclass
class Page:
    url: str
    title: str
    text: str

@dataclass
class CrawlStats:
    scheduled: int = 0
    processed: int = 0
    failed: int = 0

@dataclass
class CrawlOptions:
    max_requests: int = 100
    max_concurrency: int = 5
    max_requests_per_minute: int = 30
    max_links_per_page: int = 3
    page_timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 1.0
    proxy_url: str | None = None
    user_agent: str = "crawlqueue/1.0"

    @classmethod
    def from_settings(cls, s: Settings, max_requests: int) -> "CrawlOptions":
        return cls(
            max_requests=max_requests,
            max_concurrency=s.max_concurrency,
            max_requests_per_minute=s.max_requests_per_minute,
            max_links_per_page=s.max_links_per_page,
            page_timeout=s.page_timeout_seconds,
            max_retries=s.max_request_retries,
            proxy_url=s.proxy_url,
            user_agent=s.user_agent,
        )

class CrawlHandler(Protocol):
    async def on_enqueued(self, url: str) -> None: ...

    async def on_page(self, page: Page) -> None: ...

    async def on_failed(self, url: str, error: FetchError) -> None: ...

class CrawlEngine(Protocol):
    async def __aenter__(self) -> "CrawlEngine": ...

    async def __aexit__(self, *exc) -> None: ...

    async def run(self, urls: Iterable[str], handler: CrawlHandler) -> CrawlStats: ...

# -----------------------------
# Utilities
# -----------------------------

def normalize_url(url: str) -> str:
    """Strip the fragment and lowercase the host so duplicates collapse."""
    parsed = urllib.parse.urlparse(url)
    return urllib.parse.urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), parsed.path or "/", parsed.params, parsed.query, "")
    )

def is_http_url(url: str) -> bool:
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)

def _same_host(a: str, b: str) -> bool:
    return urllib.parse.urlparse(a).hostname == urllib.parse.urlparse(b).hostname

def _should_skip(url: str) -> bool:
    path = (urllib.parse.urlparse(url).path or "").lower()
    return any(path.endswith(ext) for ext in _SKIP_EXTENSIONS)

def extract_page(url: str, html: str) -> tuple[Page, list[str]]:
    """Return the page's title and visible text plus its same-host links in document order."""
    soup = BeautifulSoup(html or "", "lxml")
    title = soup.title.get_text(strip=True) if soup.title else ""

    links: list[str] = []
    for a in soup.find_all("a", href=True):
        link = urllib.parse.urljoin(url, a["href"])
        if is_http_url(link) and _same_host(url, link) and not _should_skip(link):
            links.append(link)

    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    body = soup.body or soup
    text = body.get_text("\n", strip=True)
    return Page(url=url, title=title, text=text), links

class RateLimiter:
    """Spaces request starts evenly so no more than ``per_minute`` begin each minute."""

    def __init__(self, per_minute: int):
        self.interval = 60.0 / per_minute if per_minute > 0 else 0.0
        self._next_ok = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        if not self.interval:
            return
        async with self._lock:
            now = time.monotonic()
            sleep_for = max(0.0, self._next_ok - now)
            self._next_ok = max(self._next_ok, now) + self.interval
        if sleep_for > 0:
            await asyncio.sleep(sleep_for)

# -----------------------------
# HttpCrawler
# -----------------------------

class HttpCrawler:
    """
    Bounded breadth-first crawl over the seeds.

    - at most ``max_requests`` URLs are scheduled in total, seeds included
    - up to ``max_links_per_page`` new same-host links are followed per page
    - each URL is fetched at most ``max_retries + 1`` times; a page that never
      succeeds is reported through ``on_failed`` and does not stop the crawl
    - an exception raised by the handler aborts ``run()``
    """

    def __init__(self, options: CrawlOptions, *, transport: httpx.AsyncBaseTransport | None = None):
        self.options = options
        self._limiter = RateLimiter(options.max_requests_per_minute)
        self._client = httpx.AsyncClient(
            headers={"User-Agent": options.user_agent},
            timeout=httpx.Timeout(options.page_timeout),
            follow_redirects=True,
            proxy=options.proxy_url,
            transport=transport,
        )
        self._seen: set[str] = set()
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self.stats = CrawlStats()

    async def __aenter__(self) -> "HttpCrawler":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def run(self, urls: Iterable[str], handler: CrawlHandler) -> CrawlStats:
        for url in urls:
            await self._schedule(url, handler)
        if self._queue.empty():
            return self.stats

        workers = [
            asyncio.create_task(self._work(handler))
            for _ in range(max(1, self.options.max_concurrency))
        ]
        drained = asyncio.create_task(self._queue.join())
        try:
            await asyncio.wait([drained, *workers], return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (drained, *workers):
                task.cancel()
            await asyncio.gather(drained, *workers, return_exceptions=True)

        # workers only finish early by raising
        for task in workers:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return self.stats

    async def _schedule(self, url: str, handler: CrawlHandler) -> bool:
        if self.stats.scheduled >= self.options.max_requests:
            return False
        key = normalize_url(url)
        if key in self._seen:
            return False
        self._seen.add(key)
        self.stats.scheduled += 1
        await handler.on_enqueued(url)
        self._queue.put_nowait(url)
        return True

    async def _work(self, handler: CrawlHandler) -> None:
        while True:
            url = await self._queue.get()
            try:
                try:
                    page, links = await self._fetch(url)
                except FetchError as e:
                    self.stats.failed += 1
                    log.warning("request failed too many times", extra={"url": url, "event": "page_failed"})
                    await handler.on_failed(url, e)
                    continue

                self.stats.processed += 1
                await handler.on_page(page)

                followed = 0
                for link in links:
                    if followed >= self.options.max_links_per_page:
                        break
                    if await self._schedule(link, handler):
                        followed += 1
            finally:
                self._queue.task_done()

    async def _fetch(self, url: str) -> tuple[Page, list[str]]:
        reason = "not attempted"
        for attempt in range(self.options.max_retries + 1):
            await self._limiter.wait()
            try:
                resp = await self._client.get(url)
            except httpx.HTTPError as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                code = resp.status_code
                if code < 400:
                    # links resolve against the final URL, the page keeps the requested one
                    page, links = extract_page(str(resp.url), resp.text)
                    page.url = url
                    return page, links
                reason = f"HTTP {code}"
                if code < 500 and code not in RETRY_STATUSES:
                    raise FetchError(url, reason)

            if attempt < self.options.max_retries:
                await asyncio.sleep(self.options.retry_backoff * (2 ** attempt))
        raise FetchError(url, reason)
