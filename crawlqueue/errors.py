class CrawlQueueError(Exception):
    """Base class for errors raised by crawlqueue."""

class JobValidationError(CrawlQueueError, ValueError):
    """A job request was rejected before anything was written."""

class JobStateError(CrawlQueueError):
    """An update would move a job's status backwards."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(f"job {job_id}: cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested

class FetchError(CrawlQueueError):
    """A page exhausted its retry budget."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
