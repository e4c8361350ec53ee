import enum
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

def utcnow():
    return datetime.now(timezone.utc)

class JobStatus(str, enum.Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)

    def can_move_to(self, other: "JobStatus") -> bool:
        if self == other:
            return True
        if self.is_terminal:
            return False
        return other.rank > self.rank

_STATUS_RANK = {
    JobStatus.queued: 0,
    JobStatus.running: 1,
    JobStatus.completed: 2,
    JobStatus.failed: 2,
}

class StoredModel(BaseModel):
    """Models persisted as JSON in Redis use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes):
        return cls.model_validate_json(raw)

class Job(StoredModel):
    id: str
    urls: list[str] = Field(min_length=1)
    max_requests: int = Field(gt=0)
    status: JobStatus = JobStatus.queued

    total_urls: int = Field(default=0, ge=0)
    processed_urls: int = Field(default=0, ge=0)
    failed_urls: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

class CrawlResult(StoredModel):
    url: str
    title: str = ""
    full_text: str = ""
    crawled_at: datetime = Field(default_factory=utcnow)
