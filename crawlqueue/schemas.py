from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import CrawlResult, Job, JobStatus

class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class CrawlRequest(ApiModel):
    urls: list[str] = Field(min_length=1)
    max_requests: int | None = Field(default=None, gt=0)

class CrawlAccepted(ApiModel):
    job_id: str
    message: str = "Job created successfully"
    status: JobStatus = JobStatus.queued
    urls: list[str]
    check_status: str
    get_results: str

class JobLinks(ApiModel):
    self_link: str = Field(alias="self")
    results: str
    all_results: str

class JobOut(Job):
    results_count: int
    links: JobLinks

class JobSummary(ApiModel):
    status: JobStatus
    processed_urls: int
    failed_urls: int

class Pagination(ApiModel):
    offset: int
    limit: int
    count: int
    total: int
    has_more: bool

class ResultsPage(ApiModel):
    job_id: str
    results: list[CrawlResult]
    pagination: Pagination
    job: JobSummary

class AllResults(ApiModel):
    job_id: str
    results: list[CrawlResult]
    count: int
    job: JobSummary

class JobDeleted(ApiModel):
    message: str = "Job deleted successfully"
    job_id: str

class ErrorOut(ApiModel):
    error: str
    message: str | None = None
