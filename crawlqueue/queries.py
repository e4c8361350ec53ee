"""Read-only views over jobs and their results for the HTTP layer."""
from .job_manager import JobManager
from .models import Job
from .schemas import AllResults, JobLinks, JobOut, JobSummary, Pagination, ResultsPage

def job_links(job_id: str) -> JobLinks:
    base = f"/jobs/{job_id}"
    return JobLinks(self_link=base, results=f"{base}/results", all_results=f"{base}/results/all")

def summarize(job: Job) -> JobSummary:
    return JobSummary(status=job.status, processed_urls=job.processed_urls, failed_urls=job.failed_urls)

class JobQueries:
    """
    Every view resolves the job record first. Results whose job record is gone
    are treated as absent, so a job and its results are never reported apart.
    Nothing here writes.
    """

    def __init__(self, manager: JobManager):
        self.manager = manager

    async def status(self, job_id: str) -> JobOut | None:
        job = await self.manager.get_job(job_id)
        if job is None:
            return None
        count = await self.manager.get_results_count(job_id)
        return JobOut(**job.model_dump(), results_count=count, links=job_links(job_id))

    async def results_page(self, job_id: str, *, offset: int = 0, limit: int = 100) -> ResultsPage | None:
        job = await self.manager.get_job(job_id)
        if job is None:
            return None
        results = await self.manager.get_results(job_id, limit=limit, offset=offset)
        total = await self.manager.get_results_count(job_id)
        return ResultsPage(
            job_id=job_id,
            results=results,
            pagination=Pagination(
                offset=offset,
                limit=limit,
                count=len(results),
                total=total,
                has_more=offset + limit < total,
            ),
            job=summarize(job),
        )

    async def all_results(self, job_id: str) -> AllResults | None:
        job = await self.manager.get_job(job_id)
        if job is None:
            return None
        results = await self.manager.get_all_results(job_id)
        return AllResults(job_id=job_id, results=results, count=len(results), job=summarize(job))
