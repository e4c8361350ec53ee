import asyncio
import signal
import uuid
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Depends, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import JobValidationError
from .fetcher import is_http_url
from .job_manager import JobManager
from .queries import JobQueries
from .redis_client import StoreContext
from .schemas import AllResults, CrawlAccepted, CrawlRequest, JobDeleted, JobOut, ResultsPage
from .service import BackgroundServices, install_fault_handler
from .settings import settings
from .logging_utils import setup_logging

setup_logging(settings.log_level, settings.log_format)
log = logging.getLogger("api")

def shutdown_on_fault(services: BackgroundServices):
    def on_fault() -> None:
        services.request_stop()
        # hand over to the server's own shutdown so the lifespan closes the store
        signal.raise_signal(signal.SIGTERM)
    return on_fault

@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx = StoreContext.from_settings(settings)
    app.state.jobs = JobManager.from_context(ctx, settings)

    services = None
    if settings.run_worker:
        services = BackgroundServices.from_settings(app.state.jobs, settings)
        install_fault_handler(asyncio.get_running_loop(), shutdown_on_fault(services))
        services.start()
    app.state.services = services
    try:
        yield
    finally:
        if services is not None:
            await services.stop()
        await ctx.close()

app = FastAPI(title="crawlqueue API", version="1.0.0", lifespan=lifespan)

def get_jobs(request: Request) -> JobManager:
    return request.app.state.jobs

def get_queries(jobs: JobManager = Depends(get_jobs)) -> JobQueries:
    return JobQueries(jobs)

def error_body(error: str, message: str | None = None) -> dict:
    body = {"error": error}
    if message is not None:
        body["message"] = message
    return body

@app.middleware("http")
async def request_id_mw(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))

@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(p) for p in e['loc'] if p != 'body')}: {e['msg']}" for e in exc.errors()
    )
    return JSONResponse(status_code=400, content=error_body("Invalid request", message))

@app.exception_handler(JobValidationError)
async def job_validation_error(request: Request, exc: JobValidationError):
    return JSONResponse(status_code=400, content=error_body("Invalid request", str(exc)))

@app.exception_handler(RedisError)
async def store_error(request: Request, exc: RedisError):
    log.error(
        "store unavailable",
        extra={"request_id": getattr(request.state, "request_id", None), "event": "store_error"},
        exc_info=exc,
    )
    message = str(exc) if settings.is_development else None
    return JSONResponse(status_code=503, content=error_body("Store unavailable", message))

@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    log.error(
        "unhandled error",
        extra={"request_id": getattr(request.state, "request_id", None), "event": "unhandled_error"},
        exc_info=exc,
    )
    message = str(exc) if settings.is_development else None
    return JSONResponse(status_code=500, content=error_body("Internal server error", message))

@app.get("/")
def root():
    return {
        "service": "crawlqueue",
        "version": app.version,
        "endpoints": {
            "health": "GET /health",
            "createJob": "POST /crawl",
            "getJobStatus": "GET /jobs/{jobId}",
            "getJobResults": "GET /jobs/{jobId}/results",
            "getAllResults": "GET /jobs/{jobId}/results/all",
            "deleteJob": "DELETE /jobs/{jobId}",
        },
    }

@app.get("/healthz")
def healthz(request: Request):
    log.info("health ok", extra={"request_id": request.state.request_id, "event": "healthz"})
    return {"ok": True}

@app.get("/health")
async def health(request: Request, jobs: JobManager = Depends(get_jobs)):
    now = datetime.now(timezone.utc).isoformat()
    try:
        await jobs.ping()
        queued = await jobs.queue.length()
    except RedisError as e:
        log.warning("health check failed", extra={"request_id": request.state.request_id, "event": "health"})
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": str(e), "timestamp": now},
        )

    services = getattr(request.app.state, "services", None)
    if services is not None and not services.alive:
        log.error("background worker is not running", extra={"request_id": request.state.request_id, "event": "health"})
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": "worker not running", "timestamp": now},
        )
    return {
        "status": "healthy",
        "timestamp": now,
        "environment": settings.environment,
        "queueLength": queued,
    }

@app.post("/crawl", response_model=CrawlAccepted, status_code=202)
async def create_job(req: CrawlRequest, request: Request, jobs: JobManager = Depends(get_jobs)):
    if len(req.urls) > settings.max_urls_per_request:
        raise HTTPException(status_code=400, detail=f"Maximum {settings.max_urls_per_request} URLs per request.")

    valid_urls = [u for u in req.urls if is_http_url(u)]
    if not valid_urls:
        raise HTTPException(status_code=400, detail="No valid URLs provided.")

    job_id = await jobs.create_job(valid_urls, req.max_requests)
    log.info(
        "crawl job accepted",
        extra={"request_id": request.state.request_id, "job_id": job_id, "event": "job_accepted"},
    )
    return CrawlAccepted(
        job_id=job_id,
        urls=valid_urls,
        check_status=f"/jobs/{job_id}",
        get_results=f"/jobs/{job_id}/results",
    )

@app.get("/jobs/{job_id}", response_model=JobOut)
async def get_job(job_id: str, request: Request, queries: JobQueries = Depends(get_queries)):
    out = await queries.status(job_id)
    if out is None:
        raise HTTPException(status_code=404, detail="Job not found")
    log.info(
        "job fetched",
        extra={"request_id": request.state.request_id, "job_id": job_id, "event": "job_get"},
    )
    return out

@app.get("/jobs/{job_id}/results", response_model=ResultsPage)
async def get_results(
    job_id: str,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, gt=0),
    queries: JobQueries = Depends(get_queries),
):
    page = await queries.results_page(job_id, offset=offset, limit=limit)
    if page is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return page

@app.get("/jobs/{job_id}/results/all", response_model=AllResults)
async def get_all_results(job_id: str, queries: JobQueries = Depends(get_queries)):
    out = await queries.all_results(job_id)
    if out is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return out

@app.delete("/jobs/{job_id}", response_model=JobDeleted)
async def delete_job(job_id: str, request: Request, jobs: JobManager = Depends(get_jobs)):
    if await jobs.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    await jobs.delete_job(job_id)
    log.info(
        "job deleted",
        extra={"request_id": request.state.request_id, "job_id": job_id, "event": "job_delete"},
    )
    return JobDeleted(job_id=job_id)

def serve():
    uvicorn.run("crawlqueue.main:app", host=settings.host, port=settings.port, log_config=None)
