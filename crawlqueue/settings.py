from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    redis_url: str
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"
    host: str = "0.0.0.0"
    port: int = 3000

    job_queue: str = "jobs:queue"
    job_key_prefix: str = "job:"
    results_key_prefix: str = "results:"

    # expiry, seconds
    job_ttl_seconds: int = 172800
    results_ttl_seconds: int = 172800

    max_urls_per_request: int = 1000
    default_max_requests: int = 100

    # fetching engine
    max_concurrency: int = 5
    max_requests_per_minute: int = 30
    max_links_per_page: int = 3
    page_timeout_seconds: float = 30.0
    max_request_retries: int = 3
    proxy_url: str | None = None
    user_agent: str = "crawlqueue/1.0"

    # worker / janitor
    run_worker: bool = True
    worker_poll_seconds: float = 5.0
    dequeue_timeout_seconds: int = 5
    janitor_interval_seconds: float = 43200.0
    retention_seconds: int = 172800
    shutdown_grace_seconds: float = 30.0

    store_retries: int = 3

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

settings = Settings()
