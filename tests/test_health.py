def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"]

def test_request_id_is_echoed(client):
    r = client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"

def test_health_reports_queue_length(client, manager):
    client.post("/crawl", json={"urls": ["http://a.test"]})
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["queueLength"] == 1

def test_health_unhealthy_when_worker_dead(client, manager):
    from crawlqueue.janitor import Janitor
    from crawlqueue.main import app
    from crawlqueue.service import BackgroundServices
    from crawlqueue.worker import CrawlWorker

    # never started, same as after both loops have exited
    app.state.services = BackgroundServices(CrawlWorker(manager, lambda job: None), Janitor(manager))
    try:
        r = client.get("/health")
    finally:
        app.state.services = None
    assert r.status_code == 503
    assert r.json()["error"] == "worker not running"

def test_health_unhealthy_when_store_down(client, redis):
    redis.fail_on["ping"] = 1
    r = client.get("/health")
    assert r.status_code == 503
    assert r.json()["status"] == "unhealthy"
