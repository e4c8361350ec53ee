import asyncio
import signal

import pytest

from crawlqueue.janitor import Janitor
from crawlqueue.models import JobStatus
from crawlqueue.service import BackgroundServices, install_fault_handler
from crawlqueue.worker import CrawlWorker

from test_worker import ScriptedEngine, wait_for_status

def make_services(manager, engine, grace=1.0):
    worker = CrawlWorker(manager, lambda job: engine, poll_seconds=0.01, dequeue_timeout=0.05)
    janitor = Janitor(manager, interval=60)
    return BackgroundServices(worker, janitor, grace=grace)

@pytest.mark.asyncio
async def test_services_process_jobs_and_stop(manager):
    services = make_services(manager, ScriptedEngine())
    services.start()
    job_id = await manager.create_job(["http://a.test"])

    await wait_for_status(manager, job_id, JobStatus.completed)
    await asyncio.wait_for(services.stop(), 2)

    assert services.worker.stopping

@pytest.mark.asyncio
async def test_stop_cancels_job_outliving_grace(manager):
    class HangingEngine(ScriptedEngine):
        async def run(self, urls, handler):
            await asyncio.Event().wait()

    engine = HangingEngine()
    services = make_services(manager, engine, grace=0.05)
    services.start()
    job_id = await manager.create_job(["http://a.test"])
    await wait_for_status(manager, job_id, JobStatus.running)

    await asyncio.wait_for(services.stop(), 2)
    assert engine.closed

@pytest.mark.asyncio
async def test_alive_tracks_background_tasks(manager):
    services = make_services(manager, ScriptedEngine())
    assert not services.alive

    services.start()
    await asyncio.sleep(0)
    assert services.alive

    await asyncio.wait_for(services.stop(), 2)
    assert not services.alive

@pytest.mark.asyncio
async def test_fault_handler_logs_and_calls_back(caplog):
    loop = asyncio.get_running_loop()
    faults = []
    install_fault_handler(loop, lambda: faults.append(True))
    try:
        with caplog.at_level("ERROR", logger="service"):
            loop.call_exception_handler({"message": "boom", "exception": RuntimeError("boom")})
    finally:
        loop.set_exception_handler(None)

    assert faults == [True]
    assert any(getattr(r, "event", None) == "loop_error" for r in caplog.records)

@pytest.mark.asyncio
async def test_api_fault_stops_services_and_signals_server(manager, monkeypatch):
    from crawlqueue.main import shutdown_on_fault

    raised = []
    monkeypatch.setattr(signal, "raise_signal", raised.append)
    services = make_services(manager, ScriptedEngine())

    shutdown_on_fault(services)()

    assert raised == [signal.SIGTERM]
    assert services.worker.stopping
