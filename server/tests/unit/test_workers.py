"""Unit tests for background workers."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from toursync.core.locks import CacheLockService, sync_lock_key
from toursync.models.sync import SyncJob, SyncLog
from toursync.models.tour import Tour
from toursync.models.wholesaler import Wholesaler
from toursync.services.sync.job_queue import SyncJobQueue
from toursync.workers import maintenance_workers, sync_job_worker
from toursync.workers.base import BaseWorker
from toursync.workers.maintenance_workers import AutoCloseWorker, ScheduledSyncWorker, StuckSyncWorker
from toursync.workers.manager import WorkerManager
from toursync.workers.sync_job_worker import SyncJobWorker


@pytest_asyncio.fixture
async def worker_sessions(session_factory, monkeypatch):
    """Point the workers at the test database."""
    monkeypatch.setattr(sync_job_worker, "async_session_factory", session_factory)
    monkeypatch.setattr(maintenance_workers, "async_session_factory", session_factory)
    return session_factory


async def load_job(session_factory, job_id):
    async with session_factory() as db:
        return await db.get(SyncJob, job_id)


@pytest.mark.asyncio
async def test_sync_job_worker_runs_job(worker_sessions, test_session, wholesaler, sample_transformed_tour):
    """Test a queued manual sync runs and the job points at its log."""
    job = await SyncJobQueue(test_session).dispatch(
        wholesaler.id, sync_type="manual", payload=[sample_transformed_tour]
    )

    result = await SyncJobWorker().run_once()

    assert result == {"completed": 1, "failed": 0, "skipped": 0}
    settled = await load_job(worker_sessions, job.id)
    assert settled.status == "completed"
    assert settled.attempts == 1

    async with worker_sessions() as db:
        sync_log = await db.get(SyncLog, settled.sync_log_id)
        assert sync_log.status == "completed"
        assert sync_log.tours_created == 1
        assert (await db.execute(select(Tour.wholesaler_tour_code))).scalar_one() == "ZG-JP-001"


@pytest.mark.asyncio
async def test_sync_job_worker_idle_queue(worker_sessions):
    worker = SyncJobWorker()

    assert await worker.run_once() is None
    assert worker.iterations == 1


@pytest.mark.asyncio
async def test_job_without_api_config_is_skipped(worker_sessions, test_session):
    bare = Wholesaler(code="BARE", name="No API")
    test_session.add(bare)
    await test_session.commit()
    job = await SyncJobQueue(test_session).dispatch(bare.id)

    result = await SyncJobWorker().run_once()

    assert result["skipped"] == 1
    assert (await load_job(worker_sessions, job.id)).status == "skipped"


@pytest.mark.asyncio
async def test_locked_wholesaler_job_is_retried(worker_sessions, test_session, wholesaler):
    """Test a job that meets a running sync goes back to the queue with a backoff."""
    await CacheLockService(test_session).acquire(sync_lock_key(wholesaler.id), 600)
    job = await SyncJobQueue(test_session).dispatch(wholesaler.id, sync_type="manual", payload=[])

    result = await SyncJobWorker().run_once()

    assert result["failed"] == 1
    retried = await load_job(worker_sessions, job.id)
    assert retried.status == "pending"
    assert retried.attempts == 1
    assert "already running" in retried.last_error
    assert retried.available_at > datetime.utcnow() + timedelta(seconds=20)


@pytest.mark.asyncio
async def test_scheduled_sync_worker_dispatches_due_wholesalers(worker_sessions, test_session, api_config):
    """Test due wholesalers get one incremental job and recent ones none."""
    worker = ScheduledSyncWorker()

    assert await worker.run_once() == {"dispatched": 1}
    assert await worker.run_once() is None

    async with worker_sessions() as db:
        jobs = (await db.execute(select(SyncJob))).scalars().all()
    assert [(j.wholesaler_id, j.sync_type) for j in jobs] == [(api_config.wholesaler_id, "incremental")]


@pytest.mark.asyncio
async def test_scheduled_sync_worker_skips_recent_sync(worker_sessions, test_session, api_config):
    api_config.last_sync_at = datetime.utcnow() - timedelta(minutes=5)
    await test_session.commit()

    assert await ScheduledSyncWorker().run_once() is None


@pytest.mark.asyncio
async def test_maintenance_workers_quiet_when_nothing_to_do(worker_sessions):
    assert await StuckSyncWorker().run_once() is None
    assert await AutoCloseWorker().run_once() is None


@pytest.mark.asyncio
async def test_run_once_records_errors():
    class BrokenWorker(BaseWorker):
        async def process(self):
            raise RuntimeError("database unavailable")

    worker = BrokenWorker("Broken")
    with pytest.raises(RuntimeError):
        await worker.run_once()

    status = worker.status()
    assert status["last_error"] == "database unavailable"
    assert status["iterations"] == 0
    assert status["running"] is False
    assert status["last_run_at"] is not None


def test_manager_registers_all_workers():
    manager = WorkerManager()

    assert set(manager.get_worker_status()) == {"sync_jobs", "scheduled_sync", "stuck_sync", "auto_close"}
    assert isinstance(manager.get_worker("sync_jobs"), SyncJobWorker)
    with pytest.raises(KeyError):
        manager.get_worker("hold_expiry")
