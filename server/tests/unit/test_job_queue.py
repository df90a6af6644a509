"""Unit tests for the sync job queue."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from toursync.core.locks import CacheLockService, sync_lock_key
from toursync.models.sync import SyncJob
from toursync.services.sync.job_queue import SyncJobQueue, retry_delay

NOW = datetime(2099, 1, 1, 12, 0, 0)


def test_retry_delay_doubles():
    assert [retry_delay(n).total_seconds() for n in (1, 2, 3, 4)] == [30, 60, 120, 240]
    assert retry_delay(0).total_seconds() == 30


@pytest.mark.asyncio
async def test_dispatch_and_claim(test_session, wholesaler):
    """Test jobs are claimed oldest first once available."""
    queue = SyncJobQueue(test_session, max_attempts=3)
    first = await queue.dispatch(wholesaler.id, now=NOW)
    delayed = await queue.dispatch(wholesaler.id, sync_type="full", delay_seconds=600, now=NOW)

    assert first.status == "pending"
    assert await queue.has_active_job(wholesaler.id)

    claimed = await queue.claim_next(now=NOW)
    assert claimed.id == first.id
    assert claimed.status == "running"
    assert claimed.attempts == 1
    assert claimed.reserved_at == NOW

    assert await queue.claim_next(now=NOW) is None
    later = await queue.claim_next(now=NOW + timedelta(minutes=10))
    assert later.id == delayed.id


@pytest.mark.asyncio
async def test_fail_requeues_then_gives_up(test_session, wholesaler):
    """Test failures back off until attempts run out."""
    queue = SyncJobQueue(test_session, max_attempts=2)
    await queue.dispatch(wholesaler.id, now=NOW)

    job = await queue.claim_next(now=NOW)
    await queue.fail(job, "upstream 503", now=NOW)
    assert job.status == "pending"
    assert job.available_at == NOW + timedelta(seconds=30)
    assert job.last_error == "upstream 503"

    assert await queue.claim_next(now=NOW) is None
    job = await queue.claim_next(now=NOW + timedelta(seconds=30))
    assert job.attempts == 2
    await queue.fail(job, "upstream 503 again", now=NOW)
    assert job.status == "failed"
    assert job.finished_at == NOW
    assert not await queue.has_active_job(wholesaler.id)


@pytest.mark.asyncio
async def test_complete_and_skip(test_session, wholesaler, sync_log):
    queue = SyncJobQueue(test_session)
    job = await queue.dispatch(wholesaler.id, now=NOW)
    await queue.complete(job, sync_log.id)
    assert job.status == "completed"
    assert job.sync_log_id == sync_log.id

    other = await queue.dispatch(wholesaler.id, now=NOW)
    await queue.skip(other, "Sync disabled")
    assert other.status == "skipped"
    assert other.last_error == "Sync disabled"


@pytest.mark.asyncio
async def test_status_and_clear_failed(test_session, wholesaler, sync_log):
    """Test the status report counts jobs, syncs and locks."""
    queue = SyncJobQueue(test_session, max_attempts=1)
    await queue.dispatch(wholesaler.id, now=NOW)
    waiting = await queue.dispatch(wholesaler.id, now=NOW)
    await queue.fail(await queue.claim_next(now=NOW), "boom", now=NOW)
    await CacheLockService(test_session).acquire(sync_lock_key(wholesaler.id), 60, now=NOW)

    status = await queue.status(now=NOW + timedelta(minutes=5))

    assert status["jobs"] == {"pending": 1, "running": 0, "completed": 0, "failed": 1, "skipped": 0}
    assert status["running_syncs"] == 1
    assert [s["id"] for s in status["stuck_syncs"]] == [sync_log.id]
    assert status["locks"][0]["key"] == sync_lock_key(wholesaler.id)
    assert status["locks"][0]["expired"] is True

    assert await queue.clear_failed() == 1
    remaining = (await test_session.execute(select(SyncJob.id))).scalars().all()
    assert remaining == [waiting.id]
