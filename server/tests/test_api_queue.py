"""API tests for sync queue maintenance endpoints."""

from datetime import datetime, timedelta

import pytest

from toursync.core.locks import CacheLockService, sync_lock_key
from toursync.models.sync import SyncJob, SyncLog


async def add_stale_sync(session, wholesaler_id, minutes_ago=90):
    started = datetime.utcnow() - timedelta(minutes=minutes_ago)
    log = SyncLog(
        sync_id=SyncLog.new_sync_id(started),
        wholesaler_id=wholesaler_id,
        sync_type="incremental",
        status="running",
        started_at=started,
        last_heartbeat_at=started,
        heartbeat_timeout_minutes=30,
    )
    session.add(log)
    await session.commit()
    return log


@pytest.mark.asyncio
async def test_queue_requires_admin(test_client, viewer_headers):
    assert (await test_client.get("/api/queue/status")).status_code == 401
    assert (await test_client.get("/api/queue/status", headers=viewer_headers)).status_code == 403


@pytest.mark.asyncio
async def test_queue_status(test_client, test_session, wholesaler, admin_headers):
    """Test job counts, running and stuck syncs, and locks are reported."""
    now = datetime.utcnow()
    test_session.add_all([
        SyncJob(wholesaler_id=wholesaler.id, status="pending", attempts=0, available_at=now),
        SyncJob(wholesaler_id=wholesaler.id, status="failed", attempts=3, available_at=now),
    ])
    await test_session.commit()
    stale = await add_stale_sync(test_session, wholesaler.id)
    await CacheLockService(test_session).acquire(sync_lock_key(wholesaler.id), 600)

    response = await test_client.get("/api/queue/status", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["jobs"]["pending"] == 1
    assert data["jobs"]["failed"] == 1
    assert data["jobs"]["completed"] == 0
    assert data["running_syncs"] == 1
    assert [s["sync_id"] for s in data["stuck_syncs"]] == [stale.sync_id]
    assert data["locks"][0]["key"] == sync_lock_key(wholesaler.id)
    assert data["locks"][0]["expired"] is False


@pytest.mark.asyncio
async def test_fix_stuck(test_client, test_session, wholesaler, admin_headers):
    stale = await add_stale_sync(test_session, wholesaler.id)

    response = await test_client.post("/api/queue/fix-stuck", json={"dry_run": True}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["found"] == 1
    assert response.json()["message"] == "Dry run"

    response = await test_client.post("/api/queue/fix-stuck", json={}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["cancelled"] == 1
    assert response.json()["message"] == "Cancelled 1 stuck sync(s)"

    await test_session.refresh(stale)
    assert stale.status == "timeout"


@pytest.mark.asyncio
async def test_clear_failed(test_client, test_session, wholesaler, admin_headers):
    now = datetime.utcnow()
    test_session.add_all([
        SyncJob(wholesaler_id=wholesaler.id, status="failed", attempts=3, available_at=now),
        SyncJob(wholesaler_id=wholesaler.id, status="failed", attempts=3, available_at=now),
        SyncJob(wholesaler_id=wholesaler.id, status="completed", attempts=1, available_at=now),
    ])
    await test_session.commit()

    response = await test_client.post("/api/queue/clear-failed", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"cleared": 2}
