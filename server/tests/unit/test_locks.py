"""Unit tests for table-backed named locks."""

from datetime import datetime, timedelta

import pytest

from toursync.core.locks import CacheLockService, sync_lock_key

NOW = datetime(2099, 1, 1, 12, 0, 0)


def test_sync_lock_key():
    assert sync_lock_key(42) == "sync_lock:wholesaler:42"


@pytest.mark.asyncio
async def test_acquire_and_release(test_session):
    """Test a free lock is acquired and only its owner can release it."""
    locks = CacheLockService(test_session)
    key = sync_lock_key(1)

    owner = await locks.acquire(key, 60, now=NOW)
    assert owner is not None
    assert await locks.is_locked(key, now=NOW)

    assert await locks.release(key, "someone-else") is False
    assert await locks.is_locked(key, now=NOW)

    assert await locks.release(key, owner) is True
    assert not await locks.is_locked(key, now=NOW)


@pytest.mark.asyncio
async def test_held_lock_blocks_second_caller(test_session):
    """Test an unexpired lock cannot be acquired again."""
    locks = CacheLockService(test_session)
    key = sync_lock_key(1)

    assert await locks.acquire(key, 60, now=NOW) is not None
    assert await locks.acquire(key, 60, now=NOW + timedelta(seconds=30)) is None


@pytest.mark.asyncio
async def test_expired_lock_is_taken_over(test_session):
    """Test a lock past its expiration goes to the next caller."""
    locks = CacheLockService(test_session)
    key = sync_lock_key(1)

    first = await locks.acquire(key, 60, now=NOW)
    later = NOW + timedelta(seconds=61)
    assert not await locks.is_locked(key, now=later)

    second = await locks.acquire(key, 60, now=later)
    assert second is not None and second != first
    assert await locks.release(key, first) is False
    assert await locks.release(key, second) is True


@pytest.mark.asyncio
async def test_force_release_list_and_purge(test_session):
    """Test housekeeping over many locks."""
    locks = CacheLockService(test_session)
    await locks.acquire(sync_lock_key(1), 60, now=NOW)
    await locks.acquire(sync_lock_key(2), 3600, now=NOW)
    await locks.acquire("report_lock:daily", 60, now=NOW)

    assert [lock.key for lock in await locks.list_locks()] == [
        "sync_lock:wholesaler:1",
        "sync_lock:wholesaler:2",
    ]

    purged = await locks.purge_expired("sync_lock", now=NOW + timedelta(minutes=5))
    assert purged == 1
    assert [lock.key for lock in await locks.list_locks()] == ["sync_lock:wholesaler:2"]

    assert await locks.force_release(sync_lock_key(2)) is True
    assert await locks.force_release(sync_lock_key(2)) is False
    assert [lock.key for lock in await locks.list_locks("lock")] == ["report_lock:daily"]


@pytest.mark.asyncio
async def test_extend_pushes_expiration(test_session):
    """Test the owner can renew its lock before it runs out."""
    locks = CacheLockService(test_session)
    key = sync_lock_key(1)
    owner = await locks.acquire(key, 60, now=NOW)

    assert await locks.extend(key, owner, 60, now=NOW + timedelta(seconds=50)) is True
    assert await locks.is_locked(key, now=NOW + timedelta(seconds=100))
    assert await locks.acquire(key, 60, now=NOW + timedelta(seconds=100)) is None
    assert await locks.extend(key, "someone-else", 60, now=NOW) is False


@pytest.mark.asyncio
async def test_extend_fails_after_takeover(test_session):
    """Test a holder whose lock expired and changed hands cannot renew it."""
    locks = CacheLockService(test_session)
    key = sync_lock_key(1)
    first = await locks.acquire(key, 60, now=NOW)
    second = await locks.acquire(key, 60, now=NOW + timedelta(seconds=61))

    assert await locks.extend(key, first, 60, now=NOW + timedelta(seconds=62)) is False
    assert await locks.extend(key, second, 60, now=NOW + timedelta(seconds=62)) is True
