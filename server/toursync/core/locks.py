"""Named locks stored in the ``cache_locks`` table.

A lock row is owned by the token returned from :meth:`CacheLockService.acquire`
until it is released or its expiration passes. Expired rows can be taken over
by the next caller, so a crashed holder blocks others for at most the TTL.
Every method commits so other processes see the change immediately; callers
must not hold unflushed work on the same session when calling in.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.cache_lock import CacheLock

logger = logging.getLogger(__name__)


def sync_lock_key(wholesaler_id: int) -> str:
    return f"sync_lock:wholesaler:{wholesaler_id}"


class CacheLockService:
    """Acquire, release and clean up named locks."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def acquire(self, key: str, ttl_seconds: int, now: Optional[datetime] = None) -> Optional[str]:
        """
        Try to take the lock.

        Returns:
            Owner token when acquired, None when another holder has it
        """
        now = now or datetime.utcnow()
        owner = uuid.uuid4().hex
        expiration = now + timedelta(seconds=ttl_seconds)

        stmt = select(CacheLock).where(CacheLock.key == key).execution_options(populate_existing=True)
        existing = (await self.db.execute(stmt)).scalar_one_or_none()

        if existing is not None:
            if not existing.is_expired(now):
                logger.info(
                    "Lock held by another owner",
                    extra={"lock_key": key, "expiration": existing.expiration.isoformat()}
                )
                return None

            # Conditional update so two callers cannot both take over the same expired row
            result = await self.db.execute(
                update(CacheLock)
                .where(CacheLock.key == key, CacheLock.expiration <= now)
                .values(owner=owner, expiration=expiration)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            if result.rowcount != 1:
                return None
            logger.warning("Took over expired lock", extra={"lock_key": key})
            return owner

        self.db.add(CacheLock(key=key, owner=owner, expiration=expiration))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return None

        logger.debug("Lock acquired", extra={"lock_key": key, "ttl_seconds": ttl_seconds})
        return owner

    async def release(self, key: str, owner: str) -> bool:
        """Release the lock if ``owner`` still holds it."""
        result = await self.db.execute(
            delete(CacheLock)
            .where(CacheLock.key == key, CacheLock.owner == owner)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        released = result.rowcount == 1
        if not released:
            logger.warning("Lock was no longer held by this owner", extra={"lock_key": key})
        return released

    async def extend(self, key: str, owner: str, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        """
        Push the expiration of a lock ``owner`` still holds to ``now + ttl_seconds``.

        Returns False once the row was taken over or released, which means
        the caller no longer holds the lock.
        """
        now = now or datetime.utcnow()
        result = await self.db.execute(
            update(CacheLock)
            .where(CacheLock.key == key, CacheLock.owner == owner)
            .values(expiration=now + timedelta(seconds=ttl_seconds))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        extended = result.rowcount == 1
        if not extended:
            logger.warning("Lock lost before it could be extended", extra={"lock_key": key})
        return extended

    async def force_release(self, key: str) -> bool:
        """Drop the lock regardless of owner."""
        result = await self.db.execute(
            delete(CacheLock).where(CacheLock.key == key).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount:
            logger.warning("Lock force released", extra={"lock_key": key})
        return bool(result.rowcount)

    async def is_locked(self, key: str, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        stmt = select(CacheLock.key).where(CacheLock.key == key, CacheLock.expiration > now)
        return (await self.db.execute(stmt)).first() is not None

    async def list_locks(self, pattern: str = "sync_lock") -> list[CacheLock]:
        stmt = select(CacheLock).where(CacheLock.key.contains(pattern)).order_by(CacheLock.key)
        return list((await self.db.execute(stmt)).scalars().all())

    async def purge_expired(self, pattern: str = "sync_lock", now: Optional[datetime] = None) -> int:
        """Delete expired lock rows whose key contains ``pattern``."""
        now = now or datetime.utcnow()
        result = await self.db.execute(
            delete(CacheLock)
            .where(CacheLock.key.contains(pattern), CacheLock.expiration <= now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0
