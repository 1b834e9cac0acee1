"""Per-outing critical sections for seat and carpool mutations."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class OutingLockRegistry:
    """
    Serializes read-then-write sequences on one outing.

    Inside a process, callers queue on an ``asyncio.Lock`` keyed by outing id.
    On PostgreSQL the holder also takes a transaction-scoped advisory lock,
    so workers in other processes queue as well. The advisory lock is
    released when the transaction ends, so callers must commit or roll back
    before leaving the ``hold`` block.

    Locks only exist while somebody holds or waits on them, which keeps each
    lock bound to the event loop that is using it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, db: AsyncSession, outing_id: UUID) -> AsyncIterator[None]:
        key = str(outing_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1

        try:
            async with lock:
                if db.bind is not None and db.bind.dialect.name == "postgresql":
                    await db.execute(
                        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                        {"key": key}
                    )
                logger.debug("Acquired outing lock", extra={"outing_id": key})
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def active_keys(self) -> list[str]:
        """Outing ids that currently have a holder or waiter."""
        return list(self._locks)


# Process-wide registry shared by every service instance
outing_locks = OutingLockRegistry()
