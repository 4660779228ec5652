"""Per-user mutexes for balance and inventory mutations.

Read-modify-write on a user's balances must not interleave between two
requests for the same user. Locks live in this process only; deployments run
a single API worker per database.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from weakref import WeakValueDictionary

_locks: WeakValueDictionary[int, asyncio.Lock] = WeakValueDictionary()


def _lock_for(user_id: int) -> asyncio.Lock:
    lock = _locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _locks[user_id] = lock
    return lock


@asynccontextmanager
async def user_lock(user_id: int) -> AsyncIterator[None]:
    """Serialize mutations for one user."""
    lock = _lock_for(user_id)
    async with lock:
        yield
