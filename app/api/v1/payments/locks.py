"""
Per-payment serialization inside one process.

Transitions on the same payment queue behind an asyncio.Lock keyed by payment id.
Across processes the status compare-and-set in service._commit_transition is what
keeps a payment from being applied twice; this lock only avoids needless races
(and SQLite writer contention) between requests served by the same worker.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
from uuid import UUID

_locks: Dict[UUID, asyncio.Lock] = {}
_holders: Dict[UUID, int] = {}


@asynccontextmanager
async def payment_lock(payment_id: UUID) -> AsyncIterator[None]:
    lock = _locks.get(payment_id)
    if lock is None:
        lock = _locks[payment_id] = asyncio.Lock()
    _holders[payment_id] = _holders.get(payment_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _holders[payment_id] -= 1
        if _holders[payment_id] == 0:
            del _holders[payment_id]
            del _locks[payment_id]
