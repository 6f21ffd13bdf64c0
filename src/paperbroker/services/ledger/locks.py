"""Per-user serialisation of ledger mutations."""

import asyncio
from typing import Dict


class UserLockRegistry:
    """
    Hands out one ``asyncio.Lock`` per user.

    Every operation that reads a balance and then writes it holds the
    owner's lock for the whole unit of work, so two concurrent trades for
    the same user cannot both pass a funds check against the same balance.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks.setdefault(user_id, asyncio.Lock())
        return lock

    def __len__(self) -> int:
        return len(self._locks)
