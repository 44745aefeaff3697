# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-key mutual exclusion for workflow operations.

Operations that move one enrollment request through its lifecycle hold the
request's lock until their transaction commits or rolls back. The lock
only serializes callers inside one process; the compare-and-swap status
updates in the services are what keep separate processes consistent.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLockRegistry:
    """Hands out one asyncio.Lock per key, dropping locks nobody holds.

    Example:
        >>> async with request_locks.hold(request_id):
        ...     await service.approve(...)
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Acquire the lock for key for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        """Check whether someone currently holds the lock for key."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def holders(self, key: str) -> int:
        """Count callers holding or waiting for the lock for key."""
        return self._holders.get(key, 0)

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every service instance in the process
request_locks = KeyedLockRegistry()
