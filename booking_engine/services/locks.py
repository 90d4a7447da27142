import asyncio
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, Hashable, Tuple

from booking_engine.core.logger import logger


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped when no task
    holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            if lock.locked():
                logger.debug(f"🔒 Waiting for slot lock {key}")
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())


def slot_key(provider_id: str, booking_date: date) -> Tuple[str, str]:
    return (provider_id, booking_date.isoformat())


# Guards check-then-insert for a provider's day within this process
slot_locks = KeyedLock()
