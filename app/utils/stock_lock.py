import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Hashable, Iterable, List, Tuple

logger = logging.getLogger(__name__)

StockKey = Tuple[int, int]  # (product_id, warehouse_id)


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class KeyedLockRegistry:
    """In-process single-writer locks keyed by (product_id, warehouse_id).

    Keys are always acquired in sorted order so two callers locking
    overlapping key sets cannot deadlock. An entry lives only while some
    coroutine holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[Hashable, _LockEntry] = {}

    def _checkout(self, key: Hashable) -> _LockEntry:
        entry = self._locks.get(key)
        if entry is None:
            entry = _LockEntry()
            self._locks[key] = entry
        entry.holders += 1
        return entry

    def _checkin(self, key: Hashable, entry: _LockEntry):
        entry.holders -= 1
        if entry.holders == 0 and self._locks.get(key) is entry:
            del self._locks[key]

    @asynccontextmanager
    async def acquire(self, keys: Iterable[StockKey]):
        ordered: List[StockKey] = sorted(set(keys))
        held: List[Tuple[StockKey, _LockEntry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                try:
                    await entry.lock.acquire()
                except BaseException:
                    self._checkin(key, entry)
                    raise
                held.append((key, entry))
            if ordered:
                logger.debug(f"Acquired stock locks {ordered}")
            yield ordered
        finally:
            for key, entry in reversed(held):
                entry.lock.release()
                self._checkin(key, entry)

    def is_locked(self, key: StockKey) -> bool:
        entry = self._locks.get(key)
        return bool(entry and entry.lock.locked())

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide registry shared by every stock mutation
stock_locks = KeyedLockRegistry()
