"""Process-local keyed lock registry.

Progress updates for one (seller, campaign) pair and balance mutations for
one seller must never interleave. Each key gets its own re-entrant lock,
created on first use and dropped once nobody holds or waits on it, so the
registry only ever contains keys in flight; unrelated keys never contend.

This only serialises within a single process. Cross-process safety comes
from the optimistic ``version`` column on progress rows, the conditional
balance and status updates, and the unique completed-card constraint.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        # threads holding or waiting on the lock, re-entries included
        self.users = 0


class KeyedLockRegistry:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, _Entry] = {}

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        entry = self._checkout(key)
        try:
            entry.lock.acquire()
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def progress_key(seller_id: int, campaign_id: int) -> tuple[str, int, int]:
    return ("progress", seller_id, campaign_id)


def seller_key(seller_id: int) -> tuple[str, int]:
    return ("seller", seller_id)


GLOBAL_LOCKS = KeyedLockRegistry()

__all__ = ["KeyedLockRegistry", "GLOBAL_LOCKS", "progress_key", "seller_key"]
