from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator


class ProductLockManager:
    """
    Per-product exclusive locks for the checkout path.

    Locks are always taken in sorted id order, so two checkouts touching
    overlapping products can never deadlock. Checkouts over disjoint product
    sets do not block each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, product_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_ids: Iterable[str]) -> Iterator[None]:
        locks = [self._lock_for(pid) for pid in sorted(set(product_ids))]
        acquired: list[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
