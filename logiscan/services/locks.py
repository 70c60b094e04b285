from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from typing import Iterator


_REGISTRY_LOCK = threading.Lock()
# Entries vanish once no caller holds the lock object.
_EVENT_LOCKS: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
_SKU_LOCKS: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()


def _lock_for(registry: weakref.WeakValueDictionary, key: str) -> threading.RLock:
    with _REGISTRY_LOCK:
        lock = registry.get(key)
        if lock is None:
            lock = threading.RLock()
            registry[key] = lock
        return lock


@contextmanager
def event_lock(event_id: str) -> Iterator[None]:
    """Serialize read-select-write sequences touching one event's reservations."""
    lock = _lock_for(_EVENT_LOCKS, event_id)
    with lock:
        yield


@contextmanager
def reservation_lock(event_id: str, sku: str) -> Iterator[None]:
    """Hold the event lock, then the SKU lock.

    Two events competing for the same SKU select and stage one after the
    other. Acquisition order is always event then SKU, and no SKU lock is
    held while waiting for an event lock.
    """
    event_guard = _lock_for(_EVENT_LOCKS, event_id)
    sku_guard = _lock_for(_SKU_LOCKS, sku)
    with event_guard:
        with sku_guard:
            yield
