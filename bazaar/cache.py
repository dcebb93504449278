# bazaar/cache.py
"""
Time-bounded key/value cache for carts.

Entries expire CART_TTL_SECONDS after their last write. Expiry is checked on
read, so correctness never depends on the sweep; the sweep only frees memory
and runs every ``sweep_every`` writes.

``update`` is the only way to read-modify-write: it holds the key's lock for
the whole cycle and gives the callback a private copy, so two concurrent
increments on the same user's cart serialize instead of overwriting each
other, and a callback that raises leaves the stored value untouched.
Keys share a fixed pool of striped locks, so memory for locks does not grow
with the number of carts.
"""
from __future__ import annotations
import copy
import logging
import threading
import time
from typing import Any, Callable

log = logging.getLogger(__name__)

_MISSING = object()


class CartCache:
    def __init__(self, ttl_seconds: float = 86400, sweep_every: int = 200,
                 clock: Callable[[], float] = time.monotonic, lock_stripes: int = 64):
        self.ttl_seconds = ttl_seconds
        self.sweep_every = max(int(sweep_every), 1)
        self.clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._locks = [threading.RLock() for _ in range(max(int(lock_stripes), 1))]
        self._guard = threading.Lock()
        self._writes = 0

    @classmethod
    def init_app(cls, app, clock: Callable[[], float] | None = None) -> "CartCache":
        cache = cls(
            ttl_seconds=app.config.get("CART_TTL_SECONDS", 86400),
            sweep_every=app.config.get("CART_SWEEP_EVERY", 200),
            clock=clock or time.monotonic,
        )
        app.extensions["cart_cache"] = cache
        return cache

    def _lock_for(self, key: str) -> threading.RLock:
        return self._locks[hash(key) % len(self._locks)]

    def _read(self, key: str):
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        expires_at, value = entry
        if self.clock() >= expires_at:
            self._entries.pop(key, None)
            return _MISSING
        return value

    def _write(self, key: str, value) -> None:
        self._entries[key] = (self.clock() + self.ttl_seconds, value)
        self._writes += 1
        if self._writes % self.sweep_every == 0:
            self.sweep()

    def get(self, key: str, default=None):
        with self._lock_for(key):
            value = self._read(key)
            return default if value is _MISSING else copy.deepcopy(value)

    def set(self, key: str, value) -> None:
        with self._lock_for(key):
            self._write(key, copy.deepcopy(value))

    def delete(self, key: str) -> bool:
        with self._lock_for(key):
            return self._entries.pop(key, None) is not None

    def update(self, key: str, fn: Callable[[Any], Any]):
        """
        Atomically replace the value under ``key`` with ``fn(current)``.
        ``current`` is None when the key is absent or expired. Returning None
        deletes the entry.
        """
        with self._lock_for(key):
            current = self._read(key)
            new = fn(None if current is _MISSING else copy.deepcopy(current))
            if new is None:
                self._entries.pop(key, None)
                return None
            self._write(key, copy.deepcopy(new))
            return new

    def sweep(self) -> int:
        now = self.clock()
        with self._guard:
            expired = [k for k, (exp, _) in list(self._entries.items()) if now >= exp]
            for k in expired:
                self._entries.pop(k, None)
        if expired:
            log.debug("cart cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
