"""
In-memory TTL cache with an injectable clock.

Backs the process-wide query state (cursor maps and client-side filter
results). Entries live for a fixed duration from creation and are never
refreshed by reads; an expired entry behaves exactly like a missing one.
"""

import hashlib
import json
import logging
import time
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

V = TypeVar("V")


def cache_key(namespace: str, params: dict[str, Any]) -> str:
    """Return a deterministic hex digest for the given namespace and params."""
    raw = json.dumps({"ns": namespace, **params}, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode()).hexdigest()


class TTLCache(Generic[V]):
    """Key -> value map whose entries expire `ttl` seconds after they were set."""

    def __init__(self, ttl: float, clock: Clock = time.monotonic, name: str = "cache"):
        self.ttl = ttl
        self.clock = clock
        self.name = name
        self._entries: dict[str, tuple[float, V]] = {}

    def _expired(self, created_at: float) -> bool:
        return self.clock() - created_at >= self.ttl

    def get(self, key: str) -> V | None:
        """Return the live value for `key`, evicting it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        created_at, value = entry
        if self._expired(created_at):
            logger.debug("%s: entry %s expired", self.name, key[:12])
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        """Store `value` under `key`, replacing any previous entry whole."""
        self._entries[key] = (self.clock(), value)

    def setdefault(self, key: str, factory: Callable[[], V]) -> V:
        """Return the live value for `key`, creating it with `factory` if absent."""
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value)
        return value

    def pop(self, key: str) -> V | None:
        entry = self._entries.pop(key, None)
        return entry[1] if entry else None

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        stale = [k for k, (created_at, _) in self._entries.items() if self._expired(created_at)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("%s: purged %d expired entries", self.name, len(stale))
        return len(stale)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
