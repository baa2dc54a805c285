from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..models.settings import LearningLimits, SchedulerParameters


@dataclass(frozen=True)
class CachedParameters:
    params: SchedulerParameters
    limits: LearningLimits
    expires_at: float


class ParametersCache:
    """Per-user scheduler parameters with a bounded lifetime.

    The settings store calls `invalidate` whenever it writes a user's
    settings, so an entry is never served after an explicit update.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CachedParameters] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> CachedParameters | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[user_id]
                return None
            return entry

    def put(self, user_id: str, params: SchedulerParameters, limits: LearningLimits) -> CachedParameters:
        now = self._clock()
        entry = CachedParameters(params=params, limits=limits, expires_at=now + self._ttl)
        with self._lock:
            for stale in [key for key, cached in self._entries.items() if cached.expires_at <= now]:
                del self._entries[stale]
            self._entries[user_id] = entry
        return entry

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
