"""
Per-identity request counters for the broker. One counter per (window, identity); a window starts at the
first request and the count resets once it rolls over. In log_only mode an exceeded limit is only
reported to the caller of record(); the issuer logs it and carries on.
"""
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

MODE_LOG_ONLY = "log_only"
MODE_ENFORCE = "enforce"

# Prune stale counters once the table holds this many entries
_PRUNE_THRESHOLD = 10_000


@dataclass(frozen=True)
class RateWindow:
    name: str
    limit: int
    window_seconds: int


class RateCheck(NamedTuple):
    count: int
    exceeded: bool
    retry_after: int | None = None


@dataclass
class _Counter:
    count: int
    window_start: float
    window_seconds: int


class RateLimiter:
    """Lock-guarded counters; safe for concurrent record() calls from request threads."""

    def __init__(self, clock: Callable[[], float] = time.time, mode: str = MODE_LOG_ONLY):
        if mode not in (MODE_LOG_ONLY, MODE_ENFORCE):
            raise ValueError(f"unknown rate limit mode: {mode}")
        self._clock = clock
        self.mode = mode
        self._counters: dict[tuple[str, str], _Counter] = {}
        self._lock = threading.Lock()

    @property
    def enforcing(self) -> bool:
        return self.mode == MODE_ENFORCE

    def record(self, identity: str, window: RateWindow) -> RateCheck:
        """Count this request against identity in window; report whether the limit is now exceeded."""
        now = self._clock()
        key = (window.name, identity)
        with self._lock:
            counter = self._counters.get(key)
            if counter is None or now - counter.window_start > window.window_seconds:
                counter = _Counter(count=1, window_start=now, window_seconds=window.window_seconds)
                self._counters[key] = counter
            else:
                counter.count += 1
            count = counter.count
            window_start = counter.window_start
            if len(self._counters) > _PRUNE_THRESHOLD:
                self._prune_locked(now)
        if window.limit <= 0 or count <= window.limit:
            return RateCheck(count=count, exceeded=False)
        retry_after = max(1, math.ceil(window.window_seconds - (now - window_start)))
        return RateCheck(count=count, exceeded=True, retry_after=retry_after)

    def prune(self) -> int:
        """Drop counters whose window has rolled over. Returns how many were removed."""
        with self._lock:
            return self._prune_locked(self._clock())

    def _prune_locked(self, now: float) -> int:
        stale = [k for k, c in self._counters.items() if now - c.window_start > c.window_seconds]
        for k in stale:
            del self._counters[k]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)
