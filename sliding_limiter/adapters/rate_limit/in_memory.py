"""In-memory sliding-window log store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state. The lock is only held for
  synchronous sections, never across an ``await``, so each store operation is
  atomic with respect to other coroutines and threads.
- Idle keys are reclaimed: at most once per window, a write sweeps every key
  whose newest entry is older than that write's cutoff.
"""

from __future__ import annotations

import bisect
import threading

from sliding_limiter.adapters.rate_limit.base import WindowStore

_Entry = tuple[int, str]


class InMemoryWindowStore(WindowStore):
    """Window store keeping each key's log as a list sorted by score.

    Entries are ``(score, member)`` tuples, so entries sharing a score are
    kept side by side instead of being merged.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._windows: dict[str, list[_Entry]] = {}
        self._next_sweep_at: int | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryWindowStore(keys={len(self._windows)})"

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep_locked(self, cutoff: int, score: int) -> None:
        if self._next_sweep_at is None:
            self._next_sweep_at = score
            return
        if cutoff < self._next_sweep_at:
            return
        stale = [key for key, entries in self._windows.items() if entries[-1][0] < cutoff]
        for key in stale:
            del self._windows[key]
        self._next_sweep_at = score

    def _record_locked(self, key: str, cutoff: int, score: int, member: str) -> int:
        self._sweep_locked(cutoff, score)
        entries = self._windows.get(key)
        if entries is None:
            entries = self._windows[key] = []
        else:
            # (cutoff,) sorts before every (cutoff, member) tuple
            index = bisect.bisect_left(entries, (cutoff,))
            if index:
                del entries[:index]
        bisect.insort(entries, (score, member))
        return len(entries)

    async def evict_and_record(self, key: str, cutoff: int, score: int, member: str) -> None:
        with self._lock:
            self._record_locked(key, cutoff, score, member)

    async def evict_record_and_count(self, key: str, cutoff: int, score: int, member: str) -> int:
        with self._lock:
            return self._record_locked(key, cutoff, score, member)

    async def count(self, key: str) -> int:
        with self._lock:
            return len(self._windows.get(key, ()))

    async def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)
