"""Window store interface.

The limiter depends on this abstraction (not a concrete implementation) so any
ordered time-series store with an atomic evict+record and a cardinality query
can back it. Scores are request timestamps in epoch milliseconds; members are
unique per request so two requests in the same millisecond are both kept.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class WindowStore(ABC):
    """Interface for per-key sliding-window logs."""

    @abstractmethod
    async def evict_and_record(self, key: str, cutoff: int, score: int, member: str) -> None:
        """Atomically drop entries older than ``cutoff`` and record a new one.

        Args:
            key: Client key whose window is updated.
            cutoff: Entries with ``score < cutoff`` are removed.
            score: Timestamp (epoch ms) of the new entry.
            member: Unique value stored for the new entry.

        Raises:
            StoreUnavailableAppError: If the store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def count(self, key: str) -> int:
        """Return the current number of entries in the key's window."""
        raise NotImplementedError

    @abstractmethod
    async def evict_record_and_count(self, key: str, cutoff: int, score: int, member: str) -> int:
        """Same as ``evict_and_record`` with the count read inside the atomic unit.

        Returns:
            Cardinality of the window right after the new entry was recorded.
        """
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Drop every entry recorded for ``key``."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
