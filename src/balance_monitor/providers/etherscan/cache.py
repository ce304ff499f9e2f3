"""Short-lived cache for balance snapshots."""
import time
from collections.abc import Callable

from balance_monitor.providers.core.utils import normalize_address
from balance_monitor.schemas import BalanceSnapshot

CacheKey = tuple[str, str, int]


class SnapshotCache:
    """TTL cache of BalanceSnapshots keyed by (wallet, contract, chain_id).

    Addresses are compared case-insensitively. Expired entries are dropped
    lazily on lookup.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize empty cache.

        Args:
            ttl_seconds: Lifetime of an entry in seconds.
            clock: Monotonic time source (injectable for tests).
        """
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, tuple[float, BalanceSnapshot]] = {}

    @staticmethod
    def key(wallet: str, contract_address: str, chain_id: int) -> CacheKey:
        return (normalize_address(wallet), normalize_address(contract_address), chain_id)

    def get(self, key: CacheKey) -> BalanceSnapshot | None:
        """Return the cached snapshot if present and not expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, snapshot = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return snapshot

    def set(self, key: CacheKey, snapshot: BalanceSnapshot) -> None:
        self._entries[key] = (self._clock() + self._ttl, snapshot)

    def invalidate(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cached data."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
