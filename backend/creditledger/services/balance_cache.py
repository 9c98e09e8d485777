"""
Short-lived balance cache owned by a single CreditLedger instance.

Entries are advisory: they save redundant reads within one request burst and
are never used to decide whether a mutation is allowed.
"""
import time
from typing import Callable, Dict, Optional, Tuple

from creditledger.models.credit_transaction import CreditKind
from creditledger.utils.metrics import balance_cache_lookups_total


class BalanceCache:
    """TTL cache keyed by (user_id, kind)."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, CreditKind], Tuple[int, float]] = {}

    def get(self, user_id: str, kind: CreditKind) -> Optional[int]:
        """Return the cached balance, or None when absent or stale."""
        entry = self._entries.get((user_id, kind))
        if entry is None:
            balance_cache_lookups_total.labels(result="miss").inc()
            return None

        balance, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[(user_id, kind)]
            balance_cache_lookups_total.labels(result="stale").inc()
            return None

        balance_cache_lookups_total.labels(result="hit").inc()
        return balance

    def put(self, user_id: str, kind: CreditKind, balance: int) -> None:
        self._entries[(user_id, kind)] = (balance, self._clock())

    def invalidate(self, user_id: str, kind: CreditKind) -> None:
        self._entries.pop((user_id, kind), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
