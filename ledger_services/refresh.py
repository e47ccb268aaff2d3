"""
LedgerRefreshCoordinator -- Event-driven invalidation over a ledger memo.

Keeps reconciled ledgers in memory, keyed by
``(party_id, snapshot_version, as_of, mode, date_range)``.  Ledger events
bump the snapshot version of the affected party (or of every party when the
event carries no ``party_id``).  Recomputation is lazy: nothing runs until
the next ``get_party_ledger()``, so a burst of events costs one
reconciliation.

Architecture: ledger_services -- imperative shell.  The reconciler itself
stays a pure function of the store; this layer owns all caching state.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from ledger_engines.reconciliation import PartyLedger
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.ledger_selector import FetchMode
from ledger_services.events import EventBus, LedgerEvent
from ledger_services.reconciler import LedgerReconciler

logger = get_logger("services.refresh")

_CacheKey = tuple[int, int, date, FetchMode, tuple[date, date] | None]


class LedgerRefreshCoordinator:
    """Memoizes PartyLedger results and invalidates them on ledger events.

    Contract:
        - ``get_party_ledger()`` returns an equal ledger to
          ``LedgerReconciler.compute_party_ledger()`` with the same
          arguments, computed at most once per snapshot version.
        - ``invalidate()`` only marks; it never recomputes.
    """

    WATCHED_EVENTS: tuple[LedgerEvent, ...] = tuple(LedgerEvent)

    def __init__(self, reconciler: LedgerReconciler, bus: EventBus | None = None) -> None:
        self._reconciler = reconciler
        self._versions: dict[int, int] = {}
        self._global_version = 0
        self._cache: dict[_CacheKey, PartyLedger] = {}
        self._hits = 0
        self._misses = 0
        self._unsubscribers: list[Callable[[], None]] = []
        if bus is not None:
            self._unsubscribers = [
                bus.on(event, self._handle_event) for event in self.WATCHED_EVENTS
            ]

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def cached_count(self) -> int:
        return len(self._cache)

    def snapshot_version(self, party_id: int) -> int:
        """Monotonic version; grows whenever the party is invalidated."""
        return self._global_version + self._versions.get(party_id, 0)

    def invalidate(self, party_id: int | None = None) -> None:
        """Mark one party (or all parties) stale."""
        if party_id is None:
            self._global_version += 1
            self._cache.clear()
        else:
            self._versions[party_id] = self._versions.get(party_id, 0) + 1
            for key in [k for k in self._cache if k[0] == party_id]:
                del self._cache[key]
        logger.debug("ledger_invalidated", extra={
            "target_party_id": party_id,
            "scope": "all" if party_id is None else "party",
        })

    def get_party_ledger(
        self,
        party_id: int,
        *,
        as_of: date | None = None,
        mode: FetchMode | str | None = None,
        date_range: tuple[date, date] | None = None,
    ) -> PartyLedger:
        """Cached ledger for the party's current snapshot version."""
        fetch_mode = self._reconciler.resolve_mode(mode)
        as_of_date = self._reconciler.resolve_as_of(as_of, date_range)
        key: _CacheKey = (
            party_id,
            self.snapshot_version(party_id),
            as_of_date,
            fetch_mode,
            date_range,
        )
        cached = self._cache.get(key)
        if cached is not None:
            self._hits += 1
            return cached

        self._misses += 1
        ledger = self._reconciler.compute_party_ledger(
            party_id,
            date_range=date_range,
            mode=fetch_mode,
            as_of=as_of_date,
        )
        self._evict_older(party_id, key[1], as_of_date)
        self._cache[key] = ledger
        return ledger

    def _evict_older(self, party_id: int, version: int, as_of_date: date) -> None:
        # Drop the party's entries that are older than the one being stored
        stale = [
            k for k in self._cache
            if k[0] == party_id and (k[1] < version or k[2] < as_of_date)
        ]
        for k in stale:
            del self._cache[k]

    def close(self) -> None:
        """Unsubscribe from the event bus and drop cached ledgers."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._cache.clear()

    def _handle_event(self, event: LedgerEvent, payload: Mapping[str, Any]) -> None:
        party_id = payload.get("party_id")
        logger.info("ledger_event_received", extra={
            "event": event.value,
            "target_party_id": party_id,
        })
        self.invalidate(int(party_id) if party_id is not None else None)
