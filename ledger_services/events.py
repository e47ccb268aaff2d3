"""
Ledger domain events and a small synchronous event bus.

The billing, payment and return workflows emit these events after they
change the store.  The reconciliation core only consumes them; it never
emits events of its own.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.events")


class LedgerEvent(str, Enum):
    """Named events after which a party's ledger may have changed."""

    PAYMENT_RECORDED = "payment_recorded"
    INVOICE_CREATED = "invoice_created"
    INVOICE_UPDATED = "invoice_updated"
    STOCK_RECEIVING_COMPLETED = "stock_receiving_completed"
    RETURN_PROCESSED = "return_processed"
    PARTY_BALANCE_UPDATED = "party_balance_updated"


Listener = Callable[[LedgerEvent, Mapping[str, Any]], None]


class EventBus:
    """
    In-process publish/subscribe for ledger events.

    Listeners run synchronously in subscription order.  A listener that
    raises is logged and skipped; the remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[LedgerEvent, list[Listener]] = {}

    def on(self, event: LedgerEvent | str, listener: Listener) -> Callable[[], None]:
        """Subscribe; returns a callable that unsubscribes."""
        key = LedgerEvent(event)
        self._listeners.setdefault(key, []).append(listener)
        return lambda: self.off(key, listener)

    def off(self, event: LedgerEvent | str, listener: Listener) -> bool:
        """Unsubscribe.  Returns False if the listener was not subscribed."""
        listeners = self._listeners.get(LedgerEvent(event), [])
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def emit(self, event: LedgerEvent | str, payload: Mapping[str, Any] | None = None) -> int:
        """Deliver an event; returns the number of listeners that succeeded."""
        key = LedgerEvent(event)
        data: Mapping[str, Any] = payload or {}
        delivered = 0
        with LogContext.bind(event_name=key.value):
            for listener in list(self._listeners.get(key, [])):
                try:
                    listener(key, data)
                except Exception:
                    logger.exception("event_listener_failed", extra={
                        "listener": getattr(listener, "__qualname__", repr(listener)),
                    })
                    continue
                delivered += 1
            logger.debug("event_emitted", extra={
                "delivered": delivered,
                "party_id_in_payload": data.get("party_id"),
            })
        return delivered

    def listener_count(self, event: LedgerEvent | str | None = None) -> int:
        if event is None:
            return sum(len(v) for v in self._listeners.values())
        return len(self._listeners.get(LedgerEvent(event), []))

    def clear(self) -> None:
        self._listeners.clear()
