"""
LedgerReconciler -- Service that computes a party's reconciled ledger.

Composes the store query interface (LedgerSelector) with the pure
reconciliation engine, clock injection and configuration.

Architecture: ledger_services -- imperative shell.
    Fetches the three raw streams for one party (single-query or legacy
    per-record path), then hands typed records to
    ``ledger_engines.reconciliation.reconcile_party``.

Invariants enforced:
    - All-or-nothing per party: a lookup or query failure propagates and
      no partial ledger is returned.
    - Read-only: the reconciler never writes to the store.
    - Deterministic: the as-of date comes from the injected Clock when the
      caller does not pass one.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ledger_config.schema import ReconcilerConfig
from ledger_engines.reconciliation import (
    AllocationPreview,
    PartyLedger,
    preview_allocation,
    reconcile_party,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.records import Party, PartyKind
from ledger_kernel.exceptions import NotFoundError, RecordValidationError, StoreError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.ledger_selector import FetchMode, LedgerSelector

logger = get_logger("services.reconciler")


class LedgerReconciler:
    """Computes party ledgers from the store.

    Contract:
        - ``compute_party_ledger()`` returns a PartyLedger for one party.
        - ``preview_payment_allocation()`` shows how a new unlinked payment
          would be spread over the party's outstanding documents.

    Non-goals:
        - Does NOT cache results (see LedgerRefreshCoordinator).
        - Does NOT record payments or modify any data.
    """

    def __init__(
        self,
        store: LedgerSelector,
        config: ReconcilerConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._config = config or ReconcilerConfig.with_defaults()
        self._policy = self._config.to_policy()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> ReconcilerConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    def resolve_mode(self, mode: FetchMode | str | None) -> FetchMode:
        """Requested fetch mode, or the configured default."""
        return FetchMode(mode) if mode is not None else self._config.default_mode

    def resolve_as_of(
        self,
        as_of: date | None,
        date_range: tuple[date, date] | None = None,
    ) -> date:
        """Requested as-of date, else the end of the range, else today."""
        if as_of is not None:
            return as_of
        if date_range is not None:
            return date_range[1]
        return self._clock.today()

    def get_party(self, party_id: int) -> Party:
        return self._store.get_party(party_id)

    def list_party_ids(self, kind: PartyKind | None = None) -> list[int]:
        return self._store.list_party_ids(kind)

    def compute_party_ledger(
        self,
        party_id: int,
        *,
        date_range: tuple[date, date] | None = None,
        mode: FetchMode | str | None = None,
        as_of: date | None = None,
    ) -> PartyLedger:
        """Reconcile one party.

        Args:
            party_id: Customer or vendor id.
            date_range: Optional inclusive ``(start, end)`` window.
            mode: ``optimized`` or ``legacy`` fetch path; both yield the
                same ledger.  Defaults to the configured mode.
            as_of: Date ages are measured against.

        Raises:
            PartyNotFoundError: If the party does not exist.
            StoreError: If a store query fails.
            RecordValidationError: If a stored row cannot become a typed record.
        """
        fetch_mode = self.resolve_mode(mode)
        as_of_date = self.resolve_as_of(as_of, date_range)

        with LogContext.bind(party_id=party_id):
            logger.debug("party_ledger_requested", extra={
                "mode": fetch_mode.value,
                "as_of": as_of_date.isoformat(),
                "date_range": [d.isoformat() for d in date_range] if date_range else None,
            })
            try:
                streams = self._store.fetch_streams(party_id, fetch_mode)
            except NotFoundError:
                logger.warning("party_ledger_party_not_found")
                raise
            except StoreError as exc:
                logger.error("party_ledger_store_failed", extra={
                    "operation": exc.operation,
                    "reason": exc.reason,
                })
                raise
            except RecordValidationError as exc:
                logger.error("party_ledger_invalid_record", extra={
                    "record_type": exc.record_type,
                    "reason": exc.reason,
                })
                raise

            return reconcile_party(
                party=streams.party,
                documents=streams.documents,
                payments=streams.payments,
                returns=streams.returns,
                as_of=as_of_date,
                policy=self._policy,
                date_range=date_range,
                mode=fetch_mode.value,
            )

    def preview_payment_allocation(
        self,
        party_id: int,
        amount: Decimal | str,
        *,
        as_of: date | None = None,
    ) -> AllocationPreview:
        """Show how an unlinked payment of ``amount`` would be applied.

        Raises:
            ValueError: If amount is not positive.
            PartyNotFoundError, StoreError: As for compute_party_ledger.
        """
        value = self._policy.quantize(Decimal(str(amount)))
        ledger = self.compute_party_ledger(party_id, as_of=as_of)
        preview = preview_allocation(ledger=ledger, amount=value)
        logger.info("payment_allocation_previewed", extra={
            "party_id": party_id,
            "amount": str(value),
            "documents_funded": len(preview.lines),
            "remaining_credit": str(preview.remaining_credit),
        })
        return preview
