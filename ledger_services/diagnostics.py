"""
BalanceDiagnostic -- Compare cached party balances with reconciled ones.

The billing workflow caches a running balance on each party row.  That
cache is never used for reconciliation; this diagnostic reports where it
has drifted from the balance derived from the three raw streams.

Report only: nothing is written back.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ledger_kernel.domain.records import PartyKind
from ledger_kernel.logging_config import get_logger
from ledger_services.aggregator import SummaryFailure
from ledger_services.reconciler import LedgerReconciler

logger = get_logger("services.diagnostics")


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """A party whose stored balance disagrees with its reconciled balance."""

    party_id: int
    party_name: str
    stored_balance: Decimal
    reconciled_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.reconciled_balance


@dataclass(frozen=True)
class BalanceDiagnosticReport:
    as_of: date
    checked_count: int
    discrepancies: tuple[BalanceDiscrepancy, ...]
    failures: tuple[SummaryFailure, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies and not self.failures


class BalanceDiagnostic:
    """Finds parties whose stored balance differs beyond a tolerance.

    The reconciled balance is ``total_outstanding - unapplied_credit``.
    """

    def __init__(self, reconciler: LedgerReconciler, tolerance: Decimal | None = None) -> None:
        self._reconciler = reconciler
        self._tolerance = (
            tolerance if tolerance is not None else reconciler.config.balance_tolerance
        )

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def run(
        self,
        party_ids: Sequence[int] | None = None,
        *,
        kind: PartyKind | None = None,
        as_of: date | None = None,
    ) -> BalanceDiagnosticReport:
        as_of_date = self._reconciler.resolve_as_of(as_of)
        if party_ids is None:
            party_ids = self._reconciler.list_party_ids(kind)

        discrepancies: list[BalanceDiscrepancy] = []
        failures: list[SummaryFailure] = []
        checked = 0
        for party_id in party_ids:
            try:
                ledger = self._reconciler.compute_party_ledger(party_id, as_of=as_of_date)
            except Exception as exc:
                code = getattr(exc, "code", type(exc).__name__)
                logger.exception("balance_check_failed", extra={
                    "party_id": party_id,
                    "error_code": code,
                })
                failures.append(SummaryFailure(party_id, code, str(exc)))
                continue

            checked += 1
            stored = ledger.party.stored_balance
            reconciled = ledger.net_balance
            if abs(stored - reconciled) > self._tolerance:
                discrepancies.append(BalanceDiscrepancy(
                    party_id=party_id,
                    party_name=ledger.party.name,
                    stored_balance=stored,
                    reconciled_balance=reconciled,
                ))
                logger.warning("balance_discrepancy_found", extra={
                    "party_id": party_id,
                    "stored_balance": str(stored),
                    "reconciled_balance": str(reconciled),
                })

        logger.info("balance_diagnostic_completed", extra={
            "checked_count": checked,
            "discrepancy_count": len(discrepancies),
            "failure_count": len(failures),
        })
        return BalanceDiagnosticReport(
            as_of=as_of_date,
            checked_count=checked,
            discrepancies=tuple(discrepancies),
            failures=tuple(failures),
        )
