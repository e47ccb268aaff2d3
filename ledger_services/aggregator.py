"""
PartySummaryAggregator -- Roll-up of reconciled ledgers across parties.

Runs LedgerReconciler for many customers or vendors and produces the
sortable, filterable collection that list views and exports consume.

Architecture: ledger_services -- imperative shell.

Invariants enforced:
    - Partial failure tolerance: one party's failure is logged, recorded in
      SummaryReport.failures, and the scan continues.  The reconciler's own
      all-or-nothing rule still holds for each individual party.
    - By default only parties with an outstanding balance are returned.
    - Sorting is total: ties are broken by name and then party id.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from ledger_engines.reconciliation import EntryStatus, PartyLedger
from ledger_engines.risk import RiskTier
from ledger_kernel.domain.records import ZERO, PartyKind
from ledger_kernel.logging_config import get_logger
from ledger_services.reconciler import LedgerReconciler

logger = get_logger("services.aggregator")


class SortKey(str, Enum):
    """Sort orders offered by list views."""

    OUTSTANDING = "outstanding"
    NAME = "name"
    DAYS_OVERDUE = "days_overdue"


@dataclass(frozen=True)
class PartySummary:
    """Flattened per-party roll-up of a PartyLedger."""

    party_id: int
    name: str
    kind: PartyKind
    phone: str | None
    address: str | None
    total_billed: Decimal
    total_paid: Decimal
    total_return_credit: Decimal
    total_outstanding: Decimal
    unapplied_credit: Decimal
    days_overdue: int
    aging_buckets: tuple[tuple[str, Decimal], ...]
    undated_outstanding: Decimal
    risk_tier: RiskTier
    last_payment_date: date | None
    document_count: int
    payment_count: int
    overdue_document_count: int
    overdue_amount: Decimal
    status: EntryStatus
    warning_count: int = 0

    @classmethod
    def from_ledger(cls, ledger: PartyLedger) -> PartySummary:
        party = ledger.party
        return cls(
            party_id=party.id,
            name=party.name,
            kind=party.kind,
            phone=party.phone,
            address=party.address,
            total_billed=ledger.total_billed,
            total_paid=ledger.total_paid,
            total_return_credit=ledger.total_return_credit,
            total_outstanding=ledger.total_outstanding,
            unapplied_credit=ledger.unapplied_credit,
            days_overdue=ledger.days_overdue,
            aging_buckets=ledger.aging.buckets,
            undated_outstanding=ledger.undated_outstanding,
            risk_tier=ledger.risk_tier,
            last_payment_date=ledger.last_payment_date,
            document_count=ledger.document_count,
            payment_count=ledger.payment_count,
            overdue_document_count=ledger.overdue_document_count,
            overdue_amount=ledger.overdue_amount,
            status=ledger.status,
            warning_count=len(ledger.warnings),
        )


@dataclass(frozen=True)
class SummaryQuery:
    """
    Filter and sort options for a summary scan.

    ``descending`` defaults to True for amount and day sorts and to False
    for name sorts.
    """

    include_settled: bool = False
    statuses: frozenset[EntryStatus] | None = None
    risk_tiers: frozenset[RiskTier] | None = None
    min_outstanding: Decimal | None = None
    search: str | None = None
    sort_by: SortKey = SortKey.OUTSTANDING
    descending: bool | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sort_by", SortKey(self.sort_by))
        if self.statuses is not None:
            object.__setattr__(
                self, "statuses", frozenset(EntryStatus(s) for s in self.statuses)
            )
        if self.risk_tiers is not None:
            object.__setattr__(
                self, "risk_tiers", frozenset(RiskTier(t) for t in self.risk_tiers)
            )
        if self.min_outstanding is not None:
            object.__setattr__(self, "min_outstanding", Decimal(str(self.min_outstanding)))

    @property
    def is_descending(self) -> bool:
        if self.descending is not None:
            return self.descending
        return self.sort_by is not SortKey.NAME

    def matches(self, summary: PartySummary) -> bool:
        if not self.include_settled and summary.total_outstanding <= ZERO:
            return False
        if self.statuses is not None and summary.status not in self.statuses:
            return False
        if self.risk_tiers is not None and summary.risk_tier not in self.risk_tiers:
            return False
        if self.min_outstanding is not None and summary.total_outstanding < self.min_outstanding:
            return False
        if self.search:
            needle = self.search.strip().casefold()
            haystack = (summary.name, summary.phone or "", summary.address or "")
            if needle and not any(needle in field.casefold() for field in haystack):
                return False
        return True

    def sort(self, summaries: Iterable[PartySummary]) -> list[PartySummary]:
        if self.sort_by is SortKey.NAME:
            return sorted(
                summaries,
                key=lambda s: (s.name.casefold(), s.party_id),
                reverse=self.is_descending,
            )
        sign = -1 if self.is_descending else 1
        if self.sort_by is SortKey.OUTSTANDING:
            return sorted(
                summaries,
                key=lambda s: (sign * s.total_outstanding, s.name.casefold(), s.party_id),
            )
        return sorted(
            summaries,
            key=lambda s: (sign * s.days_overdue, s.name.casefold(), s.party_id),
        )


@dataclass(frozen=True)
class SummaryFailure:
    """A party whose reconciliation failed during a scan."""

    party_id: int
    code: str
    message: str


@dataclass(frozen=True)
class SummaryReport:
    """Result of a summary scan."""

    as_of: date
    summaries: tuple[PartySummary, ...]
    failures: tuple[SummaryFailure, ...] = ()

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def party_count(self) -> int:
        return len(self.summaries)

    @property
    def total_outstanding(self) -> Decimal:
        return sum((s.total_outstanding for s in self.summaries), ZERO)

    @property
    def average_outstanding(self) -> Decimal:
        if not self.summaries:
            return ZERO
        mean = self.total_outstanding / Decimal(len(self.summaries))
        return mean.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @property
    def tier_counts(self) -> dict[RiskTier, int]:
        counts = {tier: 0 for tier in RiskTier}
        for summary in self.summaries:
            counts[summary.risk_tier] += 1
        return counts

    @property
    def critical_count(self) -> int:
        return self.tier_counts[RiskTier.CRITICAL]

    def party_ids(self) -> list[int]:
        return [s.party_id for s in self.summaries]


class PartySummaryAggregator:
    """Runs the reconciler across parties and builds list-view summaries.

    Contract:
        - ``summarize()`` never raises because of a single party.
    Non-goals:
        - Does NOT run parties in parallel.
    """

    def __init__(self, reconciler: LedgerReconciler) -> None:
        self._reconciler = reconciler

    def summarize(
        self,
        party_ids: Sequence[int] | None = None,
        *,
        kind: PartyKind | None = None,
        query: SummaryQuery | None = None,
        as_of: date | None = None,
    ) -> SummaryReport:
        """Summarize the given parties (default: every party of ``kind``).

        Raises:
            StoreError: Only if the party list itself cannot be read.
        """
        query = query or SummaryQuery()
        as_of_date = self._reconciler.resolve_as_of(as_of)
        if party_ids is None:
            party_ids = self._reconciler.list_party_ids(kind)

        summaries: list[PartySummary] = []
        failures: list[SummaryFailure] = []
        for party_id in party_ids:
            try:
                ledger = self._reconciler.compute_party_ledger(party_id, as_of=as_of_date)
            except Exception as exc:
                code = getattr(exc, "code", type(exc).__name__)
                logger.exception("party_summary_failed", extra={
                    "party_id": party_id,
                    "error_code": code,
                })
                failures.append(SummaryFailure(party_id, code, str(exc)))
                continue

            if kind is not None and ledger.party.kind is not kind:
                continue
            summary = PartySummary.from_ledger(ledger)
            if query.matches(summary):
                summaries.append(summary)

        report = SummaryReport(
            as_of=as_of_date,
            summaries=tuple(query.sort(summaries)),
            failures=tuple(failures),
        )
        logger.info("party_summary_completed", extra={
            "kind": kind.value if kind else None,
            "requested": len(party_ids),
            "party_count": report.party_count,
            "failure_count": report.failure_count,
            "total_outstanding": str(report.total_outstanding),
            "sort_by": query.sort_by.value,
        })
        return report
