"""
Module: ledger_engines.reconciliation
Responsibility:
    Derive a party's ledger from its three raw streams: billing documents,
    payments and ledger-settled return credits.  Attributes payments to
    documents (explicit link first, then the unlinked pool oldest-first),
    applies return credits to the document they reference, and computes
    outstanding balances, aging, risk tier and summary statistics.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel domain records, exceptions and logging.

Invariants enforced:
    - outstanding = max(0, billed - paid - return_credit) per document.
    - Sum of per-document outstanding == PartyLedger.total_outstanding.
    - paid + return_credit <= billed for every document.
    - A payment is never allocated beyond its own amount; whatever cannot
      be placed is reported as unapplied credit.
    - Same inputs produce an equal PartyLedger (no clock, no randomness,
      fully ordered iteration).

Allocation order:
    1. Return credits reduce the document they reference.  Credit beyond
       what is left on that document is unapplied credit.
    2. Linked payments apply to their own document up to its remaining
       balance.  Any excess joins the unlinked pool.
    3. Pooled credit (unlinked payments, payments linking to unknown
       documents, excess of linked payments) is drawn in payment order
       against documents oldest-first.
    Documents and payments order by (date, id); undated records go last.

Failure modes:
    - ValueError if date_range starts after it ends.
    - Data problems never raise.  They are recorded as DataIntegrityWarning
      in PartyLedger.warnings and logged.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from ledger_engines.aging import STANDARD_BUCKETS, AgeBucket, AgingCalculator, AgingSummary
from ledger_engines.allocation import AllocationEngine, AllocationTarget
from ledger_engines.risk import DEFAULT_THRESHOLDS, RiskThresholds, RiskTier, classify_risk
from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.records import (
    ZERO,
    BillingDocument,
    Party,
    Payment,
    ReturnCredit,
)
from ledger_kernel.exceptions import DataIntegrityWarning
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")


class EntryStatus(str, Enum):
    """Settlement state of a billing document (or of a whole party)."""

    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


class AllocationSource(str, Enum):
    """How a payment reached a document."""

    LINKED = "linked"  # Payment carried the document id
    POOLED = "pooled"  # Drawn from general credit, oldest document first


@dataclass(frozen=True)
class PaymentAllocation:
    """Part of a payment applied to one document, seen from the document."""

    payment_id: int
    amount: Decimal
    source: AllocationSource


@dataclass(frozen=True)
class DocumentAllocation:
    """Part of a payment applied to one document, seen from the payment."""

    billing_document_id: int
    amount: Decimal
    source: AllocationSource


@dataclass(frozen=True)
class LedgerEntry:
    """
    Derived allocation state of one billing document.

    Guarantees:
        - outstanding == billed - paid - return_credit >= 0.
        - days_overdue is 0 when outstanding is 0, and None when the
          document has an outstanding balance but no usable date.
    """

    billing_document_id: int
    document_number: str | None
    document_date: date | None
    billed: Decimal
    paid: Decimal
    return_credit: Decimal
    outstanding: Decimal
    days_overdue: int | None
    status: EntryStatus
    allocations: tuple[PaymentAllocation, ...] = ()

    @property
    def label(self) -> str:
        return self.document_number or f"DOC-{self.billing_document_id}"


@dataclass(frozen=True)
class PaymentApplication:
    """Where one payment ended up."""

    payment_id: int
    amount: Decimal
    applied: Decimal
    unapplied: Decimal
    allocations: tuple[DocumentAllocation, ...] = ()


@dataclass(frozen=True)
class ReconciliationPolicy:
    """
    Tunable parameters of a reconciliation run.

    Built by the services layer from ReconcilerConfig.
    """

    decimal_places: int = 2
    aging_buckets: tuple[AgeBucket, ...] = STANDARD_BUCKETS
    risk_thresholds: RiskThresholds = DEFAULT_THRESHOLDS
    overdue_days: int = 30

    def __post_init__(self) -> None:
        if self.decimal_places < 0:
            raise ValueError("decimal_places cannot be negative")
        if self.overdue_days < 0:
            raise ValueError("overdue_days cannot be negative")
        if not self.aging_buckets:
            raise ValueError("At least one aging bucket is required")

    def quantize(self, amount: Decimal) -> Decimal:
        return amount.quantize(Decimal(1).scaleb(-self.decimal_places), rounding=ROUND_HALF_UP)


DEFAULT_POLICY = ReconciliationPolicy()


@dataclass(frozen=True)
class PartyLedger:
    """
    Reconciled ledger of one party as of a date.

    Contract:
        Frozen snapshot; a pure function of the fetched streams, the as-of
        date, the date range and the policy.
    Guarantees:
        - total_outstanding == sum(entry.outstanding for entry in entries).
        - total_billed - total_paid - total_return_credit == total_outstanding.
    """

    party: Party
    as_of: date
    entries: tuple[LedgerEntry, ...]
    payment_applications: tuple[PaymentApplication, ...]
    total_billed: Decimal
    total_paid: Decimal
    total_return_credit: Decimal
    total_outstanding: Decimal
    unapplied_credit: Decimal
    days_overdue: int
    oldest_unpaid_document_id: int | None
    aging: AgingSummary
    risk_tier: RiskTier
    last_payment_date: date | None
    document_count: int
    payment_count: int
    overdue_document_count: int
    overdue_amount: Decimal
    average_payment_days: int
    warnings: tuple[DataIntegrityWarning, ...] = ()
    mode: str = "optimized"
    date_range: tuple[date, date] | None = None

    @property
    def party_id(self) -> int:
        return self.party.id

    @property
    def aging_buckets(self) -> dict[str, Decimal]:
        return self.aging.as_dict()

    @property
    def undated_outstanding(self) -> Decimal:
        return self.aging.undated

    @property
    def net_balance(self) -> Decimal:
        """Outstanding less credit the party holds that reached no document."""
        return self.total_outstanding - self.unapplied_credit

    @property
    def status(self) -> EntryStatus:
        if self.total_outstanding == ZERO:
            return EntryStatus.PAID
        if self.total_paid > ZERO:
            return EntryStatus.PARTIAL
        return EntryStatus.UNPAID

    @property
    def outstanding_entries(self) -> tuple[LedgerEntry, ...]:
        return tuple(e for e in self.entries if e.outstanding > ZERO)


@dataclass(frozen=True)
class PreviewLine:
    """How much of a proposed payment would reach one document."""

    billing_document_id: int
    document_number: str | None
    document_date: date | None
    outstanding_before: Decimal
    allocated: Decimal

    @property
    def outstanding_after(self) -> Decimal:
        return self.outstanding_before - self.allocated


@dataclass(frozen=True)
class AllocationPreview:
    """Result of applying a hypothetical unlinked payment oldest-first."""

    party_id: int
    amount: Decimal
    lines: tuple[PreviewLine, ...]
    total_allocated: Decimal
    remaining_credit: Decimal
    outstanding_before: Decimal
    outstanding_after: Decimal


def _order_key(record_date: date | None, record_id: int) -> tuple[bool, date, int]:
    return (record_date is None, record_date or date.min, record_id)


def _entry_status(outstanding: Decimal, paid: Decimal) -> EntryStatus:
    if outstanding == ZERO:
        return EntryStatus.PAID
    if paid > ZERO:
        return EntryStatus.PARTIAL
    return EntryStatus.UNPAID


@dataclass
class _Allocations:
    """Mutable working state of one reconciliation pass."""

    billed: dict[int, Decimal]
    remaining: dict[int, Decimal] = field(default_factory=dict)
    paid: dict[int, Decimal] = field(default_factory=dict)
    returned: dict[int, Decimal] = field(default_factory=dict)
    by_document: dict[int, list[PaymentAllocation]] = field(default_factory=dict)
    by_payment: dict[int, list[DocumentAllocation]] = field(default_factory=dict)
    unapplied: Decimal = ZERO

    def __post_init__(self) -> None:
        for doc_id, amount in self.billed.items():
            self.remaining[doc_id] = amount
            self.paid[doc_id] = ZERO
            self.returned[doc_id] = ZERO
            self.by_document[doc_id] = []

    def apply_return(self, doc_id: int, amount: Decimal) -> Decimal:
        applied = min(amount, self.remaining[doc_id])
        self.returned[doc_id] += applied
        self.remaining[doc_id] -= applied
        return amount - applied

    def apply_payment(
        self, payment_id: int, doc_id: int, amount: Decimal, source: AllocationSource
    ) -> None:
        self.paid[doc_id] += amount
        self.remaining[doc_id] -= amount
        self.by_document[doc_id].append(PaymentAllocation(payment_id, amount, source))
        self.by_payment.setdefault(payment_id, []).append(
            DocumentAllocation(doc_id, amount, source)
        )


@traced_engine(
    "reconciliation",
    "1.0",
    fingerprint_fields=("party", "documents", "payments", "returns", "as_of", "date_range"),
)
def reconcile_party(
    *,
    party: Party,
    documents: Sequence[BillingDocument],
    payments: Sequence[Payment],
    returns: Sequence[ReturnCredit],
    as_of: date,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
    date_range: tuple[date, date] | None = None,
    mode: str = "optimized",
) -> PartyLedger:
    """
    Reconcile one party's streams into a PartyLedger.

    Args:
        party: The customer or vendor.
        documents: All of the party's billing documents, any order.
        payments: All of the party's payments, any order.
        returns: The party's return credits.  Cash-settled returns are
            ignored.
        as_of: Date that ages are measured against.
        policy: Rounding, aging, risk and overdue parameters.
        date_range: Optional inclusive ``(start, end)``.  Records dated
            after ``end`` are ignored.  Documents dated before ``start``
            are still allocated against but omitted from the returned
            entries and totals.  Payments dated before ``start`` likewise
            still fund allocation but are left out of ``payment_count`` and
            ``last_payment_date``.  Undated records are always included.
        mode: Fetch path that produced the streams, recorded on the result.
    """
    start: date | None = None
    end: date | None = None
    if date_range is not None:
        start, end = date_range
        if start > end:
            raise ValueError(f"date_range start {start} is after end {end}")

    def in_cutoff(record_date: date | None) -> bool:
        return end is None or record_date is None or record_date <= end

    q = policy.quantize
    warnings: list[DataIntegrityWarning] = []

    docs = sorted(
        (d for d in documents if in_cutoff(d.date)),
        key=lambda d: _order_key(d.date, d.id),
    )
    cut_off_ids = {d.id for d in documents} - {d.id for d in docs}
    pays = sorted(
        (p for p in payments if in_cutoff(p.date)),
        key=lambda p: _order_key(p.date, p.id),
    )
    rets = sorted(
        (r for r in returns if r.affects_balance and in_cutoff(r.date)),
        key=lambda r: _order_key(r.date, r.id),
    )

    for doc in docs:
        if doc.date is None:
            warnings.append(DataIntegrityWarning(
                "billing_document", doc.id,
                f"missing or unparseable date {doc.raw_date!r}; excluded from aging",
            ))
    for payment in pays:
        if payment.date is None:
            warnings.append(DataIntegrityWarning(
                "payment", payment.id,
                f"missing or unparseable date {payment.raw_date!r}; allocated last",
            ))

    state = _Allocations(billed={d.id: q(d.total_amount) for d in docs})

    for ret in rets:
        doc_id = ret.original_billing_document_id
        if doc_id not in state.billed:
            if doc_id not in cut_off_ids:
                warnings.append(DataIntegrityWarning(
                    "return_credit", ret.id,
                    f"references unknown billing document {doc_id}; not applied",
                ))
            continue
        excess = state.apply_return(doc_id, q(ret.amount))
        if excess > ZERO:
            state.unapplied += excess
            warnings.append(DataIntegrityWarning(
                "return_credit", ret.id,
                f"exceeds remaining balance of billing document {doc_id} by {excess}",
            ))

    pool: list[tuple[int, Decimal]] = []
    for payment in pays:
        amount = q(payment.amount)
        doc_id = payment.billing_document_id
        if doc_id is None:
            pool.append((payment.id, amount))
            continue
        if doc_id not in state.billed:
            if doc_id not in cut_off_ids:
                warnings.append(DataIntegrityWarning(
                    "payment", payment.id,
                    f"references unknown billing document {doc_id}; treated as general credit",
                ))
            pool.append((payment.id, amount))
            continue
        applied = min(amount, state.remaining[doc_id])
        if applied > ZERO:
            state.apply_payment(payment.id, doc_id, applied, AllocationSource.LINKED)
        if amount > applied:
            pool.append((payment.id, amount - applied))

    allocator = AllocationEngine()
    for payment_id, available in pool:
        targets = [
            AllocationTarget(
                target_id=doc.id,
                eligible_amount=state.remaining[doc.id],
                date=doc.date,
                sequence=seq,
            )
            for seq, doc in enumerate(docs)
            if state.remaining[doc.id] > ZERO
        ]
        result = allocator.allocate_fifo(available, targets)
        for line in result.funded_lines:
            state.apply_payment(payment_id, line.target_id, line.allocated, AllocationSource.POOLED)
        state.unapplied += result.unallocated

    applications = []
    for payment in pays:
        allocations = tuple(state.by_payment.get(payment.id, ()))
        amount = q(payment.amount)
        applied = sum((a.amount for a in allocations), ZERO)
        applications.append(PaymentApplication(
            payment_id=payment.id,
            amount=amount,
            applied=applied,
            unapplied=amount - applied,
            allocations=allocations,
        ))

    aging = AgingCalculator(policy.aging_buckets)
    entries: list[LedgerEntry] = []
    for doc in docs:
        if start is not None and doc.date is not None and doc.date < start:
            continue
        outstanding = state.remaining[doc.id]
        paid = state.paid[doc.id]
        returned = state.returned[doc.id]
        entries.append(LedgerEntry(
            billing_document_id=doc.id,
            document_number=doc.document_number,
            document_date=doc.date,
            billed=state.billed[doc.id],
            paid=paid,
            return_credit=returned,
            outstanding=outstanding,
            days_overdue=aging.days_overdue(doc.date, as_of) if outstanding > ZERO else 0,
            status=_entry_status(outstanding, paid),
            allocations=tuple(state.by_document[doc.id]),
        ))

    unpaid = [e for e in entries if e.outstanding > ZERO]
    unpaid_dated = [e for e in unpaid if e.document_date is not None]
    if unpaid_dated:
        oldest = unpaid_dated[0]
        days_overdue = oldest.days_overdue or 0
        oldest_unpaid_id: int | None = oldest.billing_document_id
    else:
        days_overdue = 0
        oldest_unpaid_id = unpaid[0].billing_document_id if unpaid else None

    total_outstanding = sum((e.outstanding for e in entries), ZERO)
    overdue = [
        e for e in unpaid_dated
        if e.days_overdue is not None and e.days_overdue > policy.overdue_days
    ]
    window_pays = [
        p for p in pays
        if start is None or p.date is None or p.date >= start
    ]
    payment_dates = [p.date for p in window_pays if p.date is not None]

    for warning in warnings:
        logger.warning("data_integrity_warning", extra={
            "party_id": party.id,
            "record_type": warning.record_type,
            "record_id": warning.record_id,
            "reason": warning.reason,
        })

    ledger = PartyLedger(
        party=party,
        as_of=as_of,
        entries=tuple(entries),
        payment_applications=tuple(applications),
        total_billed=sum((e.billed for e in entries), ZERO),
        total_paid=sum((e.paid for e in entries), ZERO),
        total_return_credit=sum((e.return_credit for e in entries), ZERO),
        total_outstanding=total_outstanding,
        unapplied_credit=state.unapplied,
        days_overdue=days_overdue,
        oldest_unpaid_document_id=oldest_unpaid_id,
        aging=aging.summarize(
            items=[(e.document_date, e.outstanding) for e in unpaid],
            as_of=as_of,
        ),
        risk_tier=classify_risk(days_overdue, total_outstanding, policy.risk_thresholds),
        last_payment_date=max(payment_dates) if payment_dates else None,
        document_count=len(entries),
        payment_count=len(window_pays),
        overdue_document_count=len(overdue),
        overdue_amount=sum((e.outstanding for e in overdue), ZERO),
        average_payment_days=_average_payment_days(entries, pays),
        warnings=tuple(warnings),
        mode=mode,
        date_range=date_range,
    )

    logger.info("party_reconciled", extra={
        "party_id": party.id,
        "as_of": as_of.isoformat(),
        "document_count": ledger.document_count,
        "payment_count": ledger.payment_count,
        "total_outstanding": str(ledger.total_outstanding),
        "unapplied_credit": str(ledger.unapplied_credit),
        "risk_tier": ledger.risk_tier.value,
        "warning_count": len(warnings),
    })
    return ledger


def _average_payment_days(
    entries: Sequence[LedgerEntry],
    payments: Sequence[Payment],
) -> int:
    """
    Mean days from document date to the last payment that settled it.

    Only fully paid, dated documents with at least one dated payment
    allocation count.  Rounded half up to whole days; 0 when none qualify.
    """
    dates = {p.id: p.date for p in payments}
    spans: list[int] = []
    for entry in entries:
        if entry.status is not EntryStatus.PAID or entry.document_date is None:
            continue
        settled = [dates[a.payment_id] for a in entry.allocations if dates.get(a.payment_id)]
        if not settled:
            continue
        spans.append(max(0, (max(settled) - entry.document_date).days))
    if not spans:
        return 0
    mean = Decimal(sum(spans)) / Decimal(len(spans))
    return int(mean.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@traced_engine("allocation_preview", "1.0", fingerprint_fields=("amount",))
def preview_allocation(*, ledger: PartyLedger, amount: Decimal) -> AllocationPreview:
    """
    Show how a new unlinked payment of ``amount`` would be applied.

    Outstanding documents are funded oldest-first; whatever is left over
    is reported as remaining credit.

    Raises:
        ValueError: If amount is not positive.
    """
    if amount <= ZERO:
        raise ValueError(f"Preview amount must be positive: {amount}")

    outstanding = {e.billing_document_id: e for e in ledger.outstanding_entries}
    targets = [
        AllocationTarget(
            target_id=e.billing_document_id,
            eligible_amount=e.outstanding,
            date=e.document_date,
            sequence=seq,
        )
        for seq, e in enumerate(ledger.outstanding_entries)
    ]
    result = AllocationEngine().allocate_fifo(amount, targets)
    lines = tuple(
        PreviewLine(
            billing_document_id=line.target_id,
            document_number=outstanding[line.target_id].document_number,
            document_date=outstanding[line.target_id].document_date,
            outstanding_before=outstanding[line.target_id].outstanding,
            allocated=line.allocated,
        )
        for line in result.funded_lines
    )
    return AllocationPreview(
        party_id=ledger.party_id,
        amount=amount,
        lines=lines,
        total_allocated=result.total_allocated,
        remaining_credit=result.unallocated,
        outstanding_before=ledger.total_outstanding,
        outstanding_after=ledger.total_outstanding - result.total_allocated,
    )
