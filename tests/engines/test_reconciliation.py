"""
Tests for the party reconciliation engine.

Covers:
- FIFO allocation of unlinked payments
- Linked payments, including excess and dangling links
- Ledger and cash return credits
- Aging, risk tier and party statistics
- Date range windows
- Idempotence and the balance identities
- Payment allocation preview
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.reconciliation import (
    AllocationSource,
    DocumentAllocation,
    EntryStatus,
    preview_allocation,
    reconcile_party,
)
from ledger_engines.risk import RiskTier
from ledger_kernel.domain.records import (
    BillingDocument,
    Party,
    PartyKind,
    Payment,
    ReturnCredit,
    SettlementType,
)

AS_OF = date(2024, 6, 30)
PARTY = Party(id=1, kind=PartyKind.CUSTOMER, name="Karachi Iron Works")


def doc(doc_id, amount, doc_date, number=None):
    return BillingDocument(
        id=doc_id,
        party_id=PARTY.id,
        total_amount=Decimal(amount),
        date=doc_date,
        raw_date=doc_date.isoformat() if doc_date else "31/31/2024",
        document_number=number,
    )


def pay(payment_id, amount, pay_date, link=None):
    return Payment(
        id=payment_id,
        party_id=PARTY.id,
        amount=Decimal(amount),
        date=pay_date,
        raw_date=pay_date.isoformat() if pay_date else None,
        billing_document_id=link,
    )


def ret(return_id, doc_id, amount, settlement=SettlementType.LEDGER):
    return ReturnCredit(
        id=return_id,
        party_id=PARTY.id,
        original_billing_document_id=doc_id,
        amount=Decimal(amount),
        settlement_type=settlement,
    )


def reconcile(documents=(), payments=(), returns=(), as_of=AS_OF, **kwargs):
    return reconcile_party(
        party=PARTY,
        documents=list(documents),
        payments=list(payments),
        returns=list(returns),
        as_of=as_of,
        **kwargs,
    )


def entry_for(ledger, doc_id):
    return next(e for e in ledger.entries if e.billing_document_id == doc_id)


class TestFifoAllocation:
    """Unlinked payments are pooled and consumed oldest document first."""

    def test_two_invoices_one_unlinked_payment(self):
        """1200 pays INV-1 (1000) in full and 200 of INV-2 (500)."""
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 6, 1), "INV-1"),
                doc(2, "500", date(2024, 6, 2), "INV-2"),
            ],
            payments=[pay(10, "1200", date(2024, 6, 3))],
        )

        inv1 = entry_for(ledger, 1)
        inv2 = entry_for(ledger, 2)
        assert inv1.paid == Decimal("1000")
        assert inv1.outstanding == Decimal("0")
        assert inv1.status == EntryStatus.PAID
        assert inv2.paid == Decimal("200")
        assert inv2.outstanding == Decimal("300")
        assert inv2.status == EntryStatus.PARTIAL
        assert ledger.total_outstanding == Decimal("300")
        assert ledger.unapplied_credit == Decimal("0")

    def test_input_order_does_not_matter(self):
        """Documents are sorted by date before allocation."""
        ledger = reconcile(
            documents=[
                doc(2, "500", date(2024, 6, 2)),
                doc(1, "1000", date(2024, 6, 1)),
            ],
            payments=[pay(10, "1200", date(2024, 6, 3))],
        )

        assert [e.billing_document_id for e in ledger.entries] == [1, 2]
        assert entry_for(ledger, 1).outstanding == Decimal("0")
        assert entry_for(ledger, 2).outstanding == Decimal("300")

    def test_pool_consumed_in_payment_date_order(self):
        """The earlier payment is drawn first, even with a higher id."""
        ledger = reconcile(
            documents=[doc(1, "1000", date(2024, 6, 1))],
            payments=[
                pay(10, "300", date(2024, 6, 5)),
                pay(11, "900", date(2024, 6, 4)),
            ],
        )

        applications = {a.payment_id: a for a in ledger.payment_applications}
        assert applications[11].applied == Decimal("900")
        assert applications[10].applied == Decimal("100")
        assert applications[10].unapplied == Decimal("200")
        assert ledger.unapplied_credit == Decimal("200")

    def test_overpayment_becomes_unapplied_credit(self):
        ledger = reconcile(
            documents=[doc(1, "500", date(2024, 6, 1))],
            payments=[pay(10, "800", date(2024, 6, 2))],
        )

        assert ledger.total_outstanding == Decimal("0")
        assert ledger.unapplied_credit == Decimal("300")
        assert ledger.net_balance == Decimal("-300")
        assert ledger.status == EntryStatus.PAID

    def test_undated_documents_allocated_last(self):
        """A document with an unparseable date is funded after dated ones."""
        ledger = reconcile(
            documents=[
                doc(1, "400", None),
                doc(2, "400", date(2024, 1, 1)),
            ],
            payments=[pay(10, "500", date(2024, 2, 1))],
        )

        assert [e.billing_document_id for e in ledger.entries] == [2, 1]
        assert entry_for(ledger, 2).paid == Decimal("400")
        assert entry_for(ledger, 1).paid == Decimal("100")
        assert any(
            w.record_type == "billing_document" and w.record_id == 1
            for w in ledger.warnings
        )

    def test_same_date_ties_broken_by_id(self):
        ledger = reconcile(
            documents=[
                doc(7, "100", date(2024, 6, 1)),
                doc(3, "100", date(2024, 6, 1)),
            ],
            payments=[pay(10, "100", date(2024, 6, 2))],
        )

        assert entry_for(ledger, 3).outstanding == Decimal("0")
        assert entry_for(ledger, 7).outstanding == Decimal("100")

    def test_no_payments_leaves_everything_unpaid(self):
        ledger = reconcile(documents=[doc(1, "250", date(2024, 6, 1))])

        entry = entry_for(ledger, 1)
        assert entry.status == EntryStatus.UNPAID
        assert entry.outstanding == Decimal("250")
        assert ledger.status == EntryStatus.UNPAID

    def test_empty_party(self):
        ledger = reconcile()

        assert ledger.entries == ()
        assert ledger.total_outstanding == Decimal("0")
        assert ledger.oldest_unpaid_document_id is None
        assert ledger.risk_tier == RiskTier.LOW


class TestLinkedPayments:
    """Payments carrying a billing document id."""

    def test_linked_payment_pays_its_own_document(self):
        """A payment linked to the newer document does not touch the older one."""
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 6, 1)),
                doc(2, "500", date(2024, 6, 2)),
            ],
            payments=[pay(10, "500", date(2024, 6, 3), link=2)],
        )

        assert entry_for(ledger, 2).outstanding == Decimal("0")
        assert entry_for(ledger, 1).outstanding == Decimal("1000")
        assert entry_for(ledger, 2).allocations[0].source == AllocationSource.LINKED

    def test_linked_excess_joins_the_pool(self):
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 6, 1)),
                doc(2, "500", date(2024, 6, 2)),
            ],
            payments=[pay(10, "700", date(2024, 6, 3), link=2)],
        )

        assert entry_for(ledger, 2).paid == Decimal("500")
        assert entry_for(ledger, 1).paid == Decimal("200")
        assert entry_for(ledger, 1).outstanding == Decimal("800")
        application = ledger.payment_applications[0]
        assert application.applied == Decimal("700")
        assert application.allocations == (
            DocumentAllocation(2, Decimal("500.00"), AllocationSource.LINKED),
            DocumentAllocation(1, Decimal("200.00"), AllocationSource.POOLED),
        )

    def test_dangling_link_is_pooled_with_warning(self):
        """A payment referencing a missing document is general credit."""
        ledger = reconcile(
            documents=[doc(1, "1000", date(2024, 6, 1))],
            payments=[pay(10, "300", date(2024, 6, 2), link=99)],
        )

        assert entry_for(ledger, 1).paid == Decimal("300")
        assert entry_for(ledger, 1).allocations[0].source == AllocationSource.POOLED
        assert any(
            w.record_type == "payment" and w.record_id == 10 for w in ledger.warnings
        )

    def test_linked_payments_apply_before_pool(self):
        """Pooled credit only reaches what linked payments left over."""
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 6, 1)),
                doc(2, "500", date(2024, 6, 2)),
            ],
            payments=[
                pay(10, "600", date(2024, 6, 3)),
                pay(11, "900", date(2024, 6, 10), link=1),
            ],
        )

        assert entry_for(ledger, 1).paid == Decimal("1000")
        assert entry_for(ledger, 2).paid == Decimal("500")
        assert ledger.unapplied_credit == Decimal("0")


class TestReturnCredits:
    """Return credits reduce the document they reference."""

    def test_ledger_return_reduces_outstanding(self):
        ledger = reconcile(
            documents=[doc(1, "1000", date(2024, 6, 1), "INV-1")],
            returns=[ret(20, 1, "300")],
        )

        entry = entry_for(ledger, 1)
        assert entry.outstanding == Decimal("700")
        assert entry.return_credit == Decimal("300")
        assert entry.paid == Decimal("0")
        assert entry.status == EntryStatus.UNPAID
        assert ledger.total_return_credit == Decimal("300")

    def test_cash_return_has_no_balance_effect(self):
        ledger = reconcile(
            documents=[doc(1, "1000", date(2024, 6, 1))],
            returns=[ret(20, 1, "300", settlement=SettlementType.CASH)],
        )

        assert entry_for(ledger, 1).outstanding == Decimal("1000")
        assert ledger.total_return_credit == Decimal("0")

    def test_return_applied_before_pooled_credit(self):
        """The pool sees the document after its return credit."""
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 6, 1)),
                doc(2, "500", date(2024, 6, 2)),
            ],
            payments=[pay(10, "800", date(2024, 6, 3))],
            returns=[ret(20, 1, "400")],
        )

        assert entry_for(ledger, 1).paid == Decimal("600")
        assert entry_for(ledger, 1).outstanding == Decimal("0")
        assert entry_for(ledger, 2).paid == Decimal("200")
        assert ledger.total_outstanding == Decimal("300")

    def test_return_larger_than_document_is_capped(self):
        ledger = reconcile(
            documents=[doc(1, "500", date(2024, 6, 1))],
            returns=[ret(20, 1, "700")],
        )

        entry = entry_for(ledger, 1)
        assert entry.return_credit == Decimal("500")
        assert entry.outstanding == Decimal("0")
        assert ledger.unapplied_credit == Decimal("200")
        assert any(w.record_type == "return_credit" for w in ledger.warnings)

    def test_return_for_unknown_document_is_ignored_with_warning(self):
        ledger = reconcile(
            documents=[doc(1, "500", date(2024, 6, 1))],
            returns=[ret(20, 42, "100")],
        )

        assert entry_for(ledger, 1).outstanding == Decimal("500")
        assert ledger.unapplied_credit == Decimal("0")
        assert any(
            w.record_type == "return_credit" and w.record_id == 20
            for w in ledger.warnings
        )


class TestAgingAndRisk:
    """Days overdue, aging buckets and risk tiers."""

    def test_days_overdue_from_oldest_unpaid_document(self):
        ledger = reconcile(
            documents=[
                doc(1, "300", date(2024, 3, 1)),
                doc(2, "500", date(2024, 4, 1)),
            ],
            payments=[pay(10, "300", date(2024, 3, 5), link=1)],
        )

        assert entry_for(ledger, 1).days_overdue == 0
        assert entry_for(ledger, 2).days_overdue == 90
        assert ledger.days_overdue == 90
        assert ledger.oldest_unpaid_document_id == 2
        # 90 days is not "more than 90"
        assert ledger.risk_tier == RiskTier.HIGH

    def test_amount_alone_triggers_critical(self):
        """50001 outstanding at 10 days overdue is critical."""
        ledger = reconcile(documents=[doc(1, "50001", date(2024, 6, 20))])

        assert ledger.days_overdue == 10
        assert ledger.total_outstanding == Decimal("50001")
        assert ledger.risk_tier == RiskTier.CRITICAL

    def test_aging_buckets(self):
        ledger = reconcile(
            documents=[
                doc(1, "100", date(2024, 6, 30)),
                doc(2, "200", date(2024, 6, 15)),
                doc(3, "300", date(2024, 5, 16)),
                doc(4, "400", date(2024, 4, 16)),
                doc(5, "500", date(2024, 3, 2)),
            ],
        )

        assert ledger.aging_buckets == {
            "Current": Decimal("100"),
            "1-30": Decimal("200"),
            "31-60": Decimal("300"),
            "61-90": Decimal("400"),
            "Over 90": Decimal("500"),
        }
        assert ledger.aging.total == ledger.total_outstanding

    def test_undated_outstanding_excluded_from_aging(self):
        ledger = reconcile(
            documents=[
                doc(1, "250", None),
                doc(2, "100", date(2024, 6, 30)),
            ],
        )

        assert ledger.total_outstanding == Decimal("350")
        assert ledger.undated_outstanding == Decimal("250")
        assert entry_for(ledger, 1).days_overdue is None
        assert ledger.days_overdue == 0
        assert ledger.oldest_unpaid_document_id == 2

    def test_future_dated_document_is_not_overdue(self):
        ledger = reconcile(documents=[doc(1, "100", date(2024, 7, 15))])

        assert entry_for(ledger, 1).days_overdue == 0
        assert ledger.aging_buckets["Current"] == Decimal("100")

    def test_overdue_statistics(self):
        ledger = reconcile(
            documents=[
                doc(1, "300", date(2024, 5, 16)),
                doc(2, "200", date(2024, 6, 15)),
            ],
        )

        assert ledger.overdue_document_count == 1
        assert ledger.overdue_amount == Decimal("300")
        assert ledger.risk_tier == RiskTier.MEDIUM


class TestPartyStatistics:
    """Counts, last payment date and average payment days."""

    def test_counts_and_last_payment(self):
        ledger = reconcile(
            documents=[doc(1, "1000", date(2024, 6, 1))],
            payments=[
                pay(10, "100", date(2024, 6, 5)),
                pay(11, "100", date(2024, 6, 20)),
                pay(12, "100", date(2024, 6, 10)),
            ],
        )

        assert ledger.document_count == 1
        assert ledger.payment_count == 3
        assert ledger.last_payment_date == date(2024, 6, 20)

    def test_no_payments_means_no_last_payment(self):
        ledger = reconcile(documents=[doc(1, "1000", date(2024, 6, 1))])

        assert ledger.last_payment_date is None
        assert ledger.average_payment_days == 0

    def test_average_payment_days(self):
        """Days from document date to the last payment that settled it."""
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 6, 1)),
                doc(2, "500", date(2024, 6, 10)),
            ],
            payments=[
                pay(10, "600", date(2024, 6, 11), link=1),
                pay(11, "400", date(2024, 6, 21), link=1),
                pay(12, "500", date(2024, 6, 15), link=2),
            ],
        )

        # (20 + 5) / 2 rounds half up
        assert ledger.average_payment_days == 13


class TestDateRange:
    """Windowed ledgers."""

    def test_records_after_range_end_are_ignored(self):
        ledger = reconcile(
            documents=[doc(1, "1000", date(2024, 5, 1))],
            payments=[pay(10, "1000", date(2024, 6, 15))],
            as_of=date(2024, 5, 31),
            date_range=(date(2024, 1, 1), date(2024, 5, 31)),
        )

        assert ledger.total_outstanding == Decimal("1000")
        assert ledger.payment_count == 0
        assert ledger.days_overdue == 30

    def test_documents_before_range_start_are_omitted_but_allocated(self):
        """FIFO still runs over the full history."""
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 1, 15)),
                doc(2, "500", date(2024, 5, 15)),
            ],
            payments=[pay(10, "1200", date(2024, 3, 1))],
            date_range=(date(2024, 4, 1), date(2024, 6, 30)),
        )

        assert [e.billing_document_id for e in ledger.entries] == [2]
        assert ledger.total_billed == Decimal("500")
        assert ledger.total_paid == Decimal("200")
        assert ledger.total_outstanding == Decimal("300")

    def test_payment_statistics_follow_the_window(self):
        """Earlier payments fund allocation but are not counted."""
        ledger = reconcile(
            documents=[
                doc(1, "1000", date(2024, 1, 15)),
                doc(2, "500", date(2024, 5, 15)),
            ],
            payments=[
                pay(10, "1200", date(2024, 3, 1)),
                pay(11, "100", date(2024, 5, 20)),
                pay(12, "50", None),
            ],
            date_range=(date(2024, 4, 1), date(2024, 6, 30)),
        )

        assert ledger.total_paid == Decimal("350")
        assert ledger.payment_count == 2
        assert ledger.last_payment_date == date(2024, 5, 20)

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError, match="after end"):
            reconcile(date_range=(date(2024, 6, 1), date(2024, 5, 1)))


class TestInvariants:
    """Balance identities and idempotence."""

    def _mixed_ledger(self):
        return reconcile(
            documents=[
                doc(1, "1000", date(2024, 1, 10)),
                doc(2, "750.50", date(2024, 2, 10)),
                doc(3, "1200", None),
                doc(4, "90.25", date(2024, 6, 1)),
            ],
            payments=[
                pay(10, "400", date(2024, 1, 20)),
                pay(11, "800", date(2024, 2, 20), link=2),
                pay(12, "100", None),
                pay(13, "50", date(2024, 3, 1), link=77),
            ],
            returns=[ret(20, 1, "150"), ret(21, 4, "10", SettlementType.CASH)],
        )

    def test_sum_of_entries_equals_total(self):
        ledger = self._mixed_ledger()

        assert sum(e.outstanding for e in ledger.entries) == ledger.total_outstanding
        assert (
            ledger.total_billed - ledger.total_paid - ledger.total_return_credit
            == ledger.total_outstanding
        )

    def test_no_document_overpaid_and_no_payment_overallocated(self):
        ledger = self._mixed_ledger()

        for entry in ledger.entries:
            assert entry.paid + entry.return_credit <= entry.billed
            assert entry.outstanding >= 0
        for application in ledger.payment_applications:
            assert application.applied <= application.amount
            assert application.applied + application.unapplied == application.amount

    def test_reconciling_twice_gives_identical_results(self):
        assert self._mixed_ledger() == self._mixed_ledger()

    def test_amounts_are_quantized(self):
        ledger = reconcile(
            documents=[doc(1, "100.005", date(2024, 6, 1))],
        )

        assert entry_for(ledger, 1).billed == Decimal("100.01")


class TestAllocationPreview:
    """Preview of a new unlinked payment."""

    def _ledger(self):
        return reconcile(
            documents=[
                doc(1, "1000", date(2024, 6, 1), "INV-1"),
                doc(2, "500", date(2024, 6, 2), "INV-2"),
            ],
        )

    def test_preview_funds_oldest_first(self):
        preview = preview_allocation(ledger=self._ledger(), amount=Decimal("1200"))

        assert [(line.billing_document_id, line.allocated) for line in preview.lines] == [
            (1, Decimal("1000")),
            (2, Decimal("200")),
        ]
        assert preview.lines[1].outstanding_after == Decimal("300")
        assert preview.remaining_credit == Decimal("0")
        assert preview.outstanding_after == Decimal("300")

    def test_preview_reports_remaining_credit(self):
        preview = preview_allocation(ledger=self._ledger(), amount=Decimal("2000"))

        assert preview.total_allocated == Decimal("1500")
        assert preview.remaining_credit == Decimal("500")
        assert preview.outstanding_after == Decimal("0")

    def test_preview_rejects_non_positive_amount(self):
        with pytest.raises(ValueError, match="positive"):
            preview_allocation(ledger=self._ledger(), amount=Decimal("0"))
