"""
Tests for LedgerSelector.

Verifies:
- Party lookup and listing
- Both read paths return the same streams
- Cash-settled returns and other parties' records are excluded
- Store failures surface as StoreError
- Unreadable stored values surface as RecordValidationError
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from ledger_kernel.domain.records import PartyKind, SettlementType
from ledger_kernel.exceptions import PartyNotFoundError, RecordValidationError, StoreError
from ledger_kernel.selectors.ledger_selector import FetchMode


@pytest.fixture
def mixed_party(create_party, create_document, create_payment, create_return):
    """A customer with every kind of record, plus a neighbour's records."""
    party_id = create_party(name="Multan Hardware")
    other_id = create_party(name="Other Customer")

    inv1 = create_document(party_id, "1000", date(2024, 1, 10), "INV-1")
    inv2 = create_document(party_id, "500", "not a date", "INV-2")
    foreign_doc = create_document(other_id, "900", date(2024, 1, 1), "INV-X")

    create_payment(party_id, "300", date(2024, 1, 15), billing_document_id=inv1)
    create_payment(party_id, "200", date(2024, 2, 1))
    create_payment(party_id, "50", None, billing_document_id=9999, reference="CHQ-7")
    create_payment(party_id, "25", date(2024, 2, 5), billing_document_id=foreign_doc)
    create_payment(other_id, "900", date(2024, 1, 2), billing_document_id=foreign_doc)

    create_return(party_id, inv1, "100")
    create_return(party_id, inv2, "40", settlement_type="cash")
    create_return(party_id, 8888, "10")
    return party_id


class TestParties:
    """Party lookup."""

    def test_get_party(self, ledger_selector, create_party):
        party_id = create_party(
            name="Quetta Steel", kind="vendor", phone="0312", stored_balance="75.50"
        )

        party = ledger_selector.get_party(party_id)

        assert party.id == party_id
        assert party.kind is PartyKind.VENDOR
        assert party.phone == "0312"
        assert party.stored_balance == Decimal("75.50")

    def test_unknown_party_raises_not_found(self, ledger_selector):
        with pytest.raises(PartyNotFoundError) as exc_info:
            ledger_selector.get_party(424242)

        assert exc_info.value.party_id == 424242
        assert exc_info.value.code == "PARTY_NOT_FOUND"

    def test_list_party_ids_by_kind_ordered_by_name(self, ledger_selector, create_party):
        b = create_party(name="Bravo Traders")
        a = create_party(name="Alpha Traders")
        create_party(name="Aardvark Supplies", kind="vendor")

        assert ledger_selector.list_party_ids(PartyKind.CUSTOMER) == [a, b]
        assert [p.name for p in ledger_selector.list_parties(PartyKind.VENDOR)] == [
            "Aardvark Supplies"
        ]

    def test_streams_for_unknown_party_raise(self, ledger_selector):
        with pytest.raises(PartyNotFoundError):
            ledger_selector.fetch_party_streams(424242)
        with pytest.raises(PartyNotFoundError):
            ledger_selector.fetch_party_streams_legacy(424242)


class TestStreams:
    """Stream contents."""

    def test_optimized_streams(self, ledger_selector, mixed_party):
        streams = ledger_selector.fetch_party_streams(mixed_party)

        assert [d.document_number for d in streams.documents] == ["INV-1", "INV-2"]
        assert streams.documents[1].date is None
        assert streams.documents[1].raw_date == "not a date"
        assert [p.amount for p in streams.payments] == [
            Decimal("300"), Decimal("200"), Decimal("50"), Decimal("25"),
        ]
        assert streams.payments[2].reference == "CHQ-7"
        assert streams.payments[2].date is None

    def test_cash_returns_excluded(self, ledger_selector, mixed_party):
        streams = ledger_selector.fetch_party_streams(mixed_party)

        assert all(r.settlement_type is SettlementType.LEDGER for r in streams.returns)
        assert [r.amount for r in streams.returns] == [Decimal("100"), Decimal("10")]

    def test_cash_returns_fetchable_on_request(self, ledger_selector, mixed_party):
        cash = ledger_selector.fetch_return_credits(mixed_party, SettlementType.CASH)

        assert [r.amount for r in cash] == [Decimal("40")]

    def test_legacy_path_matches_optimized(self, ledger_selector, mixed_party):
        optimized = ledger_selector.fetch_party_streams(mixed_party)
        legacy = ledger_selector.fetch_party_streams_legacy(mixed_party)

        assert legacy == optimized

    def test_fetch_streams_dispatches_on_mode(self, ledger_selector, mixed_party):
        by_string = ledger_selector.fetch_streams(mixed_party, "legacy")
        by_enum = ledger_selector.fetch_streams(mixed_party, FetchMode.OPTIMIZED)

        assert by_string == by_enum

    def test_party_without_records(self, ledger_selector, create_party):
        party_id = create_party(name="Empty Party")

        streams = ledger_selector.fetch_party_streams(party_id)

        assert streams.documents == ()
        assert streams.payments == ()
        assert streams.returns == ()
        assert ledger_selector.fetch_party_streams_legacy(party_id) == streams


class TestStoreFailures:
    """SQLAlchemy errors are surfaced as StoreError."""

    def _break_session(self, session, monkeypatch):
        def fail(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "execute", fail)
        monkeypatch.setattr(session, "get", fail)

    def test_get_party_store_error(self, session, ledger_selector, monkeypatch):
        self._break_session(session, monkeypatch)

        with pytest.raises(StoreError) as exc_info:
            ledger_selector.get_party(1)

        assert exc_info.value.operation == "get_party"
        assert exc_info.value.party_id == 1
        assert exc_info.value.code == "STORE_ERROR"

    def test_list_store_error(self, session, ledger_selector, monkeypatch):
        self._break_session(session, monkeypatch)

        with pytest.raises(StoreError, match="database is locked"):
            ledger_selector.list_party_ids()

    def test_failure_is_logged(self, session, ledger_selector, monkeypatch, captured_logs):
        self._break_session(session, monkeypatch)

        with pytest.raises(StoreError):
            ledger_selector.list_party_ids()

        records = [r for r in captured_logs() if r["message"] == "store_query_failed"]
        assert records
        assert records[0]["operation"] == "list_party_ids"


class TestUnreadableRows:
    """Values the column types cannot convert become RecordValidationError."""

    @pytest.fixture
    def corrupt_document(self, session, create_party, create_document):
        party_id = create_party(name="Gujranwala Girders")
        document_id = create_document(party_id, "1000", date(2024, 6, 1))
        session.execute(
            text("UPDATE billing_documents SET total_amount = 'abc' WHERE id = :id"),
            {"id": document_id},
        )
        session.expire_all()
        return party_id

    @pytest.mark.parametrize("mode", [FetchMode.OPTIMIZED, FetchMode.LEGACY])
    def test_non_numeric_amount(self, ledger_selector, corrupt_document, mode):
        with pytest.raises(RecordValidationError) as exc_info:
            ledger_selector.fetch_streams(corrupt_document, mode)

        assert exc_info.value.code == "RECORD_VALIDATION_ERROR"
        assert "unreadable stored value" in exc_info.value.reason

    def test_logged_with_operation(self, ledger_selector, corrupt_document, captured_logs):
        with pytest.raises(RecordValidationError):
            ledger_selector.fetch_billing_documents(corrupt_document)

        records = [r for r in captured_logs() if r["message"] == "store_row_invalid"]
        assert records[0]["operation"] == "fetch_billing_documents"
