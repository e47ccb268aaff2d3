"""
Pytest fixtures for the ledger reconciliation test suite.

Provides:
- An in-memory SQLite store shared by the session, with per-test rollback
- Factory fixtures for parties, billing documents, payments and returns
- A deterministic clock
- Structured log capture
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from ledger_config.schema import ReconcilerConfig
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.billing import (
    BillingDocumentModel,
    PaymentModel,
    ReturnCreditModel,
)
from ledger_kernel.models.party import PartyModel
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_services.reconciler import LedgerReconciler

# Every test that ages documents measures against this date
AS_OF = date(2024, 6, 30)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, reconciler):
            reconciler.compute_party_ledger(party_id)
            logs = captured_logs()
            assert any(r["message"] == "party_reconciled" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """In-memory SQLite engine with all ledger tables created."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction that is rolled back at
    teardown, undoing every row the test inserted.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Clock fixed at noon UTC on AS_OF."""
    return DeterministicClock(datetime(2024, 6, 30, 12, 0, 0, tzinfo=timezone.utc))


# Service fixtures


@pytest.fixture
def ledger_selector(session: Session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def reconciler_config() -> ReconcilerConfig:
    return ReconcilerConfig.with_defaults()


@pytest.fixture
def reconciler(ledger_selector, reconciler_config, deterministic_clock) -> LedgerReconciler:
    return LedgerReconciler(ledger_selector, config=reconciler_config, clock=deterministic_clock)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_party(session: Session):
    """Factory fixture: insert a customer or vendor and return its id."""

    def _create_party(
        name: str = "Test Customer",
        kind: str = "customer",
        phone: str | None = None,
        address: str | None = None,
        stored_balance: Decimal | str = Decimal("0"),
    ) -> int:
        party = PartyModel(
            kind=kind,
            name=name,
            phone=phone,
            address=address,
            stored_balance=Decimal(str(stored_balance)),
        )
        session.add(party)
        session.flush()
        return party.id

    return _create_party


@pytest.fixture
def create_document(session: Session):
    """Factory fixture: insert an invoice or stock receiving and return its id.

    ``document_date`` may be a date or raw text (to store malformed dates).
    """

    def _create_document(
        party_id: int,
        total_amount: Decimal | str,
        document_date: date | str | None,
        document_number: str | None = None,
        document_type: str = "invoice",
        status: str | None = None,
    ) -> int:
        raw_date = (
            document_date.isoformat() if isinstance(document_date, date) else document_date
        )
        document = BillingDocumentModel(
            party_id=party_id,
            document_type=document_type,
            document_number=document_number,
            document_date=raw_date,
            total_amount=Decimal(str(total_amount)),
            status=status,
        )
        session.add(document)
        session.flush()
        return document.id

    return _create_document


@pytest.fixture
def create_payment(session: Session):
    """Factory fixture: insert a payment (linked or unlinked) and return its id."""

    def _create_payment(
        party_id: int,
        amount: Decimal | str,
        payment_date: date | str | None,
        billing_document_id: int | None = None,
        method: str = "cash",
        reference: str | None = None,
    ) -> int:
        raw_date = (
            payment_date.isoformat() if isinstance(payment_date, date) else payment_date
        )
        payment = PaymentModel(
            party_id=party_id,
            amount=Decimal(str(amount)),
            payment_date=raw_date,
            billing_document_id=billing_document_id,
            method=method,
            reference=reference,
        )
        session.add(payment)
        session.flush()
        return payment.id

    return _create_payment


@pytest.fixture
def create_return(session: Session):
    """Factory fixture: insert a return credit and return its id."""

    def _create_return(
        party_id: int,
        billing_document_id: int,
        amount: Decimal | str,
        settlement_type: str = "ledger",
        return_date: date | None = None,
    ) -> int:
        credit = ReturnCreditModel(
            party_id=party_id,
            original_billing_document_id=billing_document_id,
            amount=Decimal(str(amount)),
            settlement_type=settlement_type,
            return_date=return_date.isoformat() if return_date else None,
        )
        session.add(credit)
        session.flush()
        return credit.id

    return _create_return
