"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Store query interface consumed by reconciliation.  Fetches
    parties and the three raw ledger streams (billing documents, payments,
    ledger-settled return credits) and converts every row into a typed record.
Architecture position: Kernel > Selectors.

Two read paths produce the same streams:
    - ``fetch_party_streams``: one UNION ALL statement over the three tables.
    - ``fetch_party_streams_legacy``: per-record fallback.  One query for the
      documents, then one linked-payment query and one return query per
      document, then one query each for payments and returns that did not
      attach to a fetched document.

Invariants enforced:
    - Every SQLAlchemyError is surfaced as StoreError; no partial stream is
      ever returned.
    - Streams are returned ordered by id so both paths are comparable.

Failure modes:
    - PartyNotFoundError for unknown party ids.
    - StoreError on query or connection failure.
    - RecordValidationError for rows that cannot become typed records.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import InvalidOperation
from enum import Enum
from typing import Any, TypeVar

from sqlalchemy import Integer, String, cast, literal, null, select, union_all
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.domain.records import (
    BillingDocument,
    Party,
    PartyKind,
    Payment,
    ReturnCredit,
    SettlementType,
    parse_record_date,
    raw_text,
    to_amount,
)
from ledger_kernel.exceptions import PartyNotFoundError, RecordValidationError, StoreError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.billing import (
    BillingDocumentModel,
    PaymentModel,
    ReturnCreditModel,
)
from ledger_kernel.models.party import PartyModel
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")

T = TypeVar("T")


class FetchMode(str, Enum):
    """Which read path loads a party's streams."""

    OPTIMIZED = "optimized"  # Single UNION ALL statement
    LEGACY = "legacy"  # Per-record queries


_STREAM_DOCUMENT = "document"
_STREAM_PAYMENT = "payment"
_STREAM_RETURN = "return"

_ROW_TYPES = {
    "get_party": "party",
    "list_parties": "party",
    "fetch_billing_documents": "billing_document",
    "fetch_payments": "payment",
    "fetch_linked_payments": "payment",
    "fetch_return_credits": "return_credit",
    "fetch_document_returns": "return_credit",
    "fetch_party_streams": "ledger_stream",
    "fetch_unlinked_payments": "payment",
    "fetch_unmatched_returns": "return_credit",
}


@dataclass(frozen=True)
class PartyStreams:
    """The three raw streams for one party, as fetched from the store."""

    party: Party
    documents: tuple[BillingDocument, ...]
    payments: tuple[Payment, ...]
    returns: tuple[ReturnCredit, ...]


class LedgerSelector(BaseSelector[PartyModel]):
    """
    Read-only access to parties and their ledger streams.

    Uses the caller's Session; the caller decides the transaction scope.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _run(self, operation: str, party_id: int | None, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as exc:
            logger.error(
                "store_query_failed",
                extra={"operation": operation, "party_id": party_id, "error": str(exc)},
            )
            raise StoreError(operation, str(exc), party_id=party_id) from exc
        except (TypeError, ValueError, InvalidOperation) as exc:
            # Column types convert while rows are fetched, before to_amount sees them
            logger.error(
                "store_row_invalid",
                extra={"operation": operation, "party_id": party_id, "error": str(exc)},
            )
            raise RecordValidationError(
                _ROW_TYPES.get(operation, "row"), None, f"unreadable stored value: {exc}"
            ) from exc

    # =========================================================================
    # Parties
    # =========================================================================

    def get_party(self, party_id: int) -> Party:
        """
        Get a customer or vendor by id.

        Raises:
            PartyNotFoundError: If no such party exists.
        """
        model = self._run(
            "get_party",
            party_id,
            lambda: self.session.get(PartyModel, party_id),
        )
        if model is None:
            raise PartyNotFoundError(party_id)
        return Party.from_model(model)

    def list_parties(self, kind: PartyKind | None = None) -> list[Party]:
        """All parties (optionally of one kind) ordered by name."""
        stmt = select(PartyModel).order_by(PartyModel.name, PartyModel.id)
        if kind is not None:
            stmt = stmt.where(PartyModel.kind == kind.value)
        models = self._run(
            "list_parties", None, lambda: self.session.execute(stmt).scalars().all()
        )
        return [Party.from_model(m) for m in models]

    def list_party_ids(self, kind: PartyKind | None = None) -> list[int]:
        """Ids of all parties (optionally of one kind) ordered by name."""
        stmt = select(PartyModel.id).order_by(PartyModel.name, PartyModel.id)
        if kind is not None:
            stmt = stmt.where(PartyModel.kind == kind.value)
        return list(
            self._run("list_party_ids", None, lambda: self.session.execute(stmt).scalars().all())
        )

    # =========================================================================
    # Individual streams
    # =========================================================================

    def fetch_billing_documents(self, party_id: int) -> list[BillingDocument]:
        """All billing documents of a party."""
        stmt = (
            select(BillingDocumentModel)
            .where(BillingDocumentModel.party_id == party_id)
            .order_by(BillingDocumentModel.id)
        )
        rows = self._run(
            "fetch_billing_documents",
            party_id,
            lambda: self.session.execute(stmt).scalars().all(),
        )
        return [BillingDocument.from_model(r) for r in rows]

    def fetch_payments(self, party_id: int) -> list[Payment]:
        """All payments of a party, linked or not."""
        stmt = (
            select(PaymentModel)
            .where(PaymentModel.party_id == party_id)
            .order_by(PaymentModel.id)
        )
        rows = self._run(
            "fetch_payments",
            party_id,
            lambda: self.session.execute(stmt).scalars().all(),
        )
        return [Payment.from_model(r) for r in rows]

    def fetch_return_credits(
        self,
        party_id: int,
        settlement_type: SettlementType = SettlementType.LEDGER,
    ) -> list[ReturnCredit]:
        """Return credits of a party with the given settlement type."""
        stmt = (
            select(ReturnCreditModel)
            .where(
                ReturnCreditModel.party_id == party_id,
                ReturnCreditModel.settlement_type == settlement_type.value,
            )
            .order_by(ReturnCreditModel.id)
        )
        rows = self._run(
            "fetch_return_credits",
            party_id,
            lambda: self.session.execute(stmt).scalars().all(),
        )
        return [ReturnCredit.from_model(r) for r in rows]

    def fetch_streams(self, party_id: int, mode: FetchMode = FetchMode.OPTIMIZED) -> PartyStreams:
        """Fetch a party's streams through the requested read path."""
        if FetchMode(mode) is FetchMode.LEGACY:
            return self.fetch_party_streams_legacy(party_id)
        return self.fetch_party_streams(party_id)

    # =========================================================================
    # Optimized path: one statement for all three streams
    # =========================================================================

    def fetch_party_streams(self, party_id: int) -> PartyStreams:
        """
        Fetch a party and its three streams with a single UNION ALL query.

        Raises:
            PartyNotFoundError: If the party does not exist.
            StoreError: On query failure.
        """
        party = self.get_party(party_id)

        documents_q = select(
            literal(_STREAM_DOCUMENT).label("stream"),
            BillingDocumentModel.id.label("id"),
            BillingDocumentModel.total_amount.label("amount"),
            BillingDocumentModel.document_date.label("record_date"),
            cast(null(), Integer).label("link_id"),
            BillingDocumentModel.document_number.label("number"),
            BillingDocumentModel.status.label("status"),
            cast(null(), String).label("method"),
            cast(null(), String).label("reference"),
            cast(null(), String).label("settlement_type"),
        ).where(BillingDocumentModel.party_id == party_id)

        payments_q = select(
            literal(_STREAM_PAYMENT).label("stream"),
            PaymentModel.id,
            PaymentModel.amount,
            PaymentModel.payment_date,
            PaymentModel.billing_document_id,
            cast(null(), String),
            cast(null(), String),
            PaymentModel.method,
            PaymentModel.reference,
            cast(null(), String),
        ).where(PaymentModel.party_id == party_id)

        returns_q = select(
            literal(_STREAM_RETURN).label("stream"),
            ReturnCreditModel.id,
            ReturnCreditModel.amount,
            ReturnCreditModel.return_date,
            ReturnCreditModel.original_billing_document_id,
            cast(null(), String),
            cast(null(), String),
            cast(null(), String),
            cast(null(), String),
            ReturnCreditModel.settlement_type,
        ).where(
            ReturnCreditModel.party_id == party_id,
            ReturnCreditModel.settlement_type == SettlementType.LEDGER.value,
        )

        combined = union_all(documents_q, payments_q, returns_q).subquery()
        stmt = select(combined).order_by(combined.c.stream, combined.c.id)
        rows = self._run(
            "fetch_party_streams",
            party_id,
            lambda: self.session.execute(stmt).all(),
        )

        documents: list[BillingDocument] = []
        payments: list[Payment] = []
        returns: list[ReturnCredit] = []
        for row in rows:
            if row.stream == _STREAM_DOCUMENT:
                documents.append(_document_from_row(party_id, row))
            elif row.stream == _STREAM_PAYMENT:
                payments.append(_payment_from_row(party_id, row))
            else:
                returns.append(_return_from_row(party_id, row))

        logger.debug(
            "party_streams_fetched",
            extra={
                "party_id": party_id,
                "path": "optimized",
                "document_count": len(documents),
                "payment_count": len(payments),
                "return_count": len(returns),
            },
        )
        return PartyStreams(
            party=party,
            documents=tuple(sorted(documents, key=lambda d: d.id)),
            payments=tuple(sorted(payments, key=lambda p: p.id)),
            returns=tuple(sorted(returns, key=lambda r: r.id)),
        )

    # =========================================================================
    # Legacy path: per-record queries
    # =========================================================================

    def fetch_linked_payments(self, party_id: int, document_id: int) -> list[Payment]:
        """Payments of a party explicitly linked to one document."""
        stmt = (
            select(PaymentModel)
            .where(
                PaymentModel.party_id == party_id,
                PaymentModel.billing_document_id == document_id,
            )
            .order_by(PaymentModel.id)
        )
        rows = self._run(
            "fetch_linked_payments",
            party_id,
            lambda: self.session.execute(stmt).scalars().all(),
        )
        return [Payment.from_model(r) for r in rows]

    def fetch_document_returns(self, party_id: int, document_id: int) -> list[ReturnCredit]:
        """Ledger-settled return credits of a party against one document."""
        stmt = (
            select(ReturnCreditModel)
            .where(
                ReturnCreditModel.party_id == party_id,
                ReturnCreditModel.original_billing_document_id == document_id,
                ReturnCreditModel.settlement_type == SettlementType.LEDGER.value,
            )
            .order_by(ReturnCreditModel.id)
        )
        rows = self._run(
            "fetch_document_returns",
            party_id,
            lambda: self.session.execute(stmt).scalars().all(),
        )
        return [ReturnCredit.from_model(r) for r in rows]

    def fetch_party_streams_legacy(self, party_id: int) -> PartyStreams:
        """
        Fetch a party and its three streams record by record.

        Slower than ``fetch_party_streams`` but uses only simple
        single-table queries.
        """
        party = self.get_party(party_id)
        documents = self.fetch_billing_documents(party_id)
        document_ids = [d.id for d in documents]

        payments: list[Payment] = []
        returns: list[ReturnCredit] = []
        for document in documents:
            payments.extend(self.fetch_linked_payments(party_id, document.id))
            returns.extend(self.fetch_document_returns(party_id, document.id))

        # Unlinked payments plus links to documents this party does not own
        stray_payments_stmt = (
            select(PaymentModel)
            .where(PaymentModel.party_id == party_id)
            .where(
                PaymentModel.billing_document_id.is_(None)
                | PaymentModel.billing_document_id.not_in(document_ids)
            )
            .order_by(PaymentModel.id)
        )
        stray_returns_stmt = (
            select(ReturnCreditModel)
            .where(
                ReturnCreditModel.party_id == party_id,
                ReturnCreditModel.settlement_type == SettlementType.LEDGER.value,
                ReturnCreditModel.original_billing_document_id.not_in(document_ids),
            )
            .order_by(ReturnCreditModel.id)
        )
        stray_payments = self._run(
            "fetch_unlinked_payments",
            party_id,
            lambda: self.session.execute(stray_payments_stmt).scalars().all(),
        )
        stray_returns = self._run(
            "fetch_unmatched_returns",
            party_id,
            lambda: self.session.execute(stray_returns_stmt).scalars().all(),
        )
        payments.extend(Payment.from_model(r) for r in stray_payments)
        returns.extend(ReturnCredit.from_model(r) for r in stray_returns)

        logger.debug(
            "party_streams_fetched",
            extra={
                "party_id": party_id,
                "path": "legacy",
                "document_count": len(documents),
                "payment_count": len(payments),
                "return_count": len(returns),
                "query_count": 4 + 2 * len(documents),
            },
        )
        return PartyStreams(
            party=party,
            documents=tuple(sorted(documents, key=lambda d: d.id)),
            payments=tuple(sorted(payments, key=lambda p: p.id)),
            returns=tuple(sorted(returns, key=lambda r: r.id)),
        )


def _document_from_row(party_id: int, row: Any) -> BillingDocument:
    return BillingDocument(
        id=row.id,
        party_id=party_id,
        total_amount=to_amount(row.amount, "billing_document", row.id),
        date=parse_record_date(row.record_date),
        raw_date=raw_text(row.record_date),
        document_number=row.number,
        status=row.status,
    )


def _payment_from_row(party_id: int, row: Any) -> Payment:
    return Payment(
        id=row.id,
        party_id=party_id,
        amount=to_amount(row.amount, "payment", row.id),
        date=parse_record_date(row.record_date),
        raw_date=raw_text(row.record_date),
        billing_document_id=row.link_id,
        method=row.method,
        reference=row.reference,
    )


def _return_from_row(party_id: int, row: Any) -> ReturnCredit:
    return ReturnCredit(
        id=row.id,
        party_id=party_id,
        original_billing_document_id=row.link_id,
        amount=to_amount(row.amount, "return_credit", row.id),
        settlement_type=SettlementType(row.settlement_type),
        date=parse_record_date(row.record_date),
        raw_date=raw_text(row.record_date),
    )
