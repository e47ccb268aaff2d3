"""
Records -- Typed, immutable records for the three raw ledger streams.

Responsibility:
    Defines the frozen records that reconciliation operates on: Party,
    BillingDocument (invoice or stock receiving), Payment and ReturnCredit.
    Rows coming from the store are converted into these records at the
    query boundary; untyped mappings never reach the engines.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only by
    selectors.

Invariants enforced:
    - Monetary fields are ``Decimal`` (never float).
    - Amounts are non-negative; violations raise RecordValidationError.
    - ``date`` is ``None`` exactly when ``raw_date`` could not be parsed.
      Such records still count toward balances but are excluded from aging.

Failure modes:
    - RecordValidationError on negative or non-numeric amounts, unknown
      party kinds and unknown settlement types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING, Any

from ledger_kernel.exceptions import RecordValidationError

if TYPE_CHECKING:
    from ledger_kernel.models.billing import (
        BillingDocumentModel,
        PaymentModel,
        ReturnCreditModel,
    )
    from ledger_kernel.models.party import PartyModel


ZERO = Decimal("0")


class PartyKind(str, Enum):
    """Customer (receivable) or vendor (payable)."""

    CUSTOMER = "customer"
    VENDOR = "vendor"

    @property
    def document_type(self) -> str:
        """Billing document type issued to this kind of party."""
        return "invoice" if self is PartyKind.CUSTOMER else "stock_receiving"

    @property
    def balance_side(self) -> str:
        """Sign convention of an outstanding balance."""
        return "receivable" if self is PartyKind.CUSTOMER else "payable"


class SettlementType(str, Enum):
    """How a return is settled with the party."""

    LEDGER = "ledger"  # Credited against the outstanding balance
    CASH = "cash"  # Refunded in cash, no balance effect


def parse_record_date(value: Any) -> date | None:
    """
    Parse a stored date leniently.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` strings and ISO
    datetime strings (``T`` or space separated).  Anything else yields
    ``None`` rather than raising.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def to_amount(value: Any, record_type: str, record_id: int | None) -> Decimal:
    """Convert a stored amount to a non-negative Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise RecordValidationError(
            record_type, record_id, f"amount {value!r} is not numeric"
        ) from exc
    if not amount.is_finite():
        raise RecordValidationError(record_type, record_id, f"amount {value!r} is not finite")
    if amount < ZERO:
        raise RecordValidationError(record_type, record_id, f"amount {amount} is negative")
    return amount


def raw_text(value: Any) -> str | None:
    """Stored representation of a date value, kept for display and audit."""
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class Party:
    """A customer or vendor."""

    id: int
    kind: PartyKind
    name: str
    phone: str | None = None
    address: str | None = None
    stored_balance: Decimal = ZERO

    @classmethod
    def from_model(cls, model: PartyModel) -> Party:
        try:
            kind = PartyKind(model.kind)
        except ValueError as exc:
            raise RecordValidationError("party", model.id, f"unknown kind {model.kind!r}") from exc
        balance = model.stored_balance
        return cls(
            id=model.id,
            kind=kind,
            name=model.name,
            phone=model.phone,
            address=model.address,
            stored_balance=Decimal(str(balance)) if balance is not None else ZERO,
        )


@dataclass(frozen=True)
class BillingDocument:
    """An invoice (customer) or stock receiving (vendor)."""

    id: int
    party_id: int
    total_amount: Decimal
    date: date | None
    raw_date: str | None = None
    document_number: str | None = None
    status: str | None = None

    @property
    def label(self) -> str:
        return self.document_number or f"DOC-{self.id}"

    @classmethod
    def from_model(cls, model: BillingDocumentModel) -> BillingDocument:
        return cls(
            id=model.id,
            party_id=model.party_id,
            total_amount=to_amount(model.total_amount, "billing_document", model.id),
            date=parse_record_date(model.document_date),
            raw_date=raw_text(model.document_date),
            document_number=model.document_number,
            status=model.status,
        )


@dataclass(frozen=True)
class Payment:
    """
    Money received from a customer or paid to a vendor.

    A payment without ``billing_document_id`` is general credit against the
    party's running balance and is allocated oldest-document-first.
    """

    id: int
    party_id: int
    amount: Decimal
    date: date | None
    raw_date: str | None = None
    billing_document_id: int | None = None
    method: str | None = None
    reference: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.billing_document_id is not None

    @classmethod
    def from_model(cls, model: PaymentModel) -> Payment:
        return cls(
            id=model.id,
            party_id=model.party_id,
            amount=to_amount(model.amount, "payment", model.id),
            date=parse_record_date(model.payment_date),
            raw_date=raw_text(model.payment_date),
            billing_document_id=model.billing_document_id,
            method=model.method,
            reference=model.reference,
        )


@dataclass(frozen=True)
class ReturnCredit:
    """Goods returned against a specific billing document."""

    id: int
    party_id: int
    original_billing_document_id: int
    amount: Decimal
    settlement_type: SettlementType
    date: date | None = None
    raw_date: str | None = None

    @property
    def affects_balance(self) -> bool:
        return self.settlement_type is SettlementType.LEDGER

    @classmethod
    def from_model(cls, model: ReturnCreditModel) -> ReturnCredit:
        try:
            settlement = SettlementType(model.settlement_type)
        except ValueError as exc:
            raise RecordValidationError(
                "return_credit",
                model.id,
                f"unknown settlement type {model.settlement_type!r}",
            ) from exc
        return cls(
            id=model.id,
            party_id=model.party_id,
            original_billing_document_id=model.original_billing_document_id,
            amount=to_amount(model.amount, "return_credit", model.id),
            settlement_type=settlement,
            date=parse_record_date(model.return_date),
            raw_date=raw_text(model.return_date),
        )
