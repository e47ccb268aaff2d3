"""
Module: ledger_kernel.models.billing
Responsibility: ORM persistence for the three raw ledger streams: billing
    documents (invoices and stock receivings), payments, and return credits.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Dates are stored as text, matching the desktop store.  A value that
      does not parse is tolerated here and handled leniently when the row
      becomes a typed record.
    - Payment.billing_document_id is a soft reference: it is NOT a foreign
      key, because payments recorded against since-deleted documents must
      still load (they are treated as general credit).

Non-goals:
    - No running balance column.  Outstanding amounts are always derived.
"""

from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class BillingDocumentModel(TrackedBase):
    """Invoice (customer) or stock receiving (vendor)."""

    __tablename__ = "billing_documents"

    __table_args__ = (
        Index("idx_billing_documents_party", "party_id"),
        Index("idx_billing_documents_date", "document_date"),
    )

    party_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("parties.id"), nullable=False
    )
    document_type: Mapped[str] = mapped_column(String(30), nullable=False, default="invoice")
    document_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    document_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<BillingDocumentModel {self.document_number or self.id} {self.total_amount}>"


class PaymentModel(TrackedBase):
    """Payment received from a customer or made to a vendor."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payments_party", "party_id"),
        Index("idx_payments_document", "billing_document_id"),
    )

    party_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("parties.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    billing_document_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentModel {self.id} {self.amount} doc={self.billing_document_id}>"


class ReturnCreditModel(TrackedBase):
    """Goods returned against a billing document."""

    __tablename__ = "return_credits"

    __table_args__ = (
        Index("idx_return_credits_party", "party_id"),
        Index("idx_return_credits_document", "original_billing_document_id"),
    )

    party_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("parties.id"), nullable=False
    )
    original_billing_document_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    settlement_type: Mapped[str] = mapped_column(String(20), nullable=False, default="ledger")
    return_date: Mapped[str | None] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ReturnCreditModel {self.id} {self.amount} "
            f"{self.settlement_type} doc={self.original_billing_document_id}>"
        )
