"""
Module: ledger_kernel.models.party
Responsibility: ORM persistence for customers and vendors.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - kind is ``customer`` or ``vendor`` (validated when converted to a
      typed record, the store itself accepts any string).
    - stored_balance is the balance cached by the billing workflow.  It is
      NEVER read by reconciliation, only by balance diagnostics.
"""

from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class PartyModel(TrackedBase):
    """
    A customer or vendor the store trades with.

    Non-goals:
        - Does not hold a running balance that reconciliation trusts; all
          balances are derived from the billing, payment and return streams.
    """

    __tablename__ = "parties"

    __table_args__ = (
        Index("idx_parties_kind", "kind"),
        Index("idx_parties_name", "name"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    stored_balance: Mapped[Decimal | None] = mapped_column(nullable=True, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<PartyModel {self.kind}:{self.id} {self.name}>"
