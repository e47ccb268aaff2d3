"""ORM models for the ledger store."""

from ledger_kernel.models.billing import (
    BillingDocumentModel,
    PaymentModel,
    ReturnCreditModel,
)
from ledger_kernel.models.party import PartyModel

__all__ = [
    "BillingDocumentModel",
    "PartyModel",
    "PaymentModel",
    "ReturnCreditModel",
]
