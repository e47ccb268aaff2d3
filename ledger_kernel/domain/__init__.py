"""
Pure domain layer.

Typed records and the clock abstraction, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.records import (
    ZERO,
    BillingDocument,
    Party,
    PartyKind,
    Payment,
    ReturnCredit,
    SettlementType,
    parse_record_date,
    to_amount,
)

__all__ = [
    "ZERO",
    "BillingDocument",
    "Clock",
    "DeterministicClock",
    "Party",
    "PartyKind",
    "Payment",
    "ReturnCredit",
    "SettlementType",
    "SystemClock",
    "parse_record_date",
    "to_amount",
]
