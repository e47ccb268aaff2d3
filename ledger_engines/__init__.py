"""
Module: ledger_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for ledger_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel domain records, exceptions and logging.
    MUST NOT import ledger_services or ledger_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      The as-of date is always passed in by the caller.
    - Decimal-only arithmetic; floats never reach an engine.
    - Determinism: identical inputs always produce equal outputs.
"""

from ledger_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    AgingCalculator,
    AgingSummary,
    buckets_from_bounds,
)
from ledger_engines.allocation import (
    AllocationEngine,
    AllocationLine,
    AllocationResult,
    AllocationTarget,
)
from ledger_engines.reconciliation import (
    DEFAULT_POLICY,
    AllocationPreview,
    AllocationSource,
    DocumentAllocation,
    EntryStatus,
    LedgerEntry,
    PartyLedger,
    PaymentAllocation,
    PaymentApplication,
    PreviewLine,
    ReconciliationPolicy,
    preview_allocation,
    reconcile_party,
)
from ledger_engines.risk import DEFAULT_THRESHOLDS, RiskThresholds, RiskTier, classify_risk
from ledger_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AgeBucket",
    "AgingCalculator",
    "AgingSummary",
    "AllocationEngine",
    "AllocationLine",
    "AllocationPreview",
    "AllocationResult",
    "AllocationSource",
    "AllocationTarget",
    "DEFAULT_POLICY",
    "DEFAULT_THRESHOLDS",
    "DocumentAllocation",
    "EntryStatus",
    "LedgerEntry",
    "PartyLedger",
    "PaymentAllocation",
    "PaymentApplication",
    "PreviewLine",
    "ReconciliationPolicy",
    "RiskThresholds",
    "RiskTier",
    "STANDARD_BUCKETS",
    "buckets_from_bounds",
    "classify_risk",
    "compute_input_fingerprint",
    "preview_allocation",
    "reconcile_party",
    "traced_engine",
]
