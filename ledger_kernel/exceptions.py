"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the reconciliation core (list views, statement screens, the
export CLI) must decide how to present a failure without parsing message
strings. Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        ledger = reconciler.compute_party_ledger(party_id)
    except PartyNotFoundError as e:
        show_message(f"Party {e.party_id} no longer exists")
    except StoreError as e:
        show_message(f"Could not read the ledger ({e.operation})")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- NotFoundError
    |   +-- PartyNotFoundError
    |
    +-- StoreError
    |
    +-- RecordValidationError
    |
    +-- DataIntegrityWarning      (collected, never raised by the reconciler)
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When
-------------------------|----------------------------------------------------
NOT_FOUND                | Generic lookup miss
PARTY_NOT_FOUND          | Customer/vendor id does not exist
STORE_ERROR              | Query or connection failure in the store
RECORD_VALIDATION_ERROR  | Row cannot be converted into a typed record
DATA_INTEGRITY_WARNING   | Non-fatal inconsistency; reconciliation degrades
CONFIGURATION_ERROR      | Configuration file missing required structure

===============================================================================
PROPAGATION
===============================================================================

NotFoundError and StoreError abort a single-party computation and reach
the caller. DataIntegrityWarning instances are attached to the computed
ledger and logged. The summary aggregator isolates per-party failures and
reports them as a count instead of propagating.
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(LedgerKernelError):
    """Base exception for lookups that found nothing."""

    code: str = "NOT_FOUND"


class PartyNotFoundError(NotFoundError):
    """Customer or vendor with the given id does not exist."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: int, party_kind: str | None = None):
        self.party_id = party_id
        self.party_kind = party_kind
        label = party_kind or "party"
        super().__init__(f"{label.capitalize()} not found: {party_id}")


# Store exceptions


class StoreError(LedgerKernelError):
    """A query against the persistent store failed."""

    code: str = "STORE_ERROR"

    def __init__(self, operation: str, reason: str, party_id: int | None = None):
        self.operation = operation
        self.reason = reason
        self.party_id = party_id
        super().__init__(f"Store query '{operation}' failed: {reason}")


class RecordValidationError(LedgerKernelError):
    """A stored row could not be turned into a typed record."""

    code: str = "RECORD_VALIDATION_ERROR"

    def __init__(self, record_type: str, record_id: int | None, reason: str):
        self.record_type = record_type
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Invalid {record_type} {record_id}: {reason}")


# Non-fatal integrity findings


class DataIntegrityWarning(LedgerKernelError):
    """
    Non-fatal data inconsistency found during reconciliation.

    Not raised by the reconciler. Instances are collected on the
    resulting ledger so callers can display or audit them, e.g. a payment
    that references a billing document that does not exist (the payment
    is treated as general credit instead).
    """

    code: str = "DATA_INTEGRITY_WARNING"

    def __init__(self, record_type: str, record_id: int | None, reason: str):
        self.record_type = record_type
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"{record_type} {record_id}: {reason}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataIntegrityWarning):
            return NotImplemented
        return (self.record_type, self.record_id, self.reason) == (
            other.record_type,
            other.record_id,
            other.reason,
        )

    def __hash__(self) -> int:
        return hash((self.record_type, self.record_id, self.reason))


# Configuration exceptions


class ConfigurationError(LedgerKernelError):
    """Configuration source is missing or structurally invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration {source}: {reason}")
