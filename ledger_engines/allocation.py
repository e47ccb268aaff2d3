"""
Module: ledger_engines.allocation
Responsibility:
    Allocate a credit amount across billing documents oldest-first (FIFO).
    Used by reconciliation to draw general credit from the unlinked-payment
    pool and by the payment allocation preview.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel logging and Python stdlib.

Invariants enforced:
    - total_allocated + unallocated == source_amount.
    - No target receives more than its eligible amount.
    - Undated targets sort after every dated target; ties are broken by
      the caller-supplied sequence, so ordering is fully deterministic.
    - Decimal-only arithmetic; no rounding is introduced.

Failure modes:
    - ValueError on a negative source amount or a negative eligible amount.

Usage:
    from ledger_engines.allocation import AllocationEngine, AllocationTarget

    engine = AllocationEngine()
    result = engine.allocate_fifo(
        amount=Decimal("1200"),
        targets=[
            AllocationTarget(target_id=1, eligible_amount=Decimal("1000"), date=date(2024, 1, 1)),
            AllocationTarget(target_id=2, eligible_amount=Decimal("500"), date=date(2024, 1, 2)),
        ],
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class AllocationTarget:
    """
    One billing document that can absorb credit.

    Contract:
        Frozen dataclass representing a potential allocation recipient.
    Guarantees:
        - ``eligible_amount`` >= 0.
    """

    target_id: int
    eligible_amount: Decimal
    date: date | None = None
    sequence: int = 0

    def __post_init__(self) -> None:
        if self.eligible_amount < _ZERO:
            raise ValueError("eligible_amount cannot be negative")

    @property
    def sort_key(self) -> tuple[bool, date, int, int]:
        return (self.date is None, self.date or date.min, self.sequence, self.target_id)


@dataclass(frozen=True)
class AllocationLine:
    """Outcome of an allocation for one target."""

    target_id: int
    allocated: Decimal
    remaining: Decimal

    @property
    def is_fully_allocated(self) -> bool:
        return self.remaining == _ZERO


@dataclass(frozen=True)
class AllocationResult:
    """Summary of one allocation run."""

    source_amount: Decimal
    lines: tuple[AllocationLine, ...]
    total_allocated: Decimal
    unallocated: Decimal

    @property
    def is_fully_allocated(self) -> bool:
        """True if the entire source amount was allocated."""
        return self.unallocated == _ZERO

    @property
    def funded_lines(self) -> tuple[AllocationLine, ...]:
        """Lines that received a non-zero allocation."""
        return tuple(line for line in self.lines if line.allocated > _ZERO)


class AllocationEngine:
    """
    Sequential oldest-first allocation of credit.

    Contract:
        Pure functions, no I/O, no database access.
    Non-goals:
        - Pro-rata or weighted splits.  Ledger credit is always consumed
          oldest document first.
    """

    def allocate_fifo(
        self,
        amount: Decimal,
        targets: Sequence[AllocationTarget],
    ) -> AllocationResult:
        """Allocate to the oldest target first until the amount is exhausted."""
        if amount < _ZERO:
            raise ValueError(f"Cannot allocate a negative amount: {amount}")
        sorted_targets = sorted(targets, key=lambda t: t.sort_key)
        return self._allocate_sequential(amount, sorted_targets)

    def _allocate_sequential(
        self,
        amount: Decimal,
        sorted_targets: Sequence[AllocationTarget],
    ) -> AllocationResult:
        remaining_to_allocate = amount
        lines: list[AllocationLine] = []

        for target in sorted_targets:
            to_allocate = min(remaining_to_allocate, target.eligible_amount)
            remaining_to_allocate -= to_allocate
            lines.append(
                AllocationLine(
                    target_id=target.target_id,
                    allocated=to_allocate,
                    remaining=target.eligible_amount - to_allocate,
                )
            )

        total_allocated = amount - remaining_to_allocate

        logger.debug("allocation_fifo_completed", extra={
            "source_amount": str(amount),
            "total_allocated": str(total_allocated),
            "unallocated": str(remaining_to_allocate),
            "targets_funded": sum(1 for line in lines if line.allocated > _ZERO),
            "line_count": len(lines),
        })

        return AllocationResult(
            source_amount=amount,
            lines=tuple(lines),
            total_allocated=total_allocated,
            unallocated=remaining_to_allocate,
        )
