"""
Module: ledger_engines.aging
Responsibility:
    Calculate document age and roll outstanding balances into configurable
    aging buckets for customer (receivable) and vendor (payable) ledgers.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Purity: no clock access; ``as_of`` is always passed in.
    - Decimal-only arithmetic for all amounts.
    - Every bucket of the configured sequence appears in the result, in
      order, even when its total is zero.
    - Undated balances never enter a bucket; they are totalled separately.

Failure modes:
    - ValueError when bucket bounds are not strictly increasing or an age
      does not fall into any bucket.

Usage:
    from ledger_engines.aging import AgingCalculator, buckets_from_bounds

    calculator = AgingCalculator()
    age = calculator.calculate_age(date(2024, 1, 15), date(2024, 2, 15))  # 31
    bucket = calculator.classify(age)  # AgeBucket("31-60", 31, 60)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ledger_engines.tracer import traced_engine
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.aging")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class AgeBucket:
    """
    Definition of an aging bucket.

    Contract:
        Frozen dataclass representing a contiguous range of days.
    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., Over 90)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days

    @property
    def is_unbounded(self) -> bool:
        return self.max_days is None


def buckets_from_bounds(upper_bounds: Sequence[int]) -> tuple[AgeBucket, ...]:
    """
    Build a contiguous bucket sequence from inclusive upper bounds.

    ``(0, 30, 60, 90)`` yields Current, 1-30, 31-60, 61-90 and Over 90.
    """
    bounds = list(upper_bounds)
    if not bounds:
        raise ValueError("At least one aging bound is required")
    if any(b < 0 for b in bounds):
        raise ValueError("Aging bounds cannot be negative")
    if any(later <= earlier for earlier, later in zip(bounds, bounds[1:])):
        raise ValueError(f"Aging bounds must be strictly increasing: {bounds}")

    buckets: list[AgeBucket] = []
    lower = 0
    for upper in bounds:
        if upper == 0:
            name = "Current"
        elif lower == upper:
            name = str(upper)
        else:
            name = f"{lower}-{upper}"
        buckets.append(AgeBucket(name, lower, upper))
        lower = upper + 1
    buckets.append(AgeBucket(f"Over {bounds[-1]}", lower, None))
    return tuple(buckets)


STANDARD_BUCKETS: tuple[AgeBucket, ...] = buckets_from_bounds((0, 30, 60, 90))


@dataclass(frozen=True)
class AgingSummary:
    """Outstanding balances grouped by age."""

    buckets: tuple[tuple[str, Decimal], ...]
    undated: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return dict(self.buckets)

    @property
    def total(self) -> Decimal:
        return sum((amount for _, amount in self.buckets), _ZERO) + self.undated

    def amount_in(self, bucket_name: str) -> Decimal:
        return self.as_dict().get(bucket_name, _ZERO)


class AgingCalculator:
    """
    Calculate aging for dated balances.

    Contract:
        Pure functions -- no I/O, no database access.
    Guarantees:
        - ``classify`` maps every non-negative age to exactly one bucket
          (given a well-formed bucket sequence).
    """

    DEFAULT_BUCKETS = STANDARD_BUCKETS

    def __init__(self, buckets: Sequence[AgeBucket] | None = None):
        self.buckets: tuple[AgeBucket, ...] = tuple(buckets or self.DEFAULT_BUCKETS)

    def calculate_age(self, document_date: date, as_of_date: date) -> int:
        """Age in whole days; negative when the document is future-dated."""
        return (as_of_date - document_date).days

    def days_overdue(self, document_date: date | None, as_of_date: date) -> int | None:
        """Non-negative age, or None when the document date is unknown."""
        if document_date is None:
            return None
        return max(0, self.calculate_age(document_date, as_of_date))

    def classify(self, age_days: int) -> AgeBucket:
        """
        Classify age into a bucket.

        Negative ages (future-dated documents) map to the first bucket.

        Raises:
            ValueError: If age doesn't fit any bucket.
        """
        if age_days < 0:
            return self.buckets[0]
        for bucket in self.buckets:
            if bucket.contains(age_days):
                return bucket
        logger.warning("age_classification_no_bucket", extra={
            "age_days": age_days,
            "bucket_count": len(self.buckets),
        })
        raise ValueError(f"Age {age_days} does not fit any bucket")

    @traced_engine("aging", "1.0", fingerprint_fields=("as_of",))
    def summarize(
        self,
        *,
        items: Sequence[tuple[date | None, Decimal]],
        as_of: date,
    ) -> AgingSummary:
        """
        Roll ``(document_date, outstanding)`` pairs into buckets.

        Pairs with a None date are totalled into ``undated``.
        """
        totals = {bucket.name: _ZERO for bucket in self.buckets}
        undated = _ZERO
        for document_date, amount in items:
            if document_date is None:
                undated += amount
                continue
            bucket = self.classify(self.calculate_age(document_date, as_of))
            totals[bucket.name] += amount

        return AgingSummary(
            buckets=tuple((bucket.name, totals[bucket.name]) for bucket in self.buckets),
            undated=undated,
        )
