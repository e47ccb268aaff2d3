"""
Module: ledger_engines.risk
Responsibility:
    Classify a party into a credit risk tier from how long its oldest
    unpaid document has been outstanding and how much it owes (or is owed).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Tiers are evaluated in precedence order critical, high, medium, low;
      the first tier whose day OR amount threshold is exceeded wins.
    - Comparisons are strict: exactly 90 days or exactly 50000 is not
      critical under the default thresholds.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class RiskTier(str, Enum):
    """Credit risk tier, lowest to highest."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()


_RANKS = {
    RiskTier.LOW: 0,
    RiskTier.MEDIUM: 1,
    RiskTier.HIGH: 2,
    RiskTier.CRITICAL: 3,
}


@dataclass(frozen=True)
class RiskThresholds:
    """
    Day and amount thresholds per tier.

    Guarantees:
        - Thresholds are non-negative and non-increasing from critical
          to medium.
    """

    critical_days: int = 90
    high_days: int = 60
    medium_days: int = 30
    critical_amount: Decimal = Decimal("50000")
    high_amount: Decimal = Decimal("25000")
    medium_amount: Decimal = Decimal("10000")

    def __post_init__(self) -> None:
        days = (self.critical_days, self.high_days, self.medium_days)
        amounts = (self.critical_amount, self.high_amount, self.medium_amount)
        if any(d < 0 for d in days):
            raise ValueError("Risk day thresholds cannot be negative")
        if any(a < 0 for a in amounts):
            raise ValueError("Risk amount thresholds cannot be negative")
        if not (self.critical_days >= self.high_days >= self.medium_days):
            raise ValueError(
                "Risk day thresholds must satisfy critical >= high >= medium"
            )
        if not (self.critical_amount >= self.high_amount >= self.medium_amount):
            raise ValueError(
                "Risk amount thresholds must satisfy critical >= high >= medium"
            )


DEFAULT_THRESHOLDS = RiskThresholds()


def classify_risk(
    days_overdue: int | None,
    total_outstanding: Decimal,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> RiskTier:
    """Risk tier for a party.  Unknown ``days_overdue`` counts as 0."""
    days = days_overdue or 0
    if days > thresholds.critical_days or total_outstanding > thresholds.critical_amount:
        return RiskTier.CRITICAL
    if days > thresholds.high_days or total_outstanding > thresholds.high_amount:
        return RiskTier.HIGH
    if days > thresholds.medium_days or total_outstanding > thresholds.medium_amount:
        return RiskTier.MEDIUM
    return RiskTier.LOW
