"""
Configuration Schema (``ledger_config.schema``).

Defines the structure and defaults of reconciliation settings.  Values
shipped in ``defaults.yaml`` mirror the dataclass defaults; a site can
override any of them with its own YAML file.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Self

from ledger_engines.aging import AgeBucket, buckets_from_bounds
from ledger_engines.reconciliation import ReconciliationPolicy
from ledger_engines.risk import RiskThresholds
from ledger_kernel.db.engine import DEFAULT_DATABASE_URL
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.ledger_selector import FetchMode

logger = get_logger("config.schema")


def _decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{name} must be numeric, got {value!r}") from exc


@dataclass(frozen=True)
class ReconcilerConfig:
    """
    Configuration of the ledger reconciler and its consumers.

        config = ReconcilerConfig(
            currency="PKR",
            aging_buckets=(0, 15, 45, 90),
        )
    """

    currency: str = "PKR"
    decimal_places: int = 2
    default_mode: FetchMode = FetchMode.OPTIMIZED

    # Risk tiers
    risk_thresholds: RiskThresholds = field(default_factory=RiskThresholds)

    # Aging bucket upper bounds in days; the last bucket is open ended
    aging_buckets: tuple[int, ...] = (0, 30, 60, 90)

    # Documents older than this count as overdue in party statistics
    overdue_days: int = 30

    # Diagnostics
    balance_tolerance: Decimal = Decimal("0.01")

    database_url: str = DEFAULT_DATABASE_URL

    def __post_init__(self):
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"currency must be a 3-letter code, got {self.currency!r}")
        if not 0 <= self.decimal_places <= 6:
            raise ValueError("decimal_places must be between 0 and 6")
        try:
            object.__setattr__(self, "default_mode", FetchMode(self.default_mode))
        except ValueError as exc:
            valid = {m.value for m in FetchMode}
            raise ValueError(
                f"default_mode must be one of {valid}, got '{self.default_mode}'"
            ) from exc

        if not self.aging_buckets:
            raise ValueError("aging_buckets cannot be empty")
        if list(self.aging_buckets) != sorted(self.aging_buckets):
            raise ValueError("aging_buckets must be sorted ascending")
        if len(self.aging_buckets) != len(set(self.aging_buckets)):
            raise ValueError("aging_buckets must be unique")
        if any(b < 0 for b in self.aging_buckets):
            raise ValueError("aging_buckets cannot contain negative values")

        if self.overdue_days < 0:
            raise ValueError("overdue_days cannot be negative")
        if self.balance_tolerance < 0:
            raise ValueError("balance_tolerance cannot be negative")
        if not self.database_url:
            raise ValueError("database_url cannot be empty")

        logger.debug(
            "reconciler_config_initialized",
            extra={
                "currency": self.currency,
                "decimal_places": self.decimal_places,
                "default_mode": self.default_mode.value,
                "aging_buckets": list(self.aging_buckets),
                "overdue_days": self.overdue_days,
            },
        )

    @property
    def age_buckets(self) -> tuple[AgeBucket, ...]:
        return buckets_from_bounds(self.aging_buckets)

    def to_policy(self) -> ReconciliationPolicy:
        """Engine parameters derived from this configuration."""
        return ReconciliationPolicy(
            decimal_places=self.decimal_places,
            aging_buckets=self.age_buckets,
            risk_thresholds=self.risk_thresholds,
            overdue_days=self.overdue_days,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the store's standard settings."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g., parsed YAML)."""
        logger.info(
            "reconciler_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "risk_thresholds" in data and isinstance(data["risk_thresholds"], dict):
            data["risk_thresholds"] = _parse_thresholds(data["risk_thresholds"])
        if "aging_buckets" in data:
            data["aging_buckets"] = tuple(int(b) for b in data["aging_buckets"])
        if "balance_tolerance" in data:
            data["balance_tolerance"] = _decimal(data["balance_tolerance"], "balance_tolerance")
        return cls(**data)


def _parse_thresholds(data: dict[str, Any]) -> RiskThresholds:
    """
    Parse risk thresholds from a nested mapping.

        critical: {days: 90, amount: 50000}
        high: {days: 60, amount: 25000}
        medium: {days: 30, amount: 10000}

    Tiers that are left out keep their defaults.
    """
    defaults = RiskThresholds()
    kwargs: dict[str, Any] = {}
    for tier in ("critical", "high", "medium"):
        tier_data = data.get(tier) or {}
        unknown = set(tier_data) - {"days", "amount"}
        if unknown:
            raise ValueError(f"Unknown keys for risk tier {tier!r}: {sorted(unknown)}")
        kwargs[f"{tier}_days"] = int(tier_data.get("days", getattr(defaults, f"{tier}_days")))
        kwargs[f"{tier}_amount"] = _decimal(
            tier_data.get("amount", getattr(defaults, f"{tier}_amount")),
            f"risk_thresholds.{tier}.amount",
        )
    unknown_tiers = set(data) - {"critical", "high", "medium"}
    if unknown_tiers:
        raise ValueError(f"Unknown risk tiers: {sorted(unknown_tiers)}")
    return RiskThresholds(**kwargs)
