"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into a typed
``ReconcilerConfig``.  Runtime callers use
``ledger_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed settings for change detection.

Failure modes
-------------
* Missing file, malformed YAML, a non-mapping document, unknown keys or
  invalid values  -> ``ConfigurationError`` naming the source file.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import ReconcilerConfig
from ledger_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(path: Path | str) -> ReconcilerConfig:
    """Parse a YAML settings file into a ReconcilerConfig."""
    path = Path(path)
    try:
        data = load_yaml_file(path)
    except FileNotFoundError as exc:
        raise ConfigurationError(str(path), "file not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level YAML value must be a mapping")

    try:
        return ReconcilerConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(str(path), str(exc)) from exc


def compute_checksum(config: ReconcilerConfig) -> str:
    """Deterministic SHA-256 of the effective settings."""
    thresholds = config.risk_thresholds
    canonical = {
        "currency": config.currency,
        "decimal_places": config.decimal_places,
        "default_mode": config.default_mode.value,
        "aging_buckets": list(config.aging_buckets),
        "risk_thresholds": {
            tier: {
                "days": getattr(thresholds, f"{tier}_days"),
                "amount": str(getattr(thresholds, f"{tier}_amount")),
            }
            for tier in ("critical", "high", "medium")
        },
        "overdue_days": config.overdue_days,
        "balance_tolerance": str(config.balance_tolerance),
        "database_url": config.database_url,
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
