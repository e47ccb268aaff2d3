"""
ledger_config -- single public entrypoint for reconciler configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` / ``ledger_engines`` and
    below ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``.

Resolution order:
    1. The explicit ``path`` argument.
    2. The ``LEDGER_CONFIG`` environment variable.
    3. The packaged ``defaults.yaml``.

Failure modes:
    - ``ConfigurationError`` -- missing file, invalid YAML or invalid values.

Audit relevance:
    Every successful call emits a ``LEDGER_CONFIG_TRACE`` log entry with the
    source file and the settings checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import compute_checksum, load_config
from ledger_config.schema import ReconcilerConfig

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_ENV_VAR = "LEDGER_CONFIG"
DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> ReconcilerConfig:
    """The ONLY public configuration entrypoint.

    Contract:
        No other component may read configuration files or environment
        variables.  All configuration flows through this function.

    Non-goals:
        Does NOT cache across calls; callers hold the returned config.
    """
    source = path or os.environ.get(CONFIG_ENV_VAR) or DEFAULTS_PATH
    config = load_config(source)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(config),
            "currency": config.currency,
            "default_mode": config.default_mode.value,
            "aging_buckets": list(config.aging_buckets),
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULTS_PATH",
    "ReconcilerConfig",
    "get_active_config",
    "load_config",
]
