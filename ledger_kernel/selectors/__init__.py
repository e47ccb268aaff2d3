"""Read-only query selectors."""

from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import FetchMode, LedgerSelector, PartyStreams

__all__ = ["BaseSelector", "FetchMode", "LedgerSelector", "PartyStreams"]
