"""
ledger_services -- imperative shell around the pure ledger engines.

Services own I/O (store queries through LedgerSelector), clock injection
and caching.  They import ledger_kernel, ledger_engines and ledger_config.
"""

from ledger_services.aggregator import (
    PartySummary,
    PartySummaryAggregator,
    SortKey,
    SummaryFailure,
    SummaryQuery,
    SummaryReport,
)
from ledger_services.diagnostics import (
    BalanceDiagnostic,
    BalanceDiagnosticReport,
    BalanceDiscrepancy,
)
from ledger_services.events import EventBus, LedgerEvent
from ledger_services.export import (
    SUMMARY_EXPORT_COLUMNS,
    summary_rows,
    write_party_statement_csv,
    write_summary_csv,
)
from ledger_services.reconciler import LedgerReconciler
from ledger_services.refresh import LedgerRefreshCoordinator

__all__ = [
    "BalanceDiagnostic",
    "BalanceDiagnosticReport",
    "BalanceDiscrepancy",
    "EventBus",
    "LedgerEvent",
    "LedgerReconciler",
    "LedgerRefreshCoordinator",
    "PartySummary",
    "PartySummaryAggregator",
    "SUMMARY_EXPORT_COLUMNS",
    "SortKey",
    "SummaryFailure",
    "SummaryQuery",
    "SummaryReport",
    "summary_rows",
    "write_party_statement_csv",
    "write_summary_csv",
]
