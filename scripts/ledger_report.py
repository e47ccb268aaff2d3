#!/usr/bin/env python3
"""
Outstanding balance report for customers or vendors.

Reconciles every party (or one party) against the store and prints the
list view: name, outstanding amount, days overdue, risk level and last
payment date.  Optionally writes the same rows as CSV, or a full
statement when a single party is requested.

Usage:
  python3 scripts/ledger_report.py --database-url sqlite:///ledger.db
  python3 scripts/ledger_report.py --kind vendor --sort days_overdue --risk critical --risk high
  python3 scripts/ledger_report.py --party 42 --csv statement.csv
"""

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from ledger_config import get_active_config  # noqa: E402
from ledger_engines.risk import RiskTier  # noqa: E402
from ledger_kernel.db.engine import init_engine_from_url, session_scope  # noqa: E402
from ledger_kernel.domain.records import PartyKind  # noqa: E402
from ledger_kernel.exceptions import LedgerKernelError  # noqa: E402
from ledger_kernel.logging_config import configure_logging  # noqa: E402
from ledger_kernel.selectors.ledger_selector import FetchMode, LedgerSelector  # noqa: E402
from ledger_services.aggregator import PartySummaryAggregator, SortKey, SummaryQuery  # noqa: E402
from ledger_services.export import (  # noqa: E402
    format_amount,
    write_party_statement_csv,
    write_summary_csv,
)
from ledger_services.reconciler import LedgerReconciler  # noqa: E402


def _amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reconciled outstanding balances per customer or vendor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database-url", help="SQLAlchemy URL (default: from config)")
    parser.add_argument("--config", type=Path, help="YAML settings file")
    parser.add_argument(
        "--kind",
        choices=[k.value for k in PartyKind],
        default=PartyKind.CUSTOMER.value,
    )
    parser.add_argument("--party", type=int, help="Report a single party id")
    parser.add_argument(
        "--sort",
        choices=[k.value for k in SortKey],
        default=SortKey.OUTSTANDING.value,
    )
    parser.add_argument(
        "--risk",
        action="append",
        choices=[t.value for t in RiskTier],
        help="Only these risk levels (repeatable)",
    )
    parser.add_argument("--min-outstanding", type=_amount)
    parser.add_argument("--search", help="Match name, phone or address")
    parser.add_argument("--include-settled", action="store_true")
    parser.add_argument("--csv", type=Path, help="Write CSV to this path")
    parser.add_argument("--mode", choices=[m.value for m in FetchMode])
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    return parser


def _print_party(reconciler: LedgerReconciler, args: argparse.Namespace) -> None:
    ledger = reconciler.compute_party_ledger(args.party, mode=args.mode)
    party = ledger.party
    print(f"{party.name} ({party.kind.value}, {party.kind.balance_side})")
    print(f"  As of:             {ledger.as_of.isoformat()}")
    print(f"  Total billed:      {format_amount(ledger.total_billed)}")
    print(f"  Total paid:        {format_amount(ledger.total_paid)}")
    print(f"  Total returned:    {format_amount(ledger.total_return_credit)}")
    print(f"  Outstanding:       {format_amount(ledger.total_outstanding)}")
    print(f"  Unapplied credit:  {format_amount(ledger.unapplied_credit)}")
    print(f"  Days overdue:      {ledger.days_overdue}")
    print(f"  Risk level:        {ledger.risk_tier.value}")
    print()
    print(f"  {'Document':<16} {'Date':<12} {'Billed':>12} {'Outstanding':>12} {'Status':<8}")
    for entry in ledger.entries:
        doc_date = entry.document_date.isoformat() if entry.document_date else "N/A"
        print(
            f"  {entry.label:<16} {doc_date:<12} {format_amount(entry.billed):>12} "
            f"{format_amount(entry.outstanding):>12} {entry.status.value:<8}"
        )
    for warning in ledger.warnings:
        print(f"  WARNING: {warning}")

    if args.csv:
        with open(args.csv, "w", newline="", encoding="utf-8") as f:
            write_party_statement_csv(ledger, f)
        print(f"\nStatement written to {args.csv}")


def _print_summary(reconciler: LedgerReconciler, args: argparse.Namespace) -> None:
    query = SummaryQuery(
        include_settled=args.include_settled,
        risk_tiers=frozenset(args.risk) if args.risk else None,
        min_outstanding=args.min_outstanding,
        search=args.search,
        sort_by=SortKey(args.sort),
    )
    report = PartySummaryAggregator(reconciler).summarize(
        kind=PartyKind(args.kind),
        query=query,
    )

    print(f"{'Name':<30} {'Outstanding':>14} {'Days':>6} {'Risk':<9} {'Last Payment':<12}")
    for s in report.summaries:
        last = s.last_payment_date.isoformat() if s.last_payment_date else "Never"
        print(
            f"{s.name[:30]:<30} {format_amount(s.total_outstanding):>14} "
            f"{s.days_overdue:>6} {s.risk_tier.value:<9} {last:<12}"
        )
    print()
    print(f"Parties: {report.party_count}  "
          f"Total outstanding: {format_amount(report.total_outstanding)}  "
          f"Average: {format_amount(report.average_outstanding)}  "
          f"Critical: {report.critical_count}")
    if report.failure_count:
        print(f"Failed to reconcile {report.failure_count} part(y/ies):")
        for failure in report.failures:
            print(f"  {failure.party_id}: [{failure.code}] {failure.message}")

    if args.csv:
        with open(args.csv, "w", newline="", encoding="utf-8") as f:
            write_summary_csv(report.summaries, f)
        print(f"\nCSV written to {args.csv}")


def main() -> int:
    args = build_parser().parse_args()
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = get_active_config(args.config)
    except LedgerKernelError as e:
        print(f"ERROR: {e}")
        return 1

    init_engine_from_url(args.database_url or config.database_url)
    try:
        with session_scope() as session:
            reconciler = LedgerReconciler(LedgerSelector(session), config=config)
            if args.party is not None:
                _print_party(reconciler, args)
            else:
                _print_summary(reconciler, args)
    except LedgerKernelError as e:
        print(f"ERROR: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
