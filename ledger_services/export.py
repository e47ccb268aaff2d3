"""
CSV export of party summaries and party statements.

The summary header row and column order are a compatibility contract:
saved exports and downstream spreadsheets rely on them.  Append new
columns at the end only; never rename or reorder.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import TextIO

from ledger_engines.reconciliation import PartyLedger
from ledger_kernel.logging_config import get_logger
from ledger_services.aggregator import PartySummary

logger = get_logger("services.export")

SUMMARY_EXPORT_COLUMNS: tuple[str, ...] = (
    "Party Name",
    "Outstanding Amount",
    "Days Overdue",
    "Risk Level",
    "Last Payment Date",
)

NEVER_PAID = "Never"
NOT_AVAILABLE = "N/A"

STATEMENT_DOCUMENT_COLUMNS: tuple[str, ...] = (
    "Document Number",
    "Date",
    "Amount",
    "Paid",
    "Returned",
    "Outstanding",
    "Days Overdue",
)


def format_amount(amount: Decimal) -> str:
    """Two decimal places, half up, no thousands separator."""
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _format_date(value: date | None, missing: str) -> str:
    return value.isoformat() if value is not None else missing


def summary_rows(summaries: Iterable[PartySummary]) -> list[tuple[str, ...]]:
    """Rows (without header) in SUMMARY_EXPORT_COLUMNS order."""
    return [
        (
            s.name,
            format_amount(s.total_outstanding),
            str(s.days_overdue),
            s.risk_tier.value,
            _format_date(s.last_payment_date, NEVER_PAID),
        )
        for s in summaries
    ]


def write_summary_csv(summaries: Iterable[PartySummary], stream: TextIO) -> int:
    """Write header and one row per summary; returns the row count."""
    writer = csv.writer(stream, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(SUMMARY_EXPORT_COLUMNS)
    rows = summary_rows(summaries)
    writer.writerows(rows)
    logger.info("summary_csv_written", extra={"row_count": len(rows)})
    return len(rows)


def write_party_statement_csv(ledger: PartyLedger, stream: TextIO) -> int:
    """
    Per-party statement: party details, balance summary, then one row per
    document that still has an outstanding balance.

    Returns the number of document rows written.
    """
    party = ledger.party
    writer = csv.writer(stream, quoting=csv.QUOTE_ALL, lineterminator="\n")
    kind_label = party.kind.value.capitalize()

    writer.writerow([f"{kind_label} Ledger Statement"])
    writer.writerow(["As of:", ledger.as_of.isoformat()])
    writer.writerow([])
    writer.writerow([f"{kind_label} Information:"])
    writer.writerow(["Name:", party.name])
    writer.writerow(["Phone:", party.phone or NOT_AVAILABLE])
    writer.writerow(["Address:", party.address or NOT_AVAILABLE])
    writer.writerow([])
    writer.writerow(["Summary:"])
    writer.writerow(["Total Documents:", str(ledger.document_count)])
    writer.writerow(["Total Billed:", format_amount(ledger.total_billed)])
    writer.writerow(["Total Paid:", format_amount(ledger.total_paid)])
    writer.writerow(["Total Returned:", format_amount(ledger.total_return_credit)])
    writer.writerow(["Total Outstanding:", format_amount(ledger.total_outstanding)])
    writer.writerow(["Unapplied Credit:", format_amount(ledger.unapplied_credit)])
    writer.writerow(["Overdue Documents:", str(ledger.overdue_document_count)])
    writer.writerow(["Overdue Amount:", format_amount(ledger.overdue_amount)])
    writer.writerow(["Average Payment Days:", str(ledger.average_payment_days)])
    writer.writerow(["Risk Level:", ledger.risk_tier.value])
    writer.writerow(["Last Payment Date:", _format_date(ledger.last_payment_date, NEVER_PAID)])
    writer.writerow([])
    writer.writerow(["Outstanding Documents:"])
    writer.writerow(STATEMENT_DOCUMENT_COLUMNS)

    entries = ledger.outstanding_entries
    for entry in entries:
        writer.writerow([
            entry.label,
            _format_date(entry.document_date, NOT_AVAILABLE),
            format_amount(entry.billed),
            format_amount(entry.paid),
            format_amount(entry.return_credit),
            format_amount(entry.outstanding),
            str(entry.days_overdue) if entry.days_overdue is not None else NOT_AVAILABLE,
        ])

    logger.info("party_statement_csv_written", extra={
        "party_id": party.id,
        "row_count": len(entries),
    })
    return len(entries)
