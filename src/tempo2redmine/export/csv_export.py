"""CSV export of missing entries."""

import csv
import io
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from ..domain.models import MissingEntry

CSV_HEADER = ["Date", "Hours", "Description", "Jira Task", "Redmine Task"]


def export_missing_entries_csv(entries: Iterable[MissingEntry]) -> str:
    """Render missing entries as CSV.

    Text cells are always quoted, embedded quotes doubled. Hours use two
    decimals and absent codes or IDs are written as empty strings. Rows
    are joined with ``\\n`` and the last row has no terminator.

    Args:
        entries: Missing entries to export

    Returns:
        CSV text including the header row
    """
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(CSV_HEADER)

    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for entry in entries:
        writer.writerow(
            [
                entry.date,
                Decimal(f"{entry.hours:.2f}"),
                entry.description or "",
                entry.jira_task or "",
                entry.redmine_task or "",
            ]
        )
    return buffer.getvalue()[:-1]


def parse_missing_entries_csv(text: str) -> list[dict[str, Any]]:
    """Parse CSV produced by ``export_missing_entries_csv``.

    Returns:
        One dict per row with date, hours, description, jira_task and redmine_task
    """
    reader = csv.DictReader(io.StringIO(text))
    rows = []
    for row in reader:
        redmine_task = row.get("Redmine Task") or ""
        rows.append(
            {
                "date": row["Date"],
                "hours": float(row["Hours"]),
                "description": row["Description"],
                "jira_task": row.get("Jira Task") or None,
                "redmine_task": int(redmine_task) if redmine_task.isdigit() else None,
            }
        )
    return rows


def export_filename(start_date: date) -> str:
    return f"missing-entries-{start_date:%Y-%m}.csv"
