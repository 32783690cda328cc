"""CSV and JSON serialization of exported sales rows."""

import csv
import io
from collections.abc import Sequence

from pydantic import TypeAdapter

from app.features.sales.schemas import ExportFormat, ExportRow

_rows_adapter = TypeAdapter(list[ExportRow])

MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


def to_csv(rows: Sequence[ExportRow]) -> str:
    """Render rows as CSV with a header line; empty input gives ''."""
    if not rows:
        return ""

    buffer = io.StringIO()
    fieldnames = list(ExportRow.model_fields)
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row.model_dump(mode="json"))
    return buffer.getvalue()


def to_json(rows: Sequence[ExportRow]) -> str:
    """Render rows as an indented JSON array."""
    return _rows_adapter.dump_json(list(rows), indent=2).decode()


def serialize(rows: Sequence[ExportRow], export_format: ExportFormat) -> str:
    """Serialize rows in the requested format."""
    if export_format == ExportFormat.CSV:
        return to_csv(rows)
    return to_json(rows)
