"""Flat CSV export of already-fetched records."""

import csv
import io
from typing import Any, Dict, Iterable, List, Optional, Sequence

from reserve_api.models.audit_log import AuditLog

AUDIT_CSV_COLUMNS = [
    ("Timestamp", lambda e: e.timestamp.isoformat() if e.timestamp else None),
    ("User", lambda e: e.user_name),
    ("Role", lambda e: e.user_role),
    ("Action", lambda e: e.action.value),
    ("Resource", lambda e: e.resource.value),
    ("Resource ID", lambda e: e.resource_id),
    ("Details", lambda e: e.details),
    ("IP Address", lambda e: e.ip_address),
]


def _write(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def rows_to_csv(rows: Sequence[Dict[str, Any]], headers: Optional[List[str]] = None) -> str:
    """Serialize dict rows to RFC 4180 CSV.

    Headers default to the keys of the first row. Fields containing a
    delimiter, quote or line break are quoted with embedded quotes doubled.
    """
    if not rows:
        return ""
    headers = list(headers or rows[0].keys())
    return _write(headers, ([row.get(h) for h in headers] for row in rows))


def audit_logs_to_csv(entries: Iterable[AuditLog]) -> str:
    """CSV of audit entries; an empty view still gets its header row."""
    headers = [label for label, _ in AUDIT_CSV_COLUMNS]
    return _write(
        headers,
        ([getter(entry) for _, getter in AUDIT_CSV_COLUMNS] for entry in entries),
    )
