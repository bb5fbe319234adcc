"""CSV import: turns an uploaded bank-style CSV into transaction-shaped dicts.

Recognized header columns (matched case-insensitively, surrounding spaces ignored):
Date, Description, Amount, Type, Category

This is a lossy, best-effort normalization rather than a strict parser. Each row
maps to a candidate record with these fallbacks:

- ``text``: ``Description``, or ``"Imported Txn"`` when blank
- ``amount``: ``Amount`` as a number, or ``0`` when blank, unparseable or
  non-finite. A leading sign is dropped since amounts are magnitudes.
- ``type``: ``Type`` lower-cased, or ``"debit"`` when blank. Not checked
  against the allowed values; the store rejects unknown types.
- ``category``: ``Category``, or ``"Uncategorized"`` when blank
- ``date``: ``Date`` parsed as a calendar date, or the import time

Rows whose cells are all blank are skipped. Every fallback that replaces a
non-empty value is logged at WARNING with its line number in the file so nothing is
dropped silently.
"""
import csv
import io
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from models.transaction import utc_now
from services.errors import ParseError

logger = logging.getLogger(__name__)

RECOGNIZED_COLUMNS = ("date", "description", "amount", "type", "category")

DEFAULT_TEXT = "Imported Txn"
DEFAULT_TYPE = "debit"
DEFAULT_IMPORT_CATEGORY = "Uncategorized"

# Tried in order after ISO 8601
DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%d %b %Y",
    "%b %d %Y",
    "%b %d, %Y",
    "%d-%b-%Y",
)


def _parse_amount(value: str) -> Optional[float]:
    try:
        amount = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(amount):
        return None
    return abs(amount)


def _parse_date(value: str) -> Optional[datetime]:
    s = value.strip()
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def _normalize_row(row: Mapping[str, str], line_number: int, now: datetime) -> Dict[str, Any]:
    description = row.get("description", "").strip()
    amount_raw = row.get("amount", "").strip()
    type_raw = row.get("type", "").strip()
    category = row.get("category", "").strip()
    date_raw = row.get("date", "").strip()

    amount = 0.0
    if amount_raw:
        parsed_amount = _parse_amount(amount_raw)
        if parsed_amount is None:
            logger.warning(f"Line {line_number}: unparseable amount {amount_raw!r}, using 0.")
        else:
            amount = parsed_amount

    parsed_date = None
    if date_raw:
        parsed_date = _parse_date(date_raw)
        if parsed_date is None:
            logger.warning(f"Line {line_number}: unparseable date {date_raw!r}, using import time.")

    return {
        "text": description or DEFAULT_TEXT,
        "amount": amount,
        "type": type_raw.lower() or DEFAULT_TYPE,
        "category": category or DEFAULT_IMPORT_CATEGORY,
        "date": parsed_date or now,
    }


def parse_transactions_csv(text: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Parse CSV text into candidate transaction dicts (not yet stored).

    Raises ``ParseError`` when the text has no header row, or the header has
    none of the recognized columns.
    """
    now = now or utc_now()
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    if not reader.fieldnames:
        raise ParseError("CSV appears to have no header row.")

    columns = {name: (name or "").strip().lower() for name in reader.fieldnames}
    if not set(columns.values()) & set(RECOGNIZED_COLUMNS):
        raise ParseError(
            "CSV header has none of the expected columns: Date, Description, Amount, Type, Category"
        )

    candidates = []
    for raw_row in reader:
        row = {}
        for name, value in raw_row.items():
            key = columns.get(name)
            # Extra cells beyond the header land under None with a list value
            if key in RECOGNIZED_COLUMNS and isinstance(value, str) and key not in row:
                row[key] = value
        if not any((v or "").strip() for v in raw_row.values() if isinstance(v, str)):
            continue
        # line_num counts physical lines, header and skipped blank lines included
        candidates.append(_normalize_row(row, reader.line_num, now))

    logger.info(f"Parsed {len(candidates)} candidate transactions from CSV.")
    return candidates
