"""Shared parsing utilities for AA provider payloads.

Centralises the date, number and nested-field handling that provider
clients and the FI data parser need: ISO 8601 strings, the day-first dates
Indian FIPs use, comma-grouped amounts, and dotted-path lookups into the
loosely structured FI JSON.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

_DAY_FIRST_FORMATS = ("%d-%m-%Y", "%d/%m/%Y", "%d-%b-%Y")


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to an aware datetime.

    Handles the formats AA providers produce:
    - Z suffix ("2024-01-15T10:30:00.000Z")
    - +0530 no-colon offset ("2024-01-15T10:30:00+0530")
    - Standard ISO with colon offset ("2024-01-15T10:30:00+05:30")
    - Date-only strings ("2024-01-15")
    - datetime/date objects passed through with UTC normalisation

    Offsets are preserved, not converted to UTC, so ``.date()`` yields the
    calendar day the provider meant.

    Args:
        value: A string, date, datetime, or None.

    Returns:
        A timezone-aware datetime, or None if the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    value_str = str(value).strip()

    # Handle Z suffix: "2024-01-15T10:30:00Z" -> "2024-01-15T10:30:00+00:00"
    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    # Handle "+0530" no-colon tz: "...+0530" -> "...+05:30"
    if (
        len(value_str) >= 5
        and value_str[-5] in ("+", "-")
        and value_str[-4:].isdigit()
        and "T" in value_str
    ):
        value_str = value_str[:-2] + ":" + value_str[-2:]

    try:
        dt = datetime.fromisoformat(value_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except (ValueError, TypeError):
        return None


def parse_date(value) -> date | None:
    """Parse a calendar date from ISO 8601 or day-first (DD-MM-YYYY) input.

    Returns:
        The date, or None if the value is missing or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    dt = parse_iso_datetime(value)
    if dt is not None:
        return dt.date()

    for fmt in _DAY_FIRST_FORMATS:
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value) -> Decimal:
    """Convert a provider numeric field to Decimal.

    Missing or empty values become ``Decimal("0")``. Strings may carry
    thousands separators ("1,25,000.50") and surrounding whitespace.

    Raises:
        ValueError: If a value is present but not a finite number.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got boolean {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            return Decimal("0")
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    else:
        raise ValueError(f"Expected a number, got {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def get_path(data, path: str):
    """Follow a dotted key path through nested dicts.

    Returns None as soon as a segment is missing or a non-dict is reached.
    """
    current = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def first_value(record: dict, candidates: tuple[str, ...]):
    """Return the first candidate key's value that is neither None nor ""."""
    for key in candidates:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def as_list(value) -> list:
    """Wrap a single record in a list; None becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
