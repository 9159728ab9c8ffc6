"""
Timestamp normalisation.

Health Auto Export sends dates as ``2024-01-01 08:00:00 +0200`` (or a bare
``2024-01-01`` for daily aggregates).  Airtable hands dateTime values back as
``2024-01-01T06:00:00.000Z``.  Both are reduced to the same canonical UTC
string so duplicate detection is a plain string comparison.
"""

import re
from datetime import datetime, timezone
from typing import Optional

EXPORT_FORMAT = "%Y-%m-%d %H:%M:%S %z"
DEFAULT_TIME = "00:00:00"
DEFAULT_OFFSET = "+0000"

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _canonical(dt: datetime) -> Optional[str]:
    try:
        utc = dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # instant falls outside the representable range once shifted to UTC
        return None
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_timestamp(raw: Optional[str]) -> Optional[str]:
    """Return the canonical UTC form of an export timestamp, or ``None``.

    A value without a time component gets ``00:00:00 +0000`` appended before
    parsing.  Anything that does not match the export pattern is invalid.
    """
    if not isinstance(raw, str):
        return None
    raw = raw.strip()
    if _DATE_ONLY.match(raw):
        raw = f"{raw} {DEFAULT_TIME} {DEFAULT_OFFSET}"
    try:
        parsed = datetime.strptime(raw, EXPORT_FORMAT)
    except ValueError:
        return None
    return _canonical(parsed)


def canonicalize_stored(value: str) -> str:
    """Canonicalise a timestamp read back from Airtable.

    Airtable normally returns ISO 8601 with a ``Z`` suffix.  Values that are
    not parseable are kept verbatim so they still take part in membership
    tests.
    """
    text = value.strip()
    normalized = normalize_timestamp(text)
    if normalized is not None:
        return normalized
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    canonical = _canonical(parsed)
    return canonical if canonical is not None else value
