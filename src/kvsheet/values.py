"""Cell values for kvsheet tables.

A cell holds one of a closed set of scalar kinds: text, number, boolean or
timestamp.  This module converts raw store cells into that set, converts
them back for writing, and defines the equality used to match key columns.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Union

from dateutil import parser as date_parser
from dateutil import tz

Scalar = Union[str, int, float, bool, datetime]

SCALAR_TYPES = (str, int, float, bool, datetime)

UTC = timezone.utc

_ISO_TS_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[ T]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)?"
    r"(?:Z|[+-]\d{2}(?::?\d{2})?)?$"
)
_US_TS_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}(?: \d{1,2}:\d{2}(?::\d{2})?)?$")
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

_WRITE_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def is_scalar(value: Any) -> bool:
    return isinstance(value, SCALAR_TYPES)


def resolve_tz(name: str | None) -> tzinfo:
    """Return a tzinfo for an IANA zone name; None or '' means UTC."""
    if not name or name.upper() == "UTC":
        return UTC
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown time zone '{name}'.")
    return zone


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def parse_timestamp(value: str | None) -> datetime | None:
    """Parse ISO-8601 or 'M/D/YYYY[ H:MM[:SS]]' text; anything else -> None.

    The result is naive unless the text carries an offset.
    """
    if value is None:
        return None
    v = value.strip()
    if not v:
        return None
    try:
        if _ISO_TS_RE.match(v):
            return date_parser.isoparse(v)
        if _US_TS_RE.match(v):
            return date_parser.parse(v, dayfirst=False)
    except (ValueError, OverflowError):
        return None
    return None


def to_instant(value: Any, zone: tzinfo = UTC) -> datetime | None:
    """Return ``value`` as an aware UTC datetime, or None if it is not one.

    Naive datetimes and offset-less text are read in ``zone``.  Numbers are
    epoch milliseconds.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        ts = parse_timestamp(value)
        if ts is None:
            return None
    else:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=zone)
    return ts.astimezone(UTC)


# ---------------------------------------------------------------------------
# Decode / encode
# ---------------------------------------------------------------------------

def decode_cell(raw: Any) -> Scalar:
    """Convert a raw store cell into a Scalar.

    Blank cells become ''.  Date-like text becomes a naive datetime.
    """
    if raw is None:
        return ""
    if isinstance(raw, str):
        ts = parse_timestamp(raw)
        return ts if ts is not None else raw
    if isinstance(raw, SCALAR_TYPES):
        return raw
    return str(raw)


def encode_cell(value: Scalar, zone: tzinfo = UTC) -> str | int | float | bool:
    """Convert a Scalar into something a store can write."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(zone).replace(tzinfo=None)
        return value.strftime(_WRITE_TS_FORMAT)
    return value


# ---------------------------------------------------------------------------
# Equality
# ---------------------------------------------------------------------------

def _as_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        v = value.strip()
        if _NUMBER_RE.match(v):
            return float(v)
    return None


def loose_equals(lhs: Any, rhs: Any) -> bool:
    """Coercing equality: '1' == 1, True == 1, text vs text is exact.

    Blank text never equals a number.
    """
    lhs = "" if lhs is None else lhs
    rhs = "" if rhs is None else rhs
    if isinstance(lhs, datetime) and isinstance(rhs, datetime):
        return lhs == rhs
    if isinstance(lhs, datetime):
        return str(rhs) == lhs.isoformat()
    if isinstance(rhs, datetime):
        return str(lhs) == rhs.isoformat()
    if isinstance(lhs, str) and isinstance(rhs, str):
        return lhs == rhs
    left, right = _as_number(lhs), _as_number(rhs)
    if left is None or right is None:
        return False
    return left == right


def value_equals(stored: Any, incoming: Any, zone: tzinfo = UTC) -> bool:
    """Compare a stored cell with an incoming key value.

    Only the stored side decides the mode: a stored timestamp is compared
    as a UTC instant against the incoming value read as a timestamp;
    everything else falls back to loose_equals.
    """
    if isinstance(stored, datetime):
        incoming_ts = to_instant(incoming, zone)
        if incoming_ts is None:
            return False
        return to_instant(stored, zone) == incoming_ts
    return loose_equals(stored, incoming)
