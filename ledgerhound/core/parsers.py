# ledgerhound/core/parsers.py
"""
Parsers for the locale-formatted fields found in Danish bank exports.

Dates arrive as day-month-year with ``-``, ``/`` or ``.`` separators and
amounts use ``.`` for thousands and ``,`` for decimals. Amounts are returned
as integer minor units (øre).
"""
from __future__ import annotations

import math
import re
from typing import Optional

from ledgerhound.errors import InvalidAmount, InvalidDate

_DATE_SEPARATORS = re.compile(r"[-/.]")
_DIGITS = re.compile(r"[0-9]+")
_TRUTHY = {"ja", "yes", "true", "1"}
_MIN_MINOR_UNITS = -(2 ** 63)
_MAX_MINOR_UNITS = 2 ** 63 - 1


def _date_part(part: str, label: str, raw: str) -> int:
    if not _DIGITS.fullmatch(part):
        raise InvalidDate(raw, f"Invalid {label}")
    return int(part)


def parse_date(value: str) -> str:
    """Convert ``DD-MM-YYYY`` (or ``/``, ``.`` separated) text to ISO ``YYYY-MM-DD``.

    Only the month range and the 1-31 day range are checked; a date such as
    31 February is passed through unchanged.
    """
    raw = (value or "").strip()
    if not raw:
        raise InvalidDate(raw, "Date is missing")

    parts = _DATE_SEPARATORS.split(raw)
    if len(parts) != 3:
        raise InvalidDate(raw, "Invalid date format")

    day = _date_part(parts[0], "day", raw)
    month = _date_part(parts[1], "month", raw)
    year = _date_part(parts[2], "year", raw)

    if not 1 <= month <= 12:
        raise InvalidDate(raw, "Invalid month")
    if not 1 <= day <= 31:
        raise InvalidDate(raw, "Invalid day")

    return f"{year:04d}-{month:02d}-{day:02d}"


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def parse_amount(value: str) -> int:
    """Convert ``-1.234,56`` style text to minor units (``-123456``).

    The conversion goes through a float, so magnitudes beyond roughly 2**53
    øre lose precision.
    """
    raw = (value or "").strip()
    if not raw:
        raise InvalidAmount(raw, "Amount is missing")

    cleaned = raw.replace(".", "").replace(",", ".")
    if "_" in cleaned:
        raise InvalidAmount(raw)
    try:
        amount = float(cleaned)
    except ValueError as exc:
        raise InvalidAmount(raw) from exc
    if not math.isfinite(amount):
        raise InvalidAmount(raw)

    minor_units = _round_half_away(amount * 100)
    # Stored and hashed as a signed 64-bit integer.
    if not _MIN_MINOR_UNITS <= minor_units <= _MAX_MINOR_UNITS:
        raise InvalidAmount(raw, "Amount out of range")
    return minor_units


def parse_reconciled(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY
