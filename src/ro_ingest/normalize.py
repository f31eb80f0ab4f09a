"""Cell value normalisation — every function here is total and never raises.

Spreadsheet input is uncurated, so a cell that cannot be parsed resolves to
a safe default (``0.0`` for numbers and percentages, ``None`` for dates and
text). Callers that care about data quality pass a
:class:`NormalizationStats` to count the cells that were degraded.
"""

from __future__ import annotations

import math
import re
import warnings
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from numbers import Real
from typing import Any

import pandas as pd

# ── Constants ────────────────────────────────────────────────────

PLACEHOLDER_TOKENS: frozenset[str] = frozenset(
    {"-", "--", "n/a", "na", "null", "undefined", "#n/a", "n/d"}
)

# Empty cells misread as dates by spreadsheet exports.
SENTINEL_DATES: frozenset[str] = frozenset({"1900-01-01", "1900-01-02", "1900-01-03"})

SERIAL_DATE_MIN = 25000
SERIAL_DATE_MAX = 100000
# Serial 1 is 1900-01-01 and serial 60 is the non-existent 1900-02-29.
_SERIAL_EPOCH = date(1900, 1, 1)
_SERIAL_OFFSET_DAYS = 2

_CURRENCY_AND_SPACE_RE = re.compile(r"[€$£\s\u00a0]")
_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ── Degradation counter ──────────────────────────────────────────


@dataclass
class NormalizationStats:
    """Counts non-empty cells that fell back to a default value."""

    numeric: int = 0
    percentage: int = 0
    date: int = 0

    def record(self, kind: str) -> None:
        setattr(self, kind, getattr(self, kind) + 1)

    @property
    def total(self) -> int:
        return self.numeric + self.percentage + self.date

    def to_dict(self) -> dict[str, int]:
        return {"numeric": self.numeric, "percentage": self.percentage, "date": self.date}


def _degrade(stats: NormalizationStats | None, kind: str) -> None:
    if stats is not None:
        stats.record(kind)


# ── Helpers ──────────────────────────────────────────────────────


def is_blank(value: Any) -> bool:
    """Return True for None, NaN/NaT/NA and whitespace-only strings."""
    if value is None or value is pd.NA or value is pd.NaT:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _is_native_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def cell_text(value: Any) -> str:
    """Render a cell as text; integral floats lose their ``.0`` suffix."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _leading_float(text: str) -> float | None:
    match = _FLOAT_PREFIX_RE.match(text.strip())
    if match is None:
        return None
    result = float(match.group())
    if math.isinf(result):
        return None
    return result


# ── Numbers ──────────────────────────────────────────────────────


def parse_numeric(value: Any, stats: NormalizationStats | None = None) -> float:
    """Parse a currency/number cell.

    ``"€116,230.00"`` → ``116230.0`` (comma is a thousands separator when a
    dot is present), ``"€116,23"`` → ``116.23`` (a lone comma is the decimal
    separator). Empty input gives ``0.0``; garbage gives ``0.0`` and is
    counted as degraded.
    """
    if is_blank(value):
        return 0.0

    if _is_native_number(value):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            _degrade(stats, "numeric")
            return 0.0
        return number

    token = _CURRENCY_AND_SPACE_RE.sub("", str(value).strip())
    if "," in token and "." in token:
        token = token.replace(",", "")
    elif "," in token:
        token = token.replace(",", ".", 1)
    token = _NON_NUMERIC_RE.sub("", token)

    parsed = _leading_float(token)
    if parsed is None:
        _degrade(stats, "numeric")
        return 0.0
    return parsed


def parse_percentage(value: Any, stats: NormalizationStats | None = None) -> float:
    """Parse a completion percentage.

    Native numbers ``<= 1`` are fractions and get scaled by 100; larger
    native numbers are already percentages. Strings lose a trailing ``%``.
    """
    if is_blank(value):
        return 0.0

    if _is_native_number(value):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            _degrade(stats, "percentage")
            return 0.0
        return number * 100 if number <= 1 else number

    parsed = _leading_float(str(value).strip().replace("%", "", 1))
    if parsed is None:
        _degrade(stats, "percentage")
        return 0.0
    return parsed


# ── Dates ────────────────────────────────────────────────────────


def _accept_iso(iso: str) -> str | None:
    if iso in SENTINEL_DATES:
        return None
    try:
        parsed = date.fromisoformat(iso)
    except ValueError:
        return None
    if parsed.year <= 1900 or parsed.year >= 2100:
        return None
    return iso


def _serial_to_iso(serial: float) -> str:
    return (_SERIAL_EPOCH + timedelta(days=serial - _SERIAL_OFFSET_DAYS)).isoformat()


def _parse_date_string(text: str, *, dayfirst: bool) -> str | None:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce", dayfirst=dayfirst)
        except (ValueError, TypeError, OverflowError):
            return None
    if pd.isna(parsed):
        return None
    return parsed.date().isoformat()


def parse_date(
    value: Any,
    *,
    dayfirst: bool = False,
    stats: NormalizationStats | None = None,
) -> str | None:
    """Return an ISO ``YYYY-MM-DD`` string, or None.

    Accepts ISO strings, ``datetime``/``date`` objects, spreadsheet serial
    numbers in ``(25000, 100000)`` and free-form date strings. Years outside
    ``(1900, 2100)``, impossible calendar dates such as ``2024-02-30`` and
    the ``1900-01-01/02/03`` sentinels are rejected.
    """
    if is_blank(value):
        return None

    iso: str | None = None
    if isinstance(value, str) and _ISO_DATE_RE.fullmatch(value.strip()):
        iso = value.strip()
    elif isinstance(value, datetime):
        iso = value.date().isoformat()
    elif isinstance(value, date):
        iso = value.isoformat()
    elif _is_native_number(value):
        serial = float(value)
        if SERIAL_DATE_MIN < serial < SERIAL_DATE_MAX:
            iso = _serial_to_iso(serial)
    elif isinstance(value, str):
        iso = _parse_date_string(value.strip(), dayfirst=dayfirst)

    accepted = _accept_iso(iso) if iso is not None else None
    if accepted is None:
        _degrade(stats, "date")
    return accepted


# ── Text ─────────────────────────────────────────────────────────


def clean_string(value: Any) -> str | None:
    """Trim a text cell; placeholders such as ``n/a`` or ``--`` become None."""
    if is_blank(value):
        return None
    cleaned = cell_text(value).strip()
    if cleaned.lower() in PLACEHOLDER_TOKENS:
        return None
    return cleaned or None
