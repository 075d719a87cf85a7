"""Ingest utilities shared by the statement adapters and the CLI.

Parsing helpers here never raise on bad input: they return ``None`` so the
caller can drop the row. Only file loading surfaces OS errors.
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from os import PathLike
from pathlib import Path

from ..models import StatementFile

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_AMOUNT_NOISE = re.compile(r"[$€£¥,\s]")
# Stored amounts are NUMERIC(18, 2): at most 16 digits before the point.
AMOUNT_LIMIT = Decimal(10) ** 16
_CENT = Decimal("0.01")


def parse_date(raw: str | None) -> dt.date | None:
    """Parse ``YYYY-MM-DD`` or ``M/D/YY`` / ``M/D/YYYY`` into a date.

    Two-digit years map to ``2000 + yy``. Any other shape, or a shape that
    names a day that does not exist (``2024-02-30``), yields ``None``.
    """

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None

    m = _ISO_DATE.match(s)
    if m:
        year, month, day = (int(g) for g in m.groups())
    else:
        m = _SLASH_DATE.match(s)
        if not m:
            return None
        month, day, year = (int(g) for g in m.groups())
        if year < 100:
            year += 2000
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse a statement amount into a signed ``Decimal``.

    Currency symbols, thousands separators and whitespace are removed first.
    Accounting-style parentheses (``(12.34)``) denote a negative value.
    Returns ``None`` when what remains is not a finite number, or when the
    value does not fit the stored amount column (see :func:`amount_fits`).
    """

    if raw is None:
        return None
    s = _AMOUNT_NOISE.sub("", raw)
    # Decimal() would read "1_000" as 1000.
    if not s or "_" in s:
        return None

    negative = False
    if s.startswith("(") and s.endswith(")") and len(s) > 2:
        negative = True
        s = s[1:-1]

    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not amount_fits(d):
        return None
    return -abs(d) if negative else d


def amount_fits(d: Decimal) -> bool:
    """Return whether ``d`` is finite and below the stored column's magnitude."""

    if not d.is_finite() or abs(d) >= AMOUNT_LIMIT:
        return False
    # 9999999999999999.999 rounds up past the limit.
    return abs(d.quantize(_CENT, rounding=ROUND_HALF_UP)) < AMOUNT_LIMIT


def read_statement_file(path: str | PathLike[str]) -> StatementFile:
    """Load a statement from disk as text, keeping its base name for display."""

    p = Path(path)
    # utf-8-sig strips a BOM written by spreadsheet exports.
    text = p.read_text(encoding="utf-8-sig")
    return StatementFile(name=p.name, text=text)


__all__ = ["AMOUNT_LIMIT", "amount_fits", "parse_date", "parse_amount", "read_statement_file"]
