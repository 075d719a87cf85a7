"""Adapter for generic bank/card statement CSVs.

Expected headers are loose: anything containing ``date``, a description-like
column (``description``, ``memo``, ``merchant``, ``name``), and either a
single ``amount`` column or a ``debit``/``credit`` split.

Sign policy
-----------
- With a debit/credit split, a parseable debit becomes an expense (negative)
  and a parseable credit becomes income (positive). The debit wins whenever
  it parses, even as zero.
- Otherwise the single amount column is used, and positive values are
  flipped: statements without sign information list expenses as positive.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from ...models import ParsedTransaction
from ..columns import ColumnResolver
from ..utils import parse_amount, parse_date

DATE_ALIASES = ("date", "transaction date")
DESCRIPTION_ALIASES = ("description", "memo", "merchant", "name")
AMOUNT_ALIASES = ("amount", "debit", "credit")
DEBIT_ALIASES = ("debit",)
CREDIT_ALIASES = ("credit",)
CATEGORY_ALIASES = ("category",)


def _signed_amount(row: Sequence[str], columns: ColumnResolver) -> Decimal | None:
    debit = parse_amount(columns.get(row, DEBIT_ALIASES))
    credit = parse_amount(columns.get(row, CREDIT_ALIASES))
    if debit is not None:
        return Decimal(0) - abs(debit)
    if credit is not None:
        return abs(credit)

    amount = parse_amount(columns.get(row, AMOUNT_ALIASES))
    if amount is None:
        return None
    return -amount if amount > 0 else amount


def parse_row(row: Sequence[str], columns: ColumnResolver) -> ParsedTransaction | None:
    """Map one tokenized data row; ``None`` when date or amount is unusable."""

    date = parse_date(columns.get(row, DATE_ALIASES))
    if date is None:
        return None
    amount = _signed_amount(row, columns)
    if amount is None:
        return None
    return ParsedTransaction(
        date=date,
        amount=amount,
        merchant_name=columns.get(row, DESCRIPTION_ALIASES),
        category=columns.get(row, CATEGORY_ALIASES) or None,
    )


__all__ = ["parse_row"]
