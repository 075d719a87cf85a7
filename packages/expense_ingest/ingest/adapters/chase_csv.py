"""Adapter for Chase-style card and checking exports.

Two header layouts are seen in the wild::

    Details, Posting Date, Description, Amount, Type, Balance, ...
    Transaction Date, Post Date, Description, Category, Type, Amount, Memo

Both carry one amount column plus a ``Type`` column. A type containing
``credit`` (any case) marks income and forces the amount positive; any other
row with a positive amount is flipped to the expense (negative) convention.
Posting date is preferred over transaction date.
"""

from __future__ import annotations

from collections.abc import Sequence

from ...models import ParsedTransaction
from ..columns import ColumnResolver
from ..utils import parse_amount, parse_date

DATE_ALIASES = ("posting date", "post date", "transaction date", "date")
DESCRIPTION_ALIASES = ("description", "memo")
AMOUNT_ALIASES = ("amount",)
TYPE_ALIASES = ("type", "debit/credit")
CATEGORY_ALIASES = ("category",)


def parse_row(row: Sequence[str], columns: ColumnResolver) -> ParsedTransaction | None:
    date = parse_date(columns.get(row, DATE_ALIASES))
    if date is None:
        return None
    amount = parse_amount(columns.get(row, AMOUNT_ALIASES))
    if amount is None:
        return None

    if "credit" in columns.get(row, TYPE_ALIASES).lower():
        amount = abs(amount)
    elif amount > 0:
        amount = -amount

    return ParsedTransaction(
        date=date,
        amount=amount,
        merchant_name=columns.get(row, DESCRIPTION_ALIASES),
        category=columns.get(row, CATEGORY_ALIASES) or None,
    )


__all__ = ["parse_row"]
