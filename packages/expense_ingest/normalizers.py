"""Statement text → canonical transactions, plus the shared normalizer.

:func:`normalize_transaction` is the single convergence point for both
pipelines: every record written by the upload path and the sync path passes
through it, so downstream rows always carry a currency and a merchant label.

:class:`CSVNormalizer` runs the upload-side parse: tokenize each non-blank
line, treat the first line as the header, feed every data row through the
adapter for the chosen format, and drop rows the adapter rejects.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Sequence

from .ingest.adapters import get_adapter
from .ingest.columns import ColumnResolver
from .ingest.tokenizer import tokenize_text
from .logging_setup import get_logger
from .models import (
    DEFAULT_CURRENCY,
    UNKNOWN_MERCHANT,
    ParsedTransaction,
    StatementFormat,
)

logger = get_logger("expense_ingest.normalizers")


def normalize_transaction(tx: ParsedTransaction) -> ParsedTransaction:
    """Apply the shared defaults: ``USD`` currency, ``Unknown`` merchant."""

    currency = (tx.currency or "").strip().upper() or DEFAULT_CURRENCY
    merchant = (tx.merchant_name or "").strip() or UNKNOWN_MERCHANT
    category = (tx.category or "").strip() or None
    if (currency, merchant, category) == (tx.currency, tx.merchant_name, tx.category):
        return tx
    return dataclasses.replace(tx, currency=currency, merchant_name=merchant, category=category)


def normalize_transactions(items: Iterable[ParsedTransaction]) -> Iterator[ParsedTransaction]:
    for tx in items:
        yield normalize_transaction(tx)


def parse_rows(rows: Sequence[Sequence[str]], fmt: StatementFormat | str) -> list[ParsedTransaction]:
    """Parse tokenized rows (header first) with the adapter for ``fmt``.

    Fewer than two rows yields an empty list. Rows whose cells are all blank
    are ignored; rows without a usable date or amount are dropped silently.
    """

    adapter = get_adapter(fmt)
    if len(rows) < 2:
        return []
    columns = ColumnResolver(rows[0])
    out: list[ParsedTransaction] = []
    dropped = 0
    for row in rows[1:]:
        if not row or all(not cell.strip() for cell in row):
            continue
        parsed = adapter(row, columns)
        if parsed is None:
            dropped += 1
            continue
        out.append(parsed)
    if dropped:
        logger.debug("dropped %d unparseable row(s) (format=%s)", dropped, fmt)
    return list(normalize_transactions(out))


class CSVNormalizer:
    """Normalize statement text into canonical transactions.

    Usage
    -----
    rows = CSVNormalizer.normalize(fmt="chase", csv_text=...)  # -> list[ParsedTransaction]
    """

    @staticmethod
    def normalize(*, fmt: StatementFormat | str, csv_text: str) -> list[ParsedTransaction]:
        return parse_rows(tokenize_text(csv_text), fmt)


__all__ = [
    "CSVNormalizer",
    "normalize_transaction",
    "normalize_transactions",
    "parse_rows",
]
