"""Statement adapters keyed by :class:`~expense_ingest.models.StatementFormat`.

Each adapter is a plain ``parse_row(row, columns)`` function. Supporting a new
vendor layout means adding a module and one entry to ``ADAPTERS``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeAlias

from ...models import ParsedTransaction, StatementFormat
from ..columns import ColumnResolver
from . import chase_csv, generic_csv

RowAdapter: TypeAlias = Callable[[Sequence[str], ColumnResolver], ParsedTransaction | None]

ADAPTERS: dict[StatementFormat, RowAdapter] = {
    StatementFormat.GENERIC: generic_csv.parse_row,
    StatementFormat.CHASE: chase_csv.parse_row,
}


def get_adapter(fmt: StatementFormat | str) -> RowAdapter:
    """Return the row adapter for ``fmt``; unknown tags raise ``ValueError``."""

    try:
        key = StatementFormat(str(fmt).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(f.value for f in StatementFormat)
        raise ValueError(f"unknown statement format: {fmt!r} (expected one of: {allowed})") from exc
    return ADAPTERS[key]


__all__ = ["ADAPTERS", "RowAdapter", "get_adapter"]
