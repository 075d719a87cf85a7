"""Header-alias column lookup shared by every statement adapter.

Each semantic field (date, amount, description, ...) is described by an
ordered tuple of header aliases. Aliases are tried in order; for each alias
the first header that contains it (case-insensitive substring) wins, provided
the data row actually has a cell at that position. Otherwise the next alias
is tried. When nothing matches the lookup yields an empty string.
"""

from __future__ import annotations

from collections.abc import Sequence


class ColumnResolver:
    """Resolve semantic fields against one file's header row."""

    __slots__ = ("_headers",)

    def __init__(self, headers: Sequence[str]) -> None:
        self._headers = tuple(h.strip().lower() for h in headers)

    @property
    def headers(self) -> tuple[str, ...]:
        return self._headers

    def _first_header_containing(self, alias: str) -> int | None:
        needle = alias.lower()
        for idx, header in enumerate(self._headers):
            if needle in header:
                return idx
        return None

    def get(self, row: Sequence[str], aliases: Sequence[str]) -> str:
        """Return the trimmed cell for the first alias that resolves, else ``""``."""

        for alias in aliases:
            idx = self._first_header_containing(alias)
            if idx is not None and idx < len(row):
                return row[idx].strip()
        return ""


__all__ = ["ColumnResolver"]
