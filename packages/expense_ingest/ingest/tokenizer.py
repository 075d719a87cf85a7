"""Line-oriented CSV/TSV tokenizer for user-uploaded statements.

Bank exports are loosely specified: some are comma separated, some tab
separated, some mix both. Instead of the strict RFC 4180 reader, statements
are split into physical lines and each line is tokenized on its own:

- a ``"`` toggles quoted mode (the quote itself is not kept);
- a comma or tab outside quoted mode ends the current field;
- every field is trimmed of surrounding whitespace.

Malformed quoting never raises: an unterminated quote swallows the rest of
the line into the current field.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

_SEPARATORS = frozenset({",", "\t"})
_LINE_BREAK = re.compile(r"\r?\n")


def tokenize_line(line: str) -> list[str]:
    """Split one line (newline already stripped) into trimmed fields."""

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch in _SEPARATORS and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    fields.append("".join(current).strip())
    return fields


def iter_lines(text: str) -> Iterator[str]:
    """Yield the non-blank physical lines of ``text``.

    Accepts ``\\n`` and ``\\r\\n`` endings and drops a leading UTF-8 BOM.
    """

    if text.startswith("\ufeff"):
        text = text[1:]
    for line in _LINE_BREAK.split(text):
        if line.strip():
            yield line


def tokenize_text(text: str) -> list[list[str]]:
    """Tokenize every non-blank line of a statement."""

    return [tokenize_line(line) for line in iter_lines(text)]


__all__ = ["tokenize_line", "iter_lines", "tokenize_text"]
