"""Statement ingestion: tokenizer, header resolution, and format adapters."""

from .columns import ColumnResolver
from .tokenizer import tokenize_line, tokenize_text
from .utils import parse_amount, parse_date, read_statement_file

__all__ = [
    "ColumnResolver",
    "tokenize_line",
    "tokenize_text",
    "parse_amount",
    "parse_date",
    "read_statement_file",
]
