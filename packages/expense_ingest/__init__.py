"""Public interface for the ``expense_ingest`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only re-exports.
"""

from .api import (
    create_link_token,
    import_statement_files,
    link_connection,
    process_webhook,
    reset_sync_cursor,
    sync_transactions,
)
from .models import (
    FeedPage,
    FeedTransaction,
    ParsedTransaction,
    StatementFile,
    StatementFormat,
    SyncReport,
    TransactionSource,
    UploadFileResult,
    UploadResult,
)
from .normalizers import CSVNormalizer
from .upload import NoValidTransactionsError

__all__ = [
    # API
    "create_link_token",
    "import_statement_files",
    "link_connection",
    "process_webhook",
    "reset_sync_cursor",
    "sync_transactions",
    "CSVNormalizer",
    "NoValidTransactionsError",
    # Models / types
    "FeedPage",
    "FeedTransaction",
    "ParsedTransaction",
    "StatementFile",
    "StatementFormat",
    "SyncReport",
    "TransactionSource",
    "UploadFileResult",
    "UploadResult",
]
