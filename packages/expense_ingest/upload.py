"""Upload pipeline: statement files → parsed rows → deduplicated inserts.

All files of one call are parsed before anything is written. If the whole
batch yields no usable row, :class:`NoValidTransactionsError` is raised and no
account is created. Otherwise each file lands in its own new upload account
(or, when ``account_id`` is given, in that existing account) and the result
reports imported/skipped counts per file and in aggregate.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import (
    ParsedTransaction,
    StatementFile,
    StatementFormat,
    UploadFileResult,
    UploadResult,
)
from .normalizers import CSVNormalizer
from .persistence import create_upload_account, get_owned_account, insert_upload_transactions

logger = get_logger("expense_ingest.upload")

DEFAULT_ACCOUNT_NAME = "Uploaded statement"


class NoValidTransactionsError(ValueError):
    """The uploaded batch contained no parseable transaction rows."""


def _account_name_for(base: str, file: StatementFile, multi: bool) -> str:
    if not multi:
        return base
    return f"{base} ({file.name})"


def import_statements(
    session: Session,
    *,
    owner_id: str,
    files: Sequence[StatementFile],
    fmt: StatementFormat | str = StatementFormat.GENERIC,
    account_name: str | None = None,
    account_id: int | None = None,
) -> UploadResult:
    """Parse and store one or more statements for ``owner_id``.

    Parameters
    ----------
    session:
        Active SQLAlchemy session; the caller commits (see ``session_scope``).
    files:
        Statement texts, processed in the given order.
    fmt:
        ``"generic"`` or ``"chase"``; anything else raises ``ValueError``.
    account_name:
        Display name for newly created accounts. With several files the file
        name is appended so each account is distinguishable.
    account_id:
        Import every file into this existing account of the owner instead of
        creating new ones. Rows already stored there count as skipped.
    """

    base_name = (account_name or "").strip() or DEFAULT_ACCOUNT_NAME
    parsed_by_file: list[tuple[StatementFile, list[ParsedTransaction]]] = []
    for file in files:
        rows = CSVNormalizer.normalize(fmt=fmt, csv_text=file.text)
        logger.debug("parsed %d row(s) from %s", len(rows), file.name)
        parsed_by_file.append((file, rows))

    if not any(rows for _, rows in parsed_by_file):
        raise NoValidTransactionsError("No valid transactions found in CSV")

    target = None
    if account_id is not None:
        target = get_owned_account(session, owner_id=owner_id, account_id=account_id)

    multi = len(parsed_by_file) > 1
    results: list[UploadFileResult] = []
    for file, rows in parsed_by_file:
        account = target or create_upload_account(
            session, owner_id=owner_id, name=_account_name_for(base_name, file, multi)
        )
        imported, skipped = insert_upload_transactions(
            session, account_id=account.id, transactions=rows
        )
        logger.info(
            "imported %d transaction(s) from %s into account %s (%d skipped)",
            imported,
            file.name,
            account.id,
            skipped,
        )
        results.append(
            UploadFileResult(
                account_id=account.id,
                name=account.name,
                imported=imported,
                skipped=skipped,
            )
        )

    return UploadResult(
        files=results,
        imported=sum(r.imported for r in results),
        skipped=sum(r.skipped for r in results),
    )


__all__ = ["DEFAULT_ACCOUNT_NAME", "NoValidTransactionsError", "import_statements"]
