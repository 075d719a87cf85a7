# ruff: noqa: I001
"""Persistence integration for expense_ingest.

Functions here write accounts, transactions and sync cursors to the shared
database owned by ``libs/db``. They rely on the SQLAlchemy ORM models in
``db.models.finance`` and a session provided by ``db.client``. Callers own the
transaction boundary (commit/rollback happens in ``session_scope``).

Uniqueness boundaries:
- Upload rows: ``(account_id, dedupe_key)``.
- Feed rows: ``external_transaction_id`` (global).

Both writers use ``INSERT ... ON CONFLICT DO NOTHING`` so a concurrent or
repeated writer that loses the race is a no-op rather than an error.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.models.finance import Account, Transaction
from .models import ParsedTransaction, TransactionSource
from .normalizers import normalize_transaction

# Keeps multi-row VALUES well under SQLite's bound-parameter limit.
_INSERT_CHUNK = 200


def _to_decimal_2(d: Decimal) -> Decimal:
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"unsupported database dialect for upserts: {dialect!r}")


def compute_dedupe_key(*, account_id: int, tx: ParsedTransaction) -> str:
    """Compute the upload fingerprint: SHA-256 over account, date, amount, merchant.

    The amount is rendered with exactly two decimals so ``-12.5`` and
    ``-12.50`` collide.
    """

    payload = {
        "account": str(account_id),
        "date": tx.date.isoformat(),
        "amount": f"{_to_decimal_2(tx.amount):.2f}",
        "merchant": tx.merchant_name,
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def create_upload_account(session: Session, *, owner_id: str, name: str) -> Account:
    account = Account(owner_id=owner_id, name=name, source=TransactionSource.UPLOAD.value)
    session.add(account)
    session.flush()
    return account


def get_owned_account(session: Session, *, owner_id: str, account_id: int) -> Account:
    """Return the owner's account or raise ``LookupError``."""

    account = session.execute(
        select(Account).where(Account.id == account_id, Account.owner_id == owner_id)
    ).scalar_one_or_none()
    if account is None:
        raise LookupError(f"account {account_id} not found for owner {owner_id!r}")
    return account


# ---------------------------------------------------------------------------
# Upload batch writer
# ---------------------------------------------------------------------------


def insert_upload_transactions(
    session: Session,
    *,
    account_id: int,
    transactions: Iterable[ParsedTransaction],
) -> tuple[int, int]:
    """Insert upload-sourced rows for one account; return ``(imported, skipped)``.

    Rows are deduplicated within the batch first (first occurrence wins), then
    inserted with the per-account fingerprint as the conflict target. Rows
    already stored for the account therefore also count as skipped.
    """

    seen: set[str] = set()
    payloads: list[dict[str, Any]] = []
    total = 0
    for raw in transactions:
        total += 1
        tx = normalize_transaction(raw)
        key = compute_dedupe_key(account_id=account_id, tx=tx)
        if key in seen:
            continue
        seen.add(key)
        payloads.append(
            {
                "account_id": account_id,
                "date": tx.date,
                "amount": _to_decimal_2(tx.amount),
                "currency_code": tx.currency,
                "merchant_name": tx.merchant_name,
                "category": tx.category,
                "source": TransactionSource.UPLOAD.value,
                "dedupe_key": key,
            }
        )

    insert = _insert_for(session)
    imported = 0
    for start in range(0, len(payloads), _INSERT_CHUNK):
        stmt = insert(Transaction).values(payloads[start : start + _INSERT_CHUNK])
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[Transaction.account_id, Transaction.dedupe_key]
        )
        imported += session.execute(stmt).rowcount or 0
    return imported, total - imported


# ---------------------------------------------------------------------------
# Feed idempotent writer
# ---------------------------------------------------------------------------


def insert_feed_transaction(
    session: Session,
    *,
    account_id: int,
    external_transaction_id: str,
    tx: ParsedTransaction,
) -> bool:
    """Insert one feed row keyed by its external id; ``True`` only if created.

    An already-known external id is a silent no-op: stored rows are never
    updated from the feed.
    """

    tx = normalize_transaction(tx)
    insert = _insert_for(session)
    stmt = insert(Transaction).values(
        account_id=account_id,
        date=tx.date,
        amount=_to_decimal_2(tx.amount),
        currency_code=tx.currency,
        merchant_name=tx.merchant_name,
        category=tx.category,
        source=TransactionSource.AGGREGATOR.value,
        external_transaction_id=external_transaction_id,
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=[Transaction.external_transaction_id])
    return (session.execute(stmt).rowcount or 0) > 0


# ---------------------------------------------------------------------------
# Cursor store
# ---------------------------------------------------------------------------


def load_item_accounts(
    session: Session,
    *,
    owner_id: str,
    item_id: str | None = None,
) -> dict[str | None, list[Account]]:
    """Return the owner's syncable accounts grouped by external item id.

    Only aggregator accounts holding an access credential are included. Groups
    and their members keep ascending account-id order.
    """

    stmt = (
        select(Account)
        .where(
            Account.owner_id == owner_id,
            Account.source == TransactionSource.AGGREGATOR.value,
            Account.access_credential.is_not(None),
        )
        .order_by(Account.id)
    )
    if item_id is not None:
        stmt = stmt.where(Account.external_item_id == item_id)

    grouped: dict[str | None, list[Account]] = {}
    for account in session.execute(stmt).scalars():
        grouped.setdefault(account.external_item_id, []).append(account)
    return grouped


def _item_filter(owner_id: str, item_id: str | None) -> Sequence[Any]:
    item_cond = (
        Account.external_item_id.is_(None)
        if item_id is None
        else Account.external_item_id == item_id
    )
    return (Account.owner_id == owner_id, item_cond)


def commit_item_cursor(
    session: Session,
    *,
    owner_id: str,
    item_id: str | None,
    cursor: str | None,
) -> None:
    """Persist ``cursor`` on every account of the item; ``None`` is ignored.

    A ``None`` cursor means no page was ever completed, and writing it would
    roll the stored position back.
    """

    if cursor is None:
        return
    session.execute(
        update(Account)
        .where(*_item_filter(owner_id, item_id))
        .values(sync_cursor=cursor, updated_at=func.now())
    )


def reset_item_cursor(session: Session, *, owner_id: str, item_id: str | None) -> None:
    """Explicitly clear the stored cursor so the next sync replays the feed."""

    session.execute(
        update(Account)
        .where(*_item_filter(owner_id, item_id))
        .values(sync_cursor=None, updated_at=func.now())
    )


__all__ = [
    "compute_dedupe_key",
    "create_upload_account",
    "get_owned_account",
    "insert_upload_transactions",
    "insert_feed_transaction",
    "load_item_accounts",
    "commit_item_cursor",
    "reset_item_cursor",
]
