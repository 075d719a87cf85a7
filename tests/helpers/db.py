"""DB helpers for tests: bootstrap a temporary SQLite DB and seed accounts."""

from __future__ import annotations

import os
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from db.models.finance import Account, Transaction
from sqlalchemy import func, select


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def seed_aggregator_item(
    *,
    database_url: str,
    owner_id: str,
    item_id: str,
    sub_accounts: dict[str, str],
    access_credential: str | None = "access-token",
    cursor: str | None = None,
) -> dict[str, int]:
    """Insert one linked item with its sub-accounts.

    ``sub_accounts`` maps external account ids to display names. Returns the
    external account id -> local account id mapping.
    """

    ids: dict[str, int] = {}
    with session_scope(database_url=database_url) as session:
        for ext_id, name in sub_accounts.items():
            account = Account(
                owner_id=owner_id,
                name=name,
                source="aggregator",
                institution_name="Test Bank",
                external_item_id=item_id,
                external_account_id=ext_id,
                access_credential=access_credential,
                sync_cursor=cursor,
            )
            session.add(account)
            session.flush()
            ids[ext_id] = account.id
    return ids


def account_cursors(*, database_url: str, owner_id: str, item_id: str) -> set[str | None]:
    with session_scope(database_url=database_url) as session:
        rows = session.execute(
            select(Account.sync_cursor).where(
                Account.owner_id == owner_id, Account.external_item_id == item_id
            )
        ).scalars()
        return set(rows)


def count_transactions(*, database_url: str, account_id: int | None = None) -> int:
    with session_scope(database_url=database_url) as session:
        stmt = select(func.count()).select_from(Transaction)
        if account_id is not None:
            stmt = stmt.where(Transaction.account_id == account_id)
        return int(session.execute(stmt).scalar_one())


def count_accounts(*, database_url: str, owner_id: str | None = None) -> int:
    with session_scope(database_url=database_url) as session:
        stmt = select(func.count()).select_from(Account)
        if owner_id is not None:
            stmt = stmt.where(Account.owner_id == owner_id)
        return int(session.execute(stmt).scalar_one())
