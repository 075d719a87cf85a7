"""Public API for the ``expense_ingest`` package.

Each function here owns one database transaction scope (via
``db.client.session_scope``) and delegates to the pipeline modules:

- :func:`import_statement_files`: CSV upload pipeline.
- :func:`sync_transactions`: incremental change-feed sync.
- :func:`reset_sync_cursor`: forget stored cursors so the next sync replays.
- :func:`create_link_token`: start the link flow for one owner.
- :func:`link_connection`: attach a new external connection, then sync it.
- :func:`process_webhook`: react to a transaction-update webhook.

The aggregation client is passed in explicitly; when omitted it is built
from the environment, which raises ``ConfigurationError`` if credentials are
missing.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from os import PathLike
from typing import Any

from db.client import session_scope

from .aggregator_client import AggregatorClient
from .ingest.utils import read_statement_file
from .models import LinkResult, StatementFile, StatementFormat, SyncReport, UploadResult
from .persistence import load_item_accounts, reset_item_cursor
from .sync import FeedClient, LinkClient, handle_webhook, link_item, sync_owner_report
from .upload import import_statements


def import_statement_files(
    paths: Sequence[str | PathLike[str]] | None = None,
    *,
    owner_id: str,
    files: Sequence[StatementFile] | None = None,
    fmt: StatementFormat | str = StatementFormat.GENERIC,
    account_name: str | None = None,
    account_id: int | None = None,
    database_url: str | None = None,
) -> UploadResult:
    """Import statements from disk (``paths``) and/or in-memory ``files``.

    Raises ``NoValidTransactionsError`` when nothing parses; in that case the
    transaction is rolled back and no account remains.
    """

    batch: list[StatementFile] = [read_statement_file(p) for p in paths or ()]
    batch.extend(files or ())
    with session_scope(database_url=database_url) as session:
        return import_statements(
            session,
            owner_id=owner_id,
            files=batch,
            fmt=fmt,
            account_name=account_name,
            account_id=account_id,
        )


def sync_transactions(
    *,
    owner_id: str,
    item_id: str | None = None,
    client: FeedClient | None = None,
    database_url: str | None = None,
) -> SyncReport:
    """Sync one owner's connections; per-item failures appear in the report only."""

    feed = client if client is not None else AggregatorClient.from_env()
    with session_scope(database_url=database_url) as session:
        return sync_owner_report(session, feed, owner_id=owner_id, item_id=item_id)


def reset_sync_cursor(
    *,
    owner_id: str,
    item_id: str | None = None,
    database_url: str | None = None,
) -> int:
    """Clear the cursor of each of the owner's items (or just ``item_id``).

    Returns the number of items reset. Already-stored rows stay; the replayed
    feed rows are skipped by their external ids.
    """

    with session_scope(database_url=database_url) as session:
        items = list(load_item_accounts(session, owner_id=owner_id, item_id=item_id))
        for key in items:
            reset_item_cursor(session, owner_id=owner_id, item_id=key)
    return len(items)


def create_link_token(*, owner_id: str, client: AggregatorClient | None = None) -> str:
    feed = client if client is not None else AggregatorClient.from_env()
    return feed.create_link_token(owner_id)


def link_connection(
    *,
    owner_id: str,
    public_token: str,
    client: LinkClient | None = None,
    database_url: str | None = None,
) -> LinkResult:
    feed = client if client is not None else AggregatorClient.from_env()
    with session_scope(database_url=database_url) as session:
        return link_item(session, feed, owner_id=owner_id, public_token=public_token)


def process_webhook(
    payload: Mapping[str, Any],
    *,
    client: FeedClient | None = None,
    database_url: str | None = None,
) -> bool:
    feed = client if client is not None else AggregatorClient.from_env()
    with session_scope(database_url=database_url) as session:
        return handle_webhook(session, feed, payload)


__all__ = [
    "create_link_token",
    "import_statement_files",
    "link_connection",
    "process_webhook",
    "reset_sync_cursor",
    "sync_transactions",
]
