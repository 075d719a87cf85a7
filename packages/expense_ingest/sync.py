"""Incremental synchronization from the aggregation API's change feed.

Per external item (one credentialed connection) the sync is a small state
machine::

    Idle -> Paging -> Idle     (feed exhausted, cursor committed)
                   -> Failed   (page error, cursor left at the last good page)

:func:`page_item` runs the paging loop and reports where it stopped; it never
writes the cursor. :func:`sync_owner_report` commits that cursor in one
explicit write per item. Page writes are committed per page, so a failure
mid-page rolls back only that page and the next invocation replays it.

Items are processed sequentially and independently: one failing item neither
blocks nor rolls back another.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.finance import Account
from .ingest.utils import amount_fits
from .logging_setup import get_logger
from .models import (
    FeedAccount,
    FeedPage,
    FeedTransaction,
    ItemSyncOutcome,
    LinkResult,
    PagingOutcome,
    ParsedTransaction,
    SyncReport,
    TransactionSource,
)
from .persistence import commit_item_cursor, insert_feed_transaction, load_item_accounts

logger = get_logger("expense_ingest.sync")

SYNC_WEBHOOK_TYPE = "TRANSACTIONS"
SYNC_WEBHOOK_CODES = frozenset({"DEFAULT_UPDATE", "INITIAL_UPDATE"})


class FeedClient(Protocol):
    def transactions_sync(self, access_token: str, cursor: str | None = None) -> FeedPage: ...


class LinkClient(FeedClient, Protocol):
    def exchange_public_token(self, public_token: str) -> tuple[str, str]: ...

    def get_accounts(self, access_token: str) -> tuple[str | None, list[FeedAccount]]: ...


class FeedStore(Protocol):
    """Storage side of the paging loop."""

    def write(self, account_id: int, external_transaction_id: str, tx: ParsedTransaction) -> bool:
        """Insert one row; ``True`` only when it was new."""
        ...

    def page_done(self) -> None: ...

    def page_failed(self) -> None: ...


class SessionFeedStore:
    """:class:`FeedStore` that commits each fully written page."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def write(self, account_id: int, external_transaction_id: str, tx: ParsedTransaction) -> bool:
        return insert_feed_transaction(
            self.session,
            account_id=account_id,
            external_transaction_id=external_transaction_id,
            tx=tx,
        )

    def page_done(self) -> None:
        self.session.commit()

    def page_failed(self) -> None:
        self.session.rollback()


def feed_to_parsed(ftx: FeedTransaction) -> ParsedTransaction | None:
    """Convert a feed row to our polarity (the feed reports outflows as positive).

    Returns ``None`` when the amount cannot be stored.
    """

    amount = Decimal(0) - (ftx.amount or Decimal(0))
    if not amount_fits(amount):
        return None
    return ParsedTransaction(
        date=ftx.date,
        amount=amount,
        merchant_name=ftx.resolved_merchant(),
        category=ftx.resolved_category(),
        currency=ftx.iso_currency_code,
    )


def page_item(
    client: FeedClient,
    *,
    access_token: str,
    cursor: str | None,
    account_ids: Mapping[str, int],
    store: FeedStore,
) -> PagingOutcome:
    """Page one item's change feed from ``cursor`` until ``has_more`` is false.

    Pending rows, rows for sub-accounts with no local account and rows whose
    amount cannot be stored are skipped.
    The returned cursor only moves past a page after every row of that page
    was written and ``store.page_done()`` succeeded.
    """

    committed = cursor
    added = 0
    while True:
        try:
            page = client.transactions_sync(access_token, committed)
            page_added = 0
            for ftx in page.added:
                if ftx.pending:
                    continue
                account_id = account_ids.get(ftx.account_id)
                if account_id is None:
                    continue
                parsed = feed_to_parsed(ftx)
                if parsed is None:
                    logger.warning(
                        "skipping feed transaction %s: amount %s out of range",
                        ftx.transaction_id,
                        ftx.amount,
                    )
                    continue
                if store.write(account_id, ftx.transaction_id, parsed):
                    page_added += 1
            store.page_done()
        except Exception as e:  # noqa: BLE001 - any page failure stops this item only
            store.page_failed()
            return PagingOutcome(added=added, cursor=committed, failed=True, error=str(e))

        added += page_added
        committed = page.next_cursor or committed
        if not page.has_more:
            return PagingOutcome(added=added, cursor=committed, failed=False)


def _sync_item(
    session: Session,
    client: FeedClient,
    *,
    owner_id: str,
    item_id: str | None,
    accounts: list[Account],
) -> ItemSyncOutcome:
    first = accounts[0]
    access_token = first.access_credential
    start_cursor = first.sync_cursor
    account_ids = {a.external_account_id: a.id for a in accounts if a.external_account_id}
    if not access_token:
        return ItemSyncOutcome(item_id=item_id, added=0, cursor=start_cursor, failed=False)

    outcome = page_item(
        client,
        access_token=access_token,
        cursor=start_cursor,
        account_ids=account_ids,
        store=SessionFeedStore(session),
    )
    if outcome.failed:
        logger.error(
            "sync failed for item %s after %d new transaction(s): %s",
            item_id,
            outcome.added,
            outcome.error,
        )

    if outcome.cursor != start_cursor:
        commit_item_cursor(session, owner_id=owner_id, item_id=item_id, cursor=outcome.cursor)
        session.commit()

    logger.info("item %s: %d new transaction(s)", item_id, outcome.added)
    return ItemSyncOutcome(
        item_id=item_id,
        added=outcome.added,
        cursor=outcome.cursor,
        failed=outcome.failed,
        error=outcome.error,
    )


def sync_owner_report(
    session: Session,
    client: FeedClient,
    *,
    owner_id: str,
    item_id: str | None = None,
) -> SyncReport:
    """Sync every item of ``owner_id`` (or just ``item_id``) and report per item."""

    grouped = load_item_accounts(session, owner_id=owner_id, item_id=item_id)
    outcomes: list[ItemSyncOutcome] = []
    for key, accounts in grouped.items():
        outcomes.append(
            _sync_item(session, client, owner_id=owner_id, item_id=key, accounts=accounts)
        )
    return SyncReport(total_added=sum(o.added for o in outcomes), items=outcomes)


def sync_owner(
    session: Session,
    client: FeedClient,
    *,
    owner_id: str,
    item_id: str | None = None,
) -> int:
    """Return the number of newly added transactions across the synced items."""

    return sync_owner_report(session, client, owner_id=owner_id, item_id=item_id).total_added


# ---------------------------------------------------------------------------
# Linking and webhooks
# ---------------------------------------------------------------------------


def _account_display_name(acct: FeedAccount, fallback: str) -> str:
    return acct.name or acct.official_name or fallback


def link_item(
    session: Session,
    client: LinkClient,
    *,
    owner_id: str,
    public_token: str,
) -> LinkResult:
    """Exchange a public token, upsert the item's accounts, then run a first sync.

    Existing accounts (same owner, item and external account id) get a fresh
    credential, name and mask; new sub-accounts are created.
    """

    access_token, item_id = client.exchange_public_token(public_token)
    institution, feed_accounts = client.get_accounts(access_token)

    for acct in feed_accounts:
        existing = session.execute(
            select(Account).where(
                Account.owner_id == owner_id,
                Account.external_item_id == item_id,
                Account.external_account_id == acct.account_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            existing.access_credential = access_token
            existing.name = _account_display_name(acct, existing.name)
            existing.mask = acct.mask
        else:
            session.add(
                Account(
                    owner_id=owner_id,
                    name=_account_display_name(acct, acct.account_id),
                    mask=acct.mask,
                    source=TransactionSource.AGGREGATOR.value,
                    institution_name=institution or "Unknown",
                    external_item_id=item_id,
                    external_account_id=acct.account_id,
                    access_credential=access_token,
                )
            )
    session.commit()

    total_added = sync_owner(session, client, owner_id=owner_id, item_id=item_id)
    return LinkResult(item_id=item_id, accounts=len(feed_accounts), total_added=total_added)


def handle_webhook(session: Session, client: FeedClient, payload: Mapping[str, Any]) -> bool:
    """Run a sync for transaction-update webhooks; return whether one ran.

    Unrelated webhook types, unknown items and sync errors never raise: the
    sender only needs an acknowledgement.
    """

    webhook_type = payload.get("webhook_type")
    webhook_code = payload.get("webhook_code")
    item_id = payload.get("item_id")
    if webhook_type != SYNC_WEBHOOK_TYPE or webhook_code not in SYNC_WEBHOOK_CODES:
        logger.debug("ignoring webhook %s/%s", webhook_type, webhook_code)
        return False
    if not isinstance(item_id, str) or not item_id:
        return False

    owner_id = session.execute(
        select(Account.owner_id)
        .where(
            Account.external_item_id == item_id,
            Account.source == TransactionSource.AGGREGATOR.value,
        )
        .limit(1)
    ).scalar_one_or_none()
    if owner_id is None:
        logger.debug("webhook for unknown item %s", item_id)
        return False

    try:
        sync_owner(session, client, owner_id=owner_id, item_id=item_id)
    except Exception:  # noqa: BLE001 - webhook delivery must always be acknowledged
        logger.exception("webhook sync failed for item %s", item_id)
        session.rollback()
    return True


__all__ = [
    "FeedClient",
    "FeedStore",
    "SessionFeedStore",
    "feed_to_parsed",
    "handle_webhook",
    "link_item",
    "page_item",
    "sync_owner",
    "sync_owner_report",
]
