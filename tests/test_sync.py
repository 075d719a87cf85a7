# ruff: noqa: E402, I001
from __future__ import annotations

import datetime as dt
import sys
from decimal import Decimal
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from sqlalchemy import select

from db.client import session_scope
from db.models.finance import Account, Transaction

from expense_ingest import process_webhook, sync_transactions
from expense_ingest.aggregator_client import AggregatorConnectionError
from expense_ingest.api import link_connection, reset_sync_cursor
from expense_ingest.models import FeedAccount, ParsedTransaction
from expense_ingest.sync import feed_to_parsed, page_item, sync_owner

from tests.helpers.db import (
    account_cursors,
    bootstrap_sqlite_db,
    count_transactions,
    seed_aggregator_item,
)
from tests.helpers.feed_stub import FeedStub, feed_tx, page


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "ledger.sqlite")


@pytest.fixture()
def item(db_url: str) -> dict[str, int]:
    return seed_aggregator_item(
        database_url=db_url,
        owner_id="u1",
        item_id="item-1",
        sub_accounts={"ext-checking": "Checking", "ext-savings": "Savings"},
        access_credential="tok-1",
    )


# ---- Conversion -------------------------------------------------------------------


def test_feed_to_parsed_inverts_sign_and_resolves_labels():
    out = feed_to_parsed(
        feed_tx("t1", amount="12.50", merchant_name=None, name="SQ *BLUE BOTTLE", category=["Food", "Coffee"])
    )
    assert out.amount == Decimal("-12.50")
    assert out.merchant_name == "SQ *BLUE BOTTLE"
    assert out.category == "Food"

    refund = feed_to_parsed(
        feed_tx("t2", amount="-20.00", merchant_name=None, name=None, pfc_primary="INCOME")
    )
    assert refund.amount == Decimal("20.00")
    assert refund.merchant_name == "Unknown"
    assert refund.category == "INCOME"


@pytest.mark.parametrize("amount", ["1e30", "10000000000000000", "-9999999999999999.995"])
def test_feed_to_parsed_rejects_amounts_too_large_to_store(amount):
    assert feed_to_parsed(feed_tx("big", amount=amount)) is None


def test_feed_to_parsed_keeps_largest_storable_amount():
    out = feed_to_parsed(feed_tx("max", amount="9999999999999999.99"))
    assert out is not None
    assert out.amount == Decimal("-9999999999999999.99")


# ---- Paging state machine -----------------------------------------------------------


class _RecordingStore:
    def __init__(self, fail_on_write: int | None = None) -> None:
        self.fail_on_write = fail_on_write
        self.pending: list[str] = []
        self.committed: list[str] = []
        self.rollbacks = 0
        self._writes = 0

    def write(self, account_id: int, external_transaction_id: str, tx: ParsedTransaction) -> bool:
        self._writes += 1
        if self.fail_on_write == self._writes:
            raise RuntimeError("disk full")
        self.pending.append(external_transaction_id)
        return True

    def page_done(self) -> None:
        self.committed.extend(self.pending)
        self.pending = []

    def page_failed(self) -> None:
        self.pending = []
        self.rollbacks += 1


def test_page_item_follows_has_more_and_returns_last_cursor():
    client = FeedStub(
        {
            "tok": [
                page(feed_tx("a"), next_cursor="c1", has_more=True),
                page(feed_tx("b"), feed_tx("c"), next_cursor="c2"),
            ]
        }
    )
    store = _RecordingStore()

    outcome = page_item(
        client, access_token="tok", cursor=None, account_ids={"ext-checking": 1}, store=store
    )

    assert (outcome.added, outcome.cursor, outcome.failed) == (3, "c2", False)
    assert client.calls == [("tok", None), ("tok", "c1")]
    assert store.committed == ["a", "b", "c"]


def test_page_item_mid_page_failure_keeps_cursor_before_failed_page():
    client = FeedStub(
        {
            "tok": [
                page(feed_tx("a"), next_cursor="c1", has_more=True),
                page(feed_tx("b"), feed_tx("c"), next_cursor="c2"),
            ]
        }
    )
    store = _RecordingStore(fail_on_write=3)

    outcome = page_item(
        client, access_token="tok", cursor="c0", account_ids={"ext-checking": 1}, store=store
    )

    assert outcome.failed
    assert outcome.cursor == "c1"
    assert outcome.added == 1
    assert "disk full" in (outcome.error or "")
    assert store.committed == ["a"]
    assert store.rollbacks == 1


def test_page_item_first_page_failure_returns_start_cursor():
    client = FeedStub({"tok": [AggregatorConnectionError("timeout")]})

    outcome = page_item(
        client, access_token="tok", cursor="c7", account_ids={}, store=_RecordingStore()
    )

    assert (outcome.added, outcome.cursor, outcome.failed) == (0, "c7", True)


# ---- Owner sync against the database ---------------------------------------------------


def test_sync_inserts_settled_rows_with_inverted_sign(db_url: str, item: dict[str, int]):
    client = FeedStub(
        {
            "tok-1": [
                page(
                    feed_tx("t1", amount="12.50", merchant_name="Coffee"),
                    feed_tx("t2", account_id="ext-savings", amount="-100.00", merchant_name="Interest"),
                    next_cursor="c1",
                )
            ]
        }
    )

    report = sync_transactions(owner_id="u1", client=client, database_url=db_url)

    assert report.total_added == 2
    assert report.failed_items == []
    with session_scope(database_url=db_url) as session:
        rows = {
            r.external_transaction_id: r
            for r in session.execute(select(Transaction)).scalars().all()
        }
    assert rows["t1"].amount == Decimal("-12.50")
    assert rows["t1"].account_id == item["ext-checking"]
    assert rows["t1"].date == dt.date(2025, 3, 1)
    assert rows["t2"].amount == Decimal("100.00")
    assert rows["t2"].account_id == item["ext-savings"]
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-1") == {"c1"}


def test_pending_and_orphan_rows_add_nothing(db_url: str, item: dict[str, int]):
    client = FeedStub(
        {
            "tok-1": [
                page(
                    feed_tx("p1", pending=True),
                    feed_tx("o1", account_id="ext-unknown"),
                    next_cursor="c1",
                )
            ]
        }
    )

    report = sync_transactions(owner_id="u1", client=client, database_url=db_url)

    assert report.total_added == 0
    assert count_transactions(database_url=db_url) == 0
    # The page completed, so the cursor still advances past it.
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-1") == {"c1"}


def test_oversized_feed_amount_is_skipped_and_cursor_advances(db_url: str, item: dict[str, int]):
    client = FeedStub(
        {
            "tok-1": [
                page(
                    feed_tx("huge", amount="1e30"),
                    feed_tx("t1", amount="4.00"),
                    next_cursor="c1",
                )
            ]
        }
    )

    report = sync_transactions(owner_id="u1", client=client, database_url=db_url)

    assert report.total_added == 1
    assert report.failed_items == []
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-1") == {"c1"}
    with session_scope(database_url=db_url) as session:
        ids = set(session.execute(select(Transaction.external_transaction_id)).scalars())
    assert ids == {"t1"}


def test_rerun_with_unchanged_feed_adds_nothing(db_url: str, item: dict[str, int]):
    first_page = page(feed_tx("t1"), feed_tx("t2"), next_cursor="c1")

    first = sync_transactions(
        owner_id="u1", client=FeedStub({"tok-1": [first_page]}), database_url=db_url
    )
    # Replaying the same page (e.g. a cursor reset) must not duplicate rows.
    second = sync_transactions(
        owner_id="u1", client=FeedStub({"tok-1": [first_page]}), database_url=db_url
    )
    # And the exhausted feed from the committed cursor is empty.
    third_client = FeedStub()
    third = sync_transactions(owner_id="u1", client=third_client, database_url=db_url)

    assert (first.total_added, second.total_added, third.total_added) == (2, 0, 0)
    assert third_client.calls == [("tok-1", "c1")]
    assert count_transactions(database_url=db_url) == 2


def test_failed_item_keeps_last_good_cursor_and_next_run_resumes(db_url: str, item: dict[str, int]):
    client = FeedStub(
        {
            "tok-1": [
                page(feed_tx("t1"), next_cursor="c1", has_more=True),
                AggregatorConnectionError("connection reset"),
            ]
        }
    )

    report = sync_transactions(owner_id="u1", client=client, database_url=db_url)

    assert report.total_added == 1
    assert [f.item_id for f in report.failed_items] == ["item-1"]
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-1") == {"c1"}

    retry = FeedStub({"tok-1": [page(feed_tx("t2"), next_cursor="c2")]})
    again = sync_transactions(owner_id="u1", client=retry, database_url=db_url)

    assert retry.calls == [("tok-1", "c1")]
    assert again.total_added == 1
    assert count_transactions(database_url=db_url) == 2


def test_one_failing_item_does_not_block_another(db_url: str, item: dict[str, int]):
    seed_aggregator_item(
        database_url=db_url,
        owner_id="u1",
        item_id="item-2",
        sub_accounts={"ext-card": "Card"},
        access_credential="tok-2",
    )
    client = FeedStub(
        {
            "tok-1": [AggregatorConnectionError("down")],
            "tok-2": [page(feed_tx("card-1", account_id="ext-card"), next_cursor="k1")],
        }
    )

    with session_scope(database_url=db_url) as session:
        added = sync_owner(session, client, owner_id="u1")

    assert added == 1
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-1") == {None}
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-2") == {"k1"}


def test_sync_can_target_one_item(db_url: str, item: dict[str, int]):
    seed_aggregator_item(
        database_url=db_url,
        owner_id="u1",
        item_id="item-2",
        sub_accounts={"ext-card": "Card"},
        access_credential="tok-2",
    )
    client = FeedStub()

    sync_transactions(owner_id="u1", item_id="item-2", client=client, database_url=db_url)

    assert [token for token, _ in client.calls] == ["tok-2"]


def test_reset_sync_cursor_replays_feed_from_start(db_url: str, item: dict[str, int]):
    sync_transactions(
        owner_id="u1",
        client=FeedStub({"tok-1": [page(feed_tx("t1"), next_cursor="c1")]}),
        database_url=db_url,
    )
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-1") == {"c1"}

    assert reset_sync_cursor(owner_id="u1", database_url=db_url) == 1
    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-1") == {None}

    replay = FeedStub({"tok-1": [page(feed_tx("t1"), feed_tx("t2"), next_cursor="c2")]})
    report = sync_transactions(owner_id="u1", client=replay, database_url=db_url)

    assert replay.calls == [("tok-1", None)]
    assert report.total_added == 1
    assert count_transactions(database_url=db_url) == 2


def test_reset_sync_cursor_can_target_one_item(db_url: str, item: dict[str, int]):
    seed_aggregator_item(
        database_url=db_url,
        owner_id="u1",
        item_id="item-2",
        sub_accounts={"ext-card": "Card"},
        access_credential="tok-2",
        cursor="k1",
    )
    seed_aggregator_item(
        database_url=db_url,
        owner_id="u2",
        item_id="item-3",
        sub_accounts={"ext-other": "Other"},
        access_credential="tok-3",
        cursor="z1",
    )

    assert reset_sync_cursor(owner_id="u1", item_id="item-2", database_url=db_url) == 1
    assert reset_sync_cursor(owner_id="u1", item_id="missing", database_url=db_url) == 0

    assert account_cursors(database_url=db_url, owner_id="u1", item_id="item-2") == {None}
    assert account_cursors(database_url=db_url, owner_id="u2", item_id="item-3") == {"z1"}


def test_sync_without_client_requires_credentials(db_url: str):
    from expense_ingest.config import ConfigurationError

    with pytest.raises(ConfigurationError):
        sync_transactions(owner_id="u1", database_url=db_url)


# ---- Webhooks --------------------------------------------------------------------------


def test_webhook_runs_sync_for_transaction_updates(db_url: str, item: dict[str, int]):
    client = FeedStub({"tok-1": [page(feed_tx("t1"), next_cursor="c1")]})

    ran = process_webhook(
        {"webhook_type": "TRANSACTIONS", "webhook_code": "DEFAULT_UPDATE", "item_id": "item-1"},
        client=client,
        database_url=db_url,
    )

    assert ran is True
    assert count_transactions(database_url=db_url) == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"webhook_type": "ITEM", "webhook_code": "ERROR", "item_id": "item-1"},
        {"webhook_type": "TRANSACTIONS", "webhook_code": "TRANSACTIONS_REMOVED", "item_id": "item-1"},
        {"webhook_type": "TRANSACTIONS", "webhook_code": "INITIAL_UPDATE", "item_id": "unknown"},
        {"webhook_type": "TRANSACTIONS", "webhook_code": "INITIAL_UPDATE"},
    ],
)
def test_webhook_ignores_other_events(db_url: str, item: dict[str, int], payload):
    client = FeedStub()

    assert process_webhook(payload, client=client, database_url=db_url) is False
    assert client.calls == []


def test_webhook_acknowledges_even_when_sync_fails(db_url: str, item: dict[str, int]):
    client = FeedStub({"tok-1": [AggregatorConnectionError("down")]})

    ran = process_webhook(
        {"webhook_type": "TRANSACTIONS", "webhook_code": "DEFAULT_UPDATE", "item_id": "item-1"},
        client=client,
        database_url=db_url,
    )

    assert ran is True
    assert count_transactions(database_url=db_url) == 0


# ---- Linking ---------------------------------------------------------------------------


def test_link_creates_accounts_and_runs_first_sync(db_url: str):
    client = FeedStub(
        {"tok-new": [page(feed_tx("t1", account_id="acc-1"), next_cursor="c1")]},
        exchange=("tok-new", "item-new"),
        accounts=(
            "First Platypus Bank",
            [
                FeedAccount(account_id="acc-1", name="Plaid Checking", mask="0000"),
                FeedAccount(account_id="acc-2", official_name="Plaid Saving", mask=1111),
            ],
        ),
    )

    result = link_connection(
        owner_id="u1", public_token="public-sandbox-1", client=client, database_url=db_url
    )

    assert (result.item_id, result.accounts, result.total_added) == ("item-new", 2, 1)
    with session_scope(database_url=db_url) as session:
        accounts = session.execute(select(Account).order_by(Account.id)).scalars().all()
        assert [(a.name, a.mask, a.institution_name) for a in accounts] == [
            ("Plaid Checking", "0000", "First Platypus Bank"),
            ("Plaid Saving", "1111", "First Platypus Bank"),
        ]
        assert {a.source for a in accounts} == {"aggregator"}
        assert {a.sync_cursor for a in accounts} == {"c1"}


def test_relink_refreshes_credential_instead_of_duplicating(db_url: str, item: dict[str, int]):
    client = FeedStub(
        exchange=("tok-rotated", "item-1"),
        accounts=("Test Bank", [FeedAccount(account_id="ext-checking", name="Checking 2")]),
    )

    link_connection(owner_id="u1", public_token="public-2", client=client, database_url=db_url)

    with session_scope(database_url=db_url) as session:
        checking = session.get(Account, item["ext-checking"])
        assert checking is not None
        assert checking.access_credential == "tok-rotated"
        assert checking.name == "Checking 2"
        assert len(session.execute(select(Account)).scalars().all()) == 2
