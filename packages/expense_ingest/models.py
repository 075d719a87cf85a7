"""Data models shared by the upload and sync pipelines.

Both pipelines converge on :class:`ParsedTransaction`, the canonical record
handed to the storage writers. Amount polarity is fixed across the package:
negative means money left the account, positive means money entered it.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_CURRENCY = "USD"
UNKNOWN_MERCHANT = "Unknown"


class StatementFormat(StrEnum):
    """Closed set of CSV layouts understood by the upload pipeline."""

    GENERIC = "generic"
    CHASE = "chase"


class TransactionSource(StrEnum):
    """Provenance recorded on every stored transaction."""

    UPLOAD = "upload"
    AGGREGATOR = "aggregator"


# ---------------------------------------------------------------------------
# Canonical record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """A single transaction after format-specific parsing.

    Adapters may leave ``currency`` unset and ``merchant_name`` empty; the
    shared normalizer in :mod:`expense_ingest.normalizers` fills in
    ``"USD"`` and ``"Unknown"`` respectively. ``category`` stays ``None`` when
    the source has no label.
    """

    date: dt.date
    amount: Decimal
    merchant_name: str = ""
    category: str | None = None
    currency: str | None = None


# ---------------------------------------------------------------------------
# Upload pipeline I/O
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StatementFile:
    """Raw text of one uploaded statement, with its display file name."""

    name: str
    text: str


@dataclass(frozen=True, slots=True)
class UploadFileResult:
    account_id: int
    name: str
    imported: int
    skipped: int


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Per-file and aggregate counts for one upload call.

    ``skipped`` counts duplicates only; rows that failed to parse are not
    counted anywhere.
    """

    files: list[UploadFileResult]
    imported: int
    skipped: int


# ---------------------------------------------------------------------------
# Sync pipeline I/O
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PagingOutcome:
    """Result of paging one external item's change feed.

    ``cursor`` is the last position whose page was fully written; it equals
    the starting cursor when the very first page fails.
    """

    added: int
    cursor: str | None
    failed: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ItemSyncOutcome:
    item_id: str | None
    added: int
    cursor: str | None
    failed: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class SyncReport:
    total_added: int
    items: list[ItemSyncOutcome] = field(default_factory=list)

    @property
    def failed_items(self) -> list[ItemSyncOutcome]:
        return [it for it in self.items if it.failed]


@dataclass(frozen=True, slots=True)
class LinkResult:
    item_id: str
    accounts: int
    total_added: int


# ---------------------------------------------------------------------------
# External feed DTOs
# ---------------------------------------------------------------------------


class FeedCategory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    primary: str | None = None
    detailed: str | None = None


class FeedTransaction(BaseModel):
    """One changed transaction as reported by the aggregation API.

    The feed's sign convention is inverted relative to ours: a positive
    ``amount`` means money left the account.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    transaction_id: str
    account_id: str
    date: dt.date
    amount: Decimal | None = None
    iso_currency_code: str | None = None
    merchant_name: str | None = None
    name: str | None = None
    category: list[str] | None = None
    personal_finance_category: FeedCategory | None = None
    pending: bool = False

    @field_validator("category")
    @classmethod
    def _drop_blank_categories(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        items = [s.strip() for s in v if isinstance(s, str) and s.strip()]
        return items or None

    def resolved_merchant(self) -> str:
        return self.merchant_name or self.name or UNKNOWN_MERCHANT

    def resolved_category(self) -> str | None:
        pfc = self.personal_finance_category
        if pfc is not None and pfc.primary:
            return pfc.primary
        if self.category:
            return self.category[0]
        return None


class FeedPage(BaseModel):
    """Top-level schema for one ``/transactions/sync`` page."""

    model_config = ConfigDict(extra="ignore")

    added: list[FeedTransaction] = []
    next_cursor: str
    has_more: bool = False


class FeedAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    account_id: str
    name: str | None = None
    official_name: str | None = None
    mask: str | None = None

    @field_validator("mask", mode="before")
    @classmethod
    def _mask_as_text(cls, v: object) -> str | None:
        return None if v is None else str(v)
