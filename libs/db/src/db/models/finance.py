from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only auto-increments ``INTEGER PRIMARY KEY`` (rowid) columns.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: accounts
# ---------------------------


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)
    institution_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    mask: Mapped[str | None] = mapped_column(String, nullable=True)
    # Groups sub-accounts that share one external connection (credential).
    external_item_id: Mapped[str | None] = mapped_column(String, nullable=True)
    external_account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Opaque change-feed position; NULL until the first page is committed.
    sync_cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_credential: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    transactions: Mapped[list[Transaction]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("source in ('upload','aggregator')", name="ck_accounts_source"),
        Index("ix_accounts_owner_item", "owner_id", "external_item_id"),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        _PK,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    # Negative = money leaving the account, positive = money entering.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency_code: Mapped[str] = mapped_column(CHAR(3), nullable=False, server_default="USD")
    merchant_name: Mapped[str] = mapped_column(Text, nullable=False)
    # ``category`` and ``notes`` are the only fields edited after creation.
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    # Upload fingerprint, unique per account.
    dedupe_key: Mapped[str | None] = mapped_column(CHAR(64), nullable=True)
    # Feed transaction id, unique across the whole system.
    external_transaction_id: Mapped[str | None] = mapped_column(
        String, nullable=True, unique=True
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    account: Mapped[Account] = relationship(back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("account_id", "dedupe_key", name="uq_transactions_account_dedupe"),
        CheckConstraint("source in ('upload','aggregator')", name="ck_transactions_source"),
        Index("ix_transactions_account_date", "account_id", "date"),
    )


__all__ = [
    "Base",
    "Account",
    "Transaction",
]
