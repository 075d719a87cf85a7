# ruff: noqa: I001
"""Accounts and transactions with upload/feed uniqueness boundaries.

Revision ID: 0001_accounts_transactions
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_accounts_transactions"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # accounts
    op.create_table(
        "accounts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("institution_name", sa.Text(), nullable=True),
        sa.Column("mask", sa.Text(), nullable=True),
        sa.Column("external_item_id", sa.Text(), nullable=True),
        sa.Column("external_account_id", sa.Text(), nullable=True),
        sa.Column("sync_cursor", sa.Text(), nullable=True),
        sa.Column("access_credential", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("source in ('upload','aggregator')", name="ck_accounts_source"),
    )
    op.create_index(
        "ix_accounts_owner_item", "accounts", ["owner_id", "external_item_id"], unique=False
    )

    # transactions
    op.create_table(
        "transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column(
            "currency_code",
            sa.CHAR(3),
            nullable=False,
            server_default=sa.text("'USD'"),
        ),
        sa.Column("merchant_name", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("dedupe_key", sa.CHAR(64), nullable=True),
        sa.Column("external_transaction_id", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
            name="fk_transactions_account",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "source in ('upload','aggregator')", name="ck_transactions_source"
        ),
        sa.UniqueConstraint(
            "account_id", "dedupe_key", name="uq_transactions_account_dedupe"
        ),
        sa.UniqueConstraint(
            "external_transaction_id", name="uq_transactions_external_transaction_id"
        ),
    )
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_accounts_owner_item", table_name="accounts")
    op.drop_table("accounts")
