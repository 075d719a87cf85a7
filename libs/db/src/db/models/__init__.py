"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the account/transaction models used by ``expense_ingest``.
"""

from .finance import Account, Base, Transaction

__all__ = [
    "Base",
    "Account",
    "Transaction",
]
