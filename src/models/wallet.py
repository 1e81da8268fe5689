"""Wallet model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class TransactionType(str, Enum):
    """Kinds of wallet ledger entries."""

    WALLET_DEBIT = "wallet-debit"
    REFUND = "refund"


class WalletTransaction(TypedDict, total=False):
    """A single append-only ledger entry.

    Stored as part of the wallets.transactions JSONB array. ``reference``
    is only present when the credit was made with a refund-request id.
    """

    transaction_id: str
    type: str
    amount: float
    description: str
    status: str
    date: str
    reference: str


class Wallet(TypedDict):
    """Wallet table row representation. One row per user."""

    id: str
    user_id: str
    balance: float
    transactions: list[WalletTransaction]
    created_at: datetime
    updated_at: datetime
