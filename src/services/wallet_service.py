"""Wallet ledger: per-user balance with an append-only transaction log.

A wallet is created lazily by the first credit. Every credit or debit
appends exactly one transaction; entries are never edited or removed.
The balance update and the append are a single row write, but the
sufficiency check before a debit is a read followed by a write, so two
concurrent debits on one wallet can both pass it.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from src.api.middleware.error_handler import InsufficientFundsError, UpstreamError, ValidationError
from src.core.money import amount_to_json, to_amount
from src.core.supabase import get_supabase_client
from src.models.wallet import TransactionType, WalletTransaction

logger = logging.getLogger(__name__)

WALLETS_TABLE = "wallets"


def _new_transaction(
    transaction_type: TransactionType,
    amount: Decimal,
    description: str,
    reference: str | None = None,
) -> WalletTransaction:
    transaction = WalletTransaction(
        transaction_id=str(uuid4()),
        type=transaction_type.value,
        amount=amount_to_json(amount),
        description=description,
        status="completed",
        date=datetime.now(timezone.utc).isoformat(),
    )
    if reference:
        transaction["reference"] = reference
    return transaction


class WalletService:
    """Service for wallet credits, debits and lookups."""

    def __init__(self) -> None:
        """Initialize wallet service with database client."""
        self.client = get_supabase_client()

    async def get_wallet(self, user_id: str) -> dict[str, Any] | None:
        """Get a user's wallet.

        Args:
            user_id: The owning user's id.

        Returns:
            dict | None: The wallet row or None if the user has none yet.
        """
        response = (
            self.client.table(WALLETS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_balance(self, user_id: str) -> Decimal:
        """Current balance, zero for a user without a wallet."""
        wallet = await self.get_wallet(user_id)
        return to_amount(wallet["balance"]) if wallet else Decimal("0.00")

    async def has_sufficient_balance(self, user_id: str, amount: Decimal) -> bool:
        """Check whether the wallet covers ``amount``."""
        return await self.get_balance(user_id) >= to_amount(amount)

    async def credit(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        transaction_type: TransactionType = TransactionType.REFUND,
        reference: str | None = None,
    ) -> dict[str, Any]:
        """Add funds to a wallet, creating it if needed.

        Args:
            user_id: The owning user's id.
            amount: Positive amount to add.
            description: Ledger description.
            transaction_type: Ledger entry type.
            reference: Optional request id. If a transaction with the same
                reference is already in the log, the wallet is returned
                unchanged.

        Returns:
            dict: The updated wallet row.
        """
        amount = to_amount(amount)
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        wallet = await self.get_wallet(user_id)
        transaction = _new_transaction(transaction_type, amount, description, reference)

        if wallet is None:
            response = (
                self.client.table(WALLETS_TABLE)
                .insert(
                    {
                        "user_id": user_id,
                        "balance": amount_to_json(amount),
                        "transactions": [transaction],
                    }
                )
                .execute()
            )
            if not response.data:
                raise UpstreamError("Failed to create wallet")
            logger.info("Created wallet for user %s with opening credit %s", user_id, amount)
            return response.data[0]

        transactions = list(wallet.get("transactions") or [])
        if reference and any(t.get("reference") == reference for t in transactions):
            logger.info("Credit with reference %s already applied to wallet of user %s", reference, user_id)
            return wallet

        new_balance = to_amount(wallet["balance"]) + amount
        updated = await self._write(wallet, new_balance, [*transactions, transaction])
        logger.info("Credited %s to wallet of user %s (%s); balance %s", amount, user_id, description, new_balance)
        return updated

    async def debit(self, user_id: str, amount: Decimal, description: str) -> dict[str, Any]:
        """Take funds from a wallet.

        Args:
            user_id: The owning user's id.
            amount: Positive amount to take.
            description: Ledger description.

        Returns:
            dict: The updated wallet row.

        Raises:
            InsufficientFundsError: If there is no wallet or the balance is
                below ``amount``. Nothing is written in that case.
        """
        amount = to_amount(amount)
        if amount < 0:
            raise ValidationError("Debit amount must not be negative")

        wallet = await self.get_wallet(user_id)
        balance = to_amount(wallet["balance"]) if wallet else Decimal("0.00")
        if wallet is None or balance < amount:
            logger.warning("Insufficient wallet balance for user %s: balance %s, requested %s", user_id, balance, amount)
            raise InsufficientFundsError()

        new_balance = balance - amount
        if new_balance < 0:
            raise InsufficientFundsError()

        transactions = list(wallet.get("transactions") or [])
        transaction = _new_transaction(TransactionType.WALLET_DEBIT, amount, description)
        updated = await self._write(wallet, new_balance, [*transactions, transaction])
        logger.info("Debited %s from wallet of user %s (%s); balance %s", amount, user_id, description, new_balance)
        return updated

    async def _write(
        self, wallet: dict[str, Any], balance: Decimal, transactions: list[dict[str, Any]]
    ) -> dict[str, Any]:
        response = (
            self.client.table(WALLETS_TABLE)
            .update({"balance": amount_to_json(balance), "transactions": transactions})
            .eq("id", wallet["id"])
            .execute()
        )
        if not response.data:
            raise UpstreamError("Failed to update wallet")
        return response.data[0]
