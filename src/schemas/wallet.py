"""Wallet Pydantic schemas for API responses."""

from pydantic import Field

from src.schemas.common import CamelModel


class WalletTransactionSchema(CamelModel):
    """Schema for a single wallet ledger entry."""

    transaction_id: str = Field(description="Unique transaction identifier")
    type: str = Field(description="Transaction type (wallet-debit or refund)")
    amount: float = Field(description="Transaction amount")
    description: str = Field(description="What the transaction was for")
    status: str = Field(description="Transaction status")
    date: str = Field(description="ISO timestamp of the transaction")
    reference: str | None = Field(default=None, description="Refund-request id, if one was supplied")


class WalletSummary(CamelModel):
    """Balance and most recent ledger entry, returned after refunds."""

    current_balance: float = Field(description="Wallet balance after the operation")
    last_transaction: WalletTransactionSchema | None = Field(
        default=None, description="Most recent transaction in the ledger"
    )

    @classmethod
    def from_wallet(cls, wallet: dict) -> "WalletSummary":
        """Build a summary from a wallets row."""
        transactions = wallet.get("transactions") or []
        return cls(
            current_balance=wallet.get("balance", 0),
            last_transaction=transactions[-1] if transactions else None,
        )
