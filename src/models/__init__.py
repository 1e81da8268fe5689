"""Database model type definitions."""

from src.models.coupon import Coupon, DiscountType, ListingStatus
from src.models.order import (
    AppliedCoupon,
    Order,
    OrderCreate,
    OrderLineItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from src.models.product import ProductVariant
from src.models.wallet import TransactionType, Wallet, WalletTransaction

__all__ = [
    "AppliedCoupon",
    "Coupon",
    "DiscountType",
    "ListingStatus",
    "Order",
    "OrderCreate",
    "OrderLineItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "ProductVariant",
    "TransactionType",
    "Wallet",
    "WalletTransaction",
]
