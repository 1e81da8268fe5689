"""Coupon model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class DiscountType(str, Enum):
    """How a coupon's offer value is applied."""

    PERCENTAGE = "percentage"
    FLAT = "flat"


class ListingStatus(str, Enum):
    """Whether a coupon may currently be redeemed."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Coupon(TypedDict):
    """Coupon table row representation.

    Maintained by the admin catalog; the order workflow only reads it.
    """

    id: str
    name: str
    discount_type: str
    offer_value: float
    expire_on: datetime
    status: str
