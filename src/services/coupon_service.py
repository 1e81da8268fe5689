"""Coupon evaluation for checkout pricing."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from src.core.money import amount_to_json, to_amount
from src.core.supabase import get_supabase_client
from src.models.coupon import DiscountType, ListingStatus
from src.models.order import AppliedCoupon

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_coupon_eligible(coupon: dict[str, Any], now: datetime) -> bool:
    """Active listing and a validity end strictly after ``now``."""
    if coupon.get("status") != ListingStatus.ACTIVE.value:
        return False
    expire_on = coupon.get("expire_on")
    if expire_on is None:
        return False
    return _parse_timestamp(expire_on) > now


def calculate_discount(coupon: dict[str, Any], subtotal: Decimal) -> Decimal:
    """Price a coupon against a subtotal.

    Percentage coupons take ``offer_value`` percent of the subtotal, flat
    coupons take ``offer_value``. The result never exceeds the subtotal.
    """
    subtotal = to_amount(subtotal)
    offer_value = to_amount(coupon.get("offer_value"))

    if coupon.get("discount_type") == DiscountType.PERCENTAGE.value:
        discount = subtotal * offer_value / 100
    else:
        discount = offer_value

    return to_amount(max(min(discount, subtotal), Decimal("0")))


class CouponService:
    """Service that resolves and prices coupons. Never mutates a coupon."""

    def __init__(self) -> None:
        """Initialize coupon service with database client."""
        self.client = get_supabase_client()

    async def find_redeemable(self, code: str, now: datetime) -> dict[str, Any] | None:
        """Look up an active, unexpired coupon by code.

        Args:
            code: Coupon code (the coupon's name).
            now: Evaluation time.

        Returns:
            dict | None: Coupon row, or None if no redeemable coupon exists.
        """
        response = (
            self.client.table("coupons")
            .select("*")
            .eq("name", code)
            .eq("status", ListingStatus.ACTIVE.value)
            .gt("expire_on", now.isoformat())
            .maybe_single()
            .execute()
        )
        coupon = response.data if response and response.data else None

        if coupon and not is_coupon_eligible(coupon, now):
            return None
        return coupon

    async def evaluate(self, code: str | None, subtotal: Decimal, now: datetime | None = None) -> Decimal:
        """Discount a coupon code gives on a subtotal.

        An unknown, inactive or expired code yields zero rather than an error
        so checkout is never blocked by a stale coupon.
        """
        applied = await self.resolve(code, subtotal, now)
        return to_amount(applied["discount_amount"]) if applied else Decimal("0.00")

    async def resolve(
        self, code: str | None, subtotal: Decimal, now: datetime | None = None
    ) -> AppliedCoupon | None:
        """Resolve a coupon code once into the snapshot stored on the order.

        Args:
            code: Coupon code, or None when the customer did not enter one.
            subtotal: Order total before discount.
            now: Evaluation time, defaults to the current UTC time.

        Returns:
            AppliedCoupon | None: Snapshot with the priced discount, or None.
        """
        if not code:
            return None

        now = now or datetime.now(timezone.utc)
        coupon = await self.find_redeemable(code, now)
        if not coupon:
            logger.info("Coupon %s not applied (unknown, inactive or expired)", code)
            return None

        discount = calculate_discount(coupon, subtotal)
        logger.info("Coupon %s applied: discount %s on subtotal %s", code, discount, subtotal)
        return AppliedCoupon(
            coupon_id=str(coupon["id"]),
            code=coupon["name"],
            discount_type=coupon["discount_type"],
            discount_amount=amount_to_json(discount),
        )
