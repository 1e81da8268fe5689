"""Unit tests for coupon evaluation."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.services.coupon_service import CouponService, calculate_discount, is_coupon_eligible


class TestCalculateDiscount:
    """Tests for calculate_discount."""

    def test_percentage_discount(self) -> None:
        """Test that a percentage coupon takes its share of the subtotal."""
        coupon = {"discount_type": "percentage", "offer_value": 15}

        assert calculate_discount(coupon, Decimal("200")) == Decimal("30.00")

    def test_flat_discount(self) -> None:
        """Test that a flat coupon takes its offer value."""
        coupon = {"discount_type": "flat", "offer_value": 50}

        assert calculate_discount(coupon, Decimal("200")) == Decimal("50.00")

    def test_flat_discount_clamped_to_subtotal(self) -> None:
        """Test that a flat coupon larger than the subtotal is clamped."""
        coupon = {"discount_type": "flat", "offer_value": 500}

        assert calculate_discount(coupon, Decimal("120")) == Decimal("120.00")

    def test_percentage_over_hundred_clamped(self) -> None:
        """Test that an oversized percentage never exceeds the subtotal."""
        coupon = {"discount_type": "percentage", "offer_value": 150}

        assert calculate_discount(coupon, Decimal("80")) == Decimal("80.00")

    def test_fractional_percentage_rounds_to_cents(self) -> None:
        """Test rounding of fractional percentage discounts."""
        coupon = {"discount_type": "percentage", "offer_value": 12.5}

        assert calculate_discount(coupon, Decimal("99.99")) == Decimal("12.50")


class TestIsCouponEligible:
    """Tests for is_coupon_eligible."""

    def test_active_unexpired_coupon_is_eligible(self) -> None:
        now = datetime.now(timezone.utc)
        coupon = {"status": "active", "expire_on": (now + timedelta(days=1)).isoformat()}

        assert is_coupon_eligible(coupon, now) is True

    def test_inactive_coupon_is_not_eligible(self) -> None:
        now = datetime.now(timezone.utc)
        coupon = {"status": "inactive", "expire_on": (now + timedelta(days=1)).isoformat()}

        assert is_coupon_eligible(coupon, now) is False

    def test_coupon_expiring_now_is_not_eligible(self) -> None:
        """Test that validity end must be strictly after now."""
        now = datetime.now(timezone.utc)
        coupon = {"status": "active", "expire_on": now.isoformat()}

        assert is_coupon_eligible(coupon, now) is False

    def test_naive_expiry_treated_as_utc(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        coupon = {"status": "active", "expire_on": "2026-01-02T00:00:00"}

        assert is_coupon_eligible(coupon, now) is True


class TestCouponService:
    """Tests for CouponService lookups against the database."""

    @pytest.mark.asyncio
    async def test_resolves_active_coupon_snapshot(self, seed, coupon_factory) -> None:
        """Test that a valid code resolves into an order coupon snapshot."""
        seed(coupons=[coupon_factory("SAVE10", "percentage", 10)])
        service = CouponService()

        applied = await service.resolve("SAVE10", Decimal("300"))

        assert applied is not None
        assert applied["code"] == "SAVE10"
        assert applied["discount_type"] == "percentage"
        assert applied["discount_amount"] == 30.0

    @pytest.mark.asyncio
    async def test_expired_coupon_gives_no_discount(self, seed, coupon_factory) -> None:
        """Test that an expired coupon is ignored without error."""
        seed(coupons=[coupon_factory("OLD", "flat", 50, expires_in=timedelta(days=-1))])
        service = CouponService()

        assert await service.resolve("OLD", Decimal("300")) is None
        assert await service.evaluate("OLD", Decimal("300")) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_inactive_coupon_gives_no_discount(self, seed, coupon_factory) -> None:
        """Test that an inactive coupon is ignored without error."""
        seed(coupons=[coupon_factory("PAUSED", "flat", 50, status="inactive")])
        service = CouponService()

        assert await service.evaluate("PAUSED", Decimal("300")) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_unknown_code_gives_no_discount(self, fake_db) -> None:
        service = CouponService()

        assert await service.resolve("NOPE", Decimal("300")) is None

    @pytest.mark.asyncio
    async def test_no_code_skips_lookup(self, fake_db) -> None:
        """Test that no database query is made without a code."""
        service = CouponService()

        assert await service.resolve(None, Decimal("300")) is None
        assert fake_db.calls == []

    @pytest.mark.asyncio
    async def test_evaluation_time_is_respected(self, seed, coupon_factory) -> None:
        """Test evaluation against an explicit time after expiry."""
        seed(coupons=[coupon_factory("WEEK", "flat", 20, expires_in=timedelta(days=7))])
        service = CouponService()
        later = datetime.now(timezone.utc) + timedelta(days=8)

        assert await service.evaluate("WEEK", Decimal("100"), now=later) == Decimal("0.00")
        assert await service.evaluate("WEEK", Decimal("100")) == Decimal("20.00")
