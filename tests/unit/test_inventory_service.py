"""Unit tests for InventoryService."""

import pytest

from src.api.middleware.error_handler import InsufficientStockError, UpstreamError
from src.services.inventory_service import InventoryService


def _item(product_id: str, variant_id: str, quantity: int) -> dict:
    return {"product_id": product_id, "variant_id": variant_id, "name": product_id, "quantity": quantity}


class TestTryReserve:
    """Tests for single-variant reservation."""

    @pytest.mark.asyncio
    async def test_reserve_decrements_when_available(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 5})
        service = InventoryService()

        assert await service.try_reserve("p1", "v1", 3) is True
        assert fake_db.variant_quantity("p1", "v1") == 2

    @pytest.mark.asyncio
    async def test_reserve_exact_quantity(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 3})
        service = InventoryService()

        assert await service.try_reserve("p1", "v1", 3) is True
        assert fake_db.variant_quantity("p1", "v1") == 0

    @pytest.mark.asyncio
    async def test_reserve_fails_when_insufficient(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 2})
        service = InventoryService()

        assert await service.try_reserve("p1", "v1", 3) is False
        assert fake_db.variant_quantity("p1", "v1") == 2

    @pytest.mark.asyncio
    async def test_reserve_targets_exact_variant(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 1, ("p1", "v2"): 10})
        service = InventoryService()

        assert await service.try_reserve("p1", "v1", 5) is False
        assert fake_db.variant_quantity("p1", "v2") == 10

    @pytest.mark.asyncio
    async def test_release_increments(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 1})
        service = InventoryService()

        assert await service.release("p1", "v1", 4) is True
        assert fake_db.variant_quantity("p1", "v1") == 5

    @pytest.mark.asyncio
    async def test_release_of_missing_variant_returns_false(self, fake_db) -> None:
        service = InventoryService()

        assert await service.release("gone", "v1", 1) is False


class TestMultiItem:
    """Tests for multi-item availability, reservation and release."""

    @pytest.mark.asyncio
    async def test_ensure_available_raises_on_any_short_item(self, seed, fake_db) -> None:
        """Test that one short item fails the check and nothing is decremented."""
        seed(variants={("p1", "v1"): 5, ("p2", "v1"): 1, ("p3", "v1"): 5})
        service = InventoryService()
        items = [_item("p1", "v1", 2), _item("p2", "v1", 2), _item("p3", "v1", 2)]

        with pytest.raises(InsufficientStockError, match="p2"):
            await service.ensure_available(items)

        assert fake_db.variant_quantity("p1", "v1") == 5
        assert fake_db.variant_quantity("p2", "v1") == 1
        assert fake_db.variant_quantity("p3", "v1") == 5
        assert fake_db.writes() == []

    @pytest.mark.asyncio
    async def test_ensure_available_sums_repeated_variant(self, seed, fake_db) -> None:
        """Test that two lines of 3 for one variant do not pass against stock 5."""
        seed(variants={("p1", "v1"): 5})
        service = InventoryService()

        with pytest.raises(InsufficientStockError, match="p1"):
            await service.ensure_available([_item("p1", "v1", 3), _item("p1", "v1", 3)])

        assert fake_db.variant_quantity("p1", "v1") == 5

    @pytest.mark.asyncio
    async def test_ensure_available_accepts_repeated_variant_within_stock(self, seed) -> None:
        seed(variants={("p1", "v1"): 6})
        service = InventoryService()

        await service.ensure_available([_item("p1", "v1", 3), _item("p1", "v1", 3)])

    @pytest.mark.asyncio
    async def test_ensure_available_rejects_unknown_variant(self, fake_db) -> None:
        service = InventoryService()

        with pytest.raises(InsufficientStockError):
            await service.ensure_available([_item("p1", "missing", 1)])

    @pytest.mark.asyncio
    async def test_reserve_items_decrements_each(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 5, ("p2", "v1"): 4})
        service = InventoryService()

        await service.reserve_items([_item("p1", "v1", 2), _item("p2", "v1", 4)])

        assert fake_db.variant_quantity("p1", "v1") == 3
        assert fake_db.variant_quantity("p2", "v1") == 0

    @pytest.mark.asyncio
    async def test_reserve_items_does_not_roll_back_partial_failure(self, seed, fake_db) -> None:
        """Test that a decrement lost to a race leaves the others applied."""
        seed(variants={("p1", "v1"): 5, ("p2", "v1"): 1})
        service = InventoryService()

        with pytest.raises(UpstreamError, match="p2"):
            await service.reserve_items([_item("p1", "v1", 2), _item("p2", "v1", 3)])

        assert fake_db.variant_quantity("p1", "v1") == 3
        assert fake_db.variant_quantity("p2", "v1") == 1

    @pytest.mark.asyncio
    async def test_reserve_items_reports_storage_failure(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 5})
        fake_db.failing_rpcs.add("decrement_variant_stock")
        service = InventoryService()

        with pytest.raises(UpstreamError):
            await service.reserve_items([_item("p1", "v1", 1)])

    @pytest.mark.asyncio
    async def test_release_items_skips_missing_variants(self, seed, fake_db) -> None:
        """Test that a vanished variant does not stop other items restocking."""
        seed(variants={("p1", "v1"): 0, ("p3", "v1"): 1})
        service = InventoryService()

        restocked = await service.release_items(
            [_item("p1", "v1", 2), _item("p2", "gone", 1), _item("p3", "v1", 3)]
        )

        assert restocked == 2
        assert fake_db.variant_quantity("p1", "v1") == 2
        assert fake_db.variant_quantity("p3", "v1") == 4

    @pytest.mark.asyncio
    async def test_release_items_logs_storage_errors(self, seed, fake_db) -> None:
        seed(variants={("p1", "v1"): 0})
        fake_db.failing_rpcs.add("increment_variant_stock")
        service = InventoryService()

        assert await service.release_items([_item("p1", "v1", 2)]) == 0
        assert fake_db.variant_quantity("p1", "v1") == 0
