"""Stock reservation against product variants.

Each operation targets a single variant row by (product_id, variant_id).
Decrements go through the ``decrement_variant_stock`` database function,
which only applies when ``available_quantity >= quantity`` and returns the
updated row (or nothing), so two concurrent checkouts cannot oversell one
variant. There is no atomicity across variants: a multi-item reservation
checks every item first and then issues all decrements concurrently, with no
rollback if one of them fails.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from src.api.middleware.error_handler import InsufficientStockError, UpstreamError
from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)

VARIANTS_TABLE = "product_variants"


class InventoryService:
    """Service for per-variant stock checks, reservation and release."""

    def __init__(self) -> None:
        """Initialize inventory service with database client."""
        self.client = get_supabase_client()

    async def is_available(self, product_id: str, variant_id: str, quantity: int) -> bool:
        """Check whether a variant currently has at least ``quantity`` units."""
        response = (
            self.client.table(VARIANTS_TABLE)
            .select("product_id")
            .eq("product_id", product_id)
            .eq("variant_id", variant_id)
            .gte("available_quantity", quantity)
            .maybe_single()
            .execute()
        )
        return bool(response and response.data)

    async def try_reserve(self, product_id: str, variant_id: str, quantity: int) -> bool:
        """Atomically decrement a variant's stock if enough is available.

        Args:
            product_id: Product identifier.
            variant_id: Variant identifier.
            quantity: Units to take. Zero is not special-cased here.

        Returns:
            bool: True if the stock was decremented, False if insufficient.
        """
        response = self.client.rpc(
            "decrement_variant_stock",
            {"p_product_id": product_id, "p_variant_id": variant_id, "p_quantity": quantity},
        ).execute()

        if not response.data:
            logger.warning(
                "Insufficient stock for product %s variant %s (requested %d)",
                product_id,
                variant_id,
                quantity,
            )
            return False

        logger.info("Reserved %d of product %s variant %s", quantity, product_id, variant_id)
        return True

    async def release(self, product_id: str, variant_id: str, quantity: int) -> bool:
        """Return units of a variant to available stock.

        Returns:
            bool: False if the variant no longer exists.
        """
        response = self.client.rpc(
            "increment_variant_stock",
            {"p_product_id": product_id, "p_variant_id": variant_id, "p_quantity": quantity},
        ).execute()

        if not response.data:
            logger.error("Variant not found while restocking: product %s variant %s", product_id, variant_id)
            return False

        logger.info("Released %d of product %s variant %s", quantity, product_id, variant_id)
        return True

    async def ensure_available(self, items: Iterable[dict[str, Any]]) -> None:
        """Check every line item before anything is decremented.

        Lines for the same variant are checked against their combined
        quantity.

        Args:
            items: Line items with product_id, variant_id, name and quantity.

        Raises:
            InsufficientStockError: On the first variant that cannot be satisfied.
        """
        requested: dict[tuple[str, str], dict[str, Any]] = {}
        for item in items:
            key = (item["product_id"], item["variant_id"])
            if key in requested:
                requested[key]["quantity"] += item["quantity"]
            else:
                requested[key] = {"name": item["name"], "quantity": item["quantity"]}

        for (product_id, variant_id), request in requested.items():
            available = await self.is_available(product_id, variant_id, request["quantity"])
            if not available:
                raise InsufficientStockError(
                    f"Insufficient stock for product {request['name']}",
                    details=[
                        {
                            "loc": ["products", product_id, variant_id],
                            "msg": f"Requested {request['quantity']} exceeds available stock",
                            "type": "insufficient_stock",
                        }
                    ],
                )

    async def reserve_items(self, items: list[dict[str, Any]]) -> None:
        """Decrement stock for all line items concurrently.

        Callers run ensure_available() first. A decrement that fails here
        (a concurrent checkout won the race, or storage failed) is not
        rolled back on the other items.

        Raises:
            UpstreamError: If any decrement did not apply.
        """
        results = await asyncio.gather(
            *(self.try_reserve(item["product_id"], item["variant_id"], item["quantity"]) for item in items),
            return_exceptions=True,
        )

        failed = []
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                logger.error(
                    "Stock decrement failed for product %s variant %s: %s",
                    item["product_id"],
                    item["variant_id"],
                    result,
                )
                failed.append(item)
            elif result is False:
                failed.append(item)

        if failed:
            names = ", ".join(item["name"] for item in failed)
            logger.error("Partial stock reservation: %d of %d items failed (%s)", len(failed), len(items), names)
            raise UpstreamError(f"Stock update failed for {names}")

    async def release_items(self, items: list[dict[str, Any]]) -> int:
        """Restock all line items concurrently.

        A missing variant or a failed update is logged and skipped; the
        remaining items are still restocked.

        Returns:
            int: Number of items restocked.
        """
        results = await asyncio.gather(
            *(self.release(item["product_id"], item["variant_id"], item["quantity"]) for item in items),
            return_exceptions=True,
        )

        restocked = 0
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                logger.error(
                    "Stock update error for product %s variant %s: %s",
                    item["product_id"],
                    item["variant_id"],
                    result,
                )
            elif result:
                restocked += 1

        return restocked
