"""Cart operations used at checkout."""

import logging

from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)


class CartService:
    """Service for the per-user shopping cart."""

    def __init__(self) -> None:
        self.client = get_supabase_client()

    async def clear_cart(self, user_id: str) -> bool:
        """Empty a user's cart.

        Args:
            user_id: Owner of the cart.

        Returns:
            bool: True if a cart was emptied, False if the user had none.
        """
        response = (
            self.client.table("carts")
            .update({"items": []})
            .eq("user_id", user_id)
            .execute()
        )
        cleared = bool(response.data)
        if cleared:
            logger.info("Cleared cart for user %s", user_id)
        return cleared
