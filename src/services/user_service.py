"""User lookups needed by the order workflow."""

from typing import Any

from src.core.supabase import get_supabase_client


class UserService:
    """Read-only access to user records."""

    def __init__(self) -> None:
        self.client = get_supabase_client()

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Get a user by ID.

        Args:
            user_id: The user's id.

        Returns:
            dict | None: The user row or None if not found.
        """
        response = (
            self.client.table("users")
            .select("id, name, email")
            .eq("id", user_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None
