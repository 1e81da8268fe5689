"""Product variant model type definitions for database operations."""

from datetime import datetime
from typing import Any, TypedDict


class ProductVariant(TypedDict):
    """product_variants table row representation.

    The catalog owns everything but ``available_quantity``, which is only
    changed through the decrement/increment stock functions.
    """

    product_id: str
    variant_id: str
    name: str
    price: float
    attributes: dict[str, Any]
    available_quantity: int
    updated_at: datetime
