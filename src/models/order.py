"""Order model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import Any, TypedDict


class OrderStatus(str, Enum):
    """Order lifecycle states stored in orders.order_status."""

    PROCESSING = "Processing"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"
    PAYMENT_FAILED = "Payment Failed"


class PaymentStatus(str, Enum):
    """Payment states stored in orders.payment_status."""

    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


class PaymentMethod(str, Enum):
    """How an order is settled."""

    CASH_ON_DELIVERY = "CashOnDelivery"
    ONLINE_GATEWAY = "OnlineGateway"
    WALLET = "Wallet"


class OrderLineItem(TypedDict):
    """Structure for a single line item in an order.

    Stored as part of the products JSONB array. The variant snapshot is
    copied at order time and never updated from the catalog afterwards.
    """

    product_id: str
    variant_id: str
    name: str
    quantity: int
    price: float
    variant: dict[str, Any]


class AppliedCoupon(TypedDict):
    """Snapshot of the coupon applied to an order."""

    coupon_id: str
    code: str
    discount_type: str
    discount_amount: float


class GatewayReference(TypedDict, total=False):
    """Payment gateway identifiers attached to an online order."""

    external_order_id: str
    payment_id: str
    signature: str


class ReturnDetails(TypedDict):
    """Customer-supplied return information."""

    reason: str
    description: str
    return_date: str


class Order(TypedDict):
    """Order table row representation.

    Represents an order stored in the orders table.
    Maps directly to the database schema.
    """

    id: str
    user_id: str
    products: list[OrderLineItem]
    shipping_address: dict[str, Any]
    payment_method: str
    coupon: AppliedCoupon | None
    total_amount: float
    discount_amount: float
    final_amount: float
    order_status: str
    payment_status: str
    gateway_reference: GatewayReference | None
    return_details: ReturnDetails | None
    order_date: datetime
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new order."""

    id: str
    user_id: str
    products: list[OrderLineItem]
    shipping_address: dict[str, Any]
    payment_method: str
    coupon: AppliedCoupon | None
    total_amount: float
    discount_amount: float
    final_amount: float
    order_status: str
    payment_status: str
    gateway_reference: GatewayReference | None
    return_details: ReturnDetails | None
    order_date: str


class OrderUpdate(TypedDict, total=False):
    """Data that can be updated on an order after creation."""

    order_status: str
    payment_status: str
    gateway_reference: GatewayReference
    return_details: ReturnDetails
