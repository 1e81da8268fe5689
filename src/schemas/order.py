"""Order and payment Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import ConfigDict, Field

from src.models.order import PaymentMethod
from src.schemas.common import CamelModel
from src.schemas.wallet import WalletSummary


class VariantSnapshot(CamelModel):
    """Variant attributes captured at checkout.

    Only ``price`` is interpreted; size, color and any other catalog
    attributes are kept as-is in the order record.
    """

    model_config = ConfigDict(extra="allow")

    price: Decimal = Field(ge=0, description="Unit price of the variant at checkout")


class LineItemInput(CamelModel):
    """Schema for a single cart line submitted at checkout."""

    product_id: str = Field(min_length=1, description="Product identifier")
    variant_id: str = Field(min_length=1, description="Variant identifier")
    name: str = Field(description="Product name")
    quantity: int = Field(gt=0, description="Quantity ordered")
    variant: VariantSnapshot = Field(description="Variant snapshot")


class PlaceOrderRequest(CamelModel):
    """Schema for POST /orders (cash-on-delivery and online gateway)."""

    user_id: str = Field(min_length=1, description="Ordering user")
    products: list[LineItemInput] = Field(min_length=1, description="Line items")
    shipping_address: dict[str, Any] = Field(min_length=1, description="Address snapshot")
    payment_method: PaymentMethod = Field(description="CashOnDelivery or OnlineGateway")
    coupon_code: str | None = Field(default=None, description="Coupon code to apply")
    total_amount: Decimal = Field(ge=0, description="Order subtotal before discount")
    final_amount: Decimal | None = Field(default=None, description="Client-computed payable amount")
    gateway_order_id: str | None = Field(default=None, description="Gateway order id for online payments")
    status: Literal["Payment Failed"] | None = Field(
        default=None, description="Set to 'Payment Failed' to record a failed online payment attempt"
    )


class WalletOrderRequest(CamelModel):
    """Schema for POST /orders/wallet."""

    user_id: str = Field(min_length=1, description="Ordering user")
    products: list[LineItemInput] = Field(min_length=1, description="Line items")
    shipping_address: dict[str, Any] = Field(min_length=1, description="Address snapshot")
    coupon_code: str | None = Field(default=None, description="Coupon code to apply")
    total_amount: Decimal = Field(ge=0, description="Order subtotal before discount")
    final_amount: Decimal | None = Field(default=None, description="Client-computed payable amount")


class GatewayIntentRequest(CamelModel):
    """Schema for POST /orders/gateway-intent."""

    amount: Decimal = Field(gt=0, description="Amount in major currency units")
    currency: str | None = Field(default=None, min_length=3, max_length=3, description="ISO currency code")


class GatewayIntent(CamelModel):
    """Gateway-side payment intent returned to the frontend."""

    id: str = Field(description="Gateway order id (externalOrderId)")
    amount: int = Field(description="Amount in minor currency units")
    currency: str = Field(description="Currency code")
    receipt: str = Field(description="Unique receipt token")
    status: str | None = Field(default=None, description="Gateway-side status")
    client_secret: str | None = Field(default=None, description="Secret the frontend uses to complete payment")


class GatewayIntentResponse(CamelModel):
    """Response for POST /orders/gateway-intent."""

    success: bool
    order: GatewayIntent


class VerifyPaymentRequest(CamelModel):
    """Schema for POST /orders/verify-payment."""

    gateway_order_id: str = Field(min_length=1, description="Gateway order id")
    payment_id: str = Field(min_length=1, description="Gateway payment id")
    signature: str = Field(min_length=1, description="Hex HMAC-SHA256 signature from the callback")


class VerifyPaymentResponse(CamelModel):
    """Response for POST /orders/verify-payment."""

    success: bool
    message: str


class StatusUpdateRequest(CamelModel):
    """Schema for PATCH /orders/{order_id}/status."""

    status: str = Field(min_length=1, description="Target order status")


class ReturnRequest(CamelModel):
    """Schema for PATCH /orders/{order_id}/return."""

    status: str = Field(min_length=1, description="Must be 'Returned'")
    return_reason: str | None = Field(default=None, description="Why the order is returned")
    return_description: str | None = Field(default=None, description="Details of the return")


class OrderLineItemSchema(CamelModel):
    """Schema for a stored order line item."""

    product_id: str
    variant_id: str
    name: str
    quantity: int
    price: float
    variant: dict[str, Any] = Field(default_factory=dict)


class AppliedCouponSchema(CamelModel):
    """Schema for the coupon snapshot stored on an order."""

    coupon_id: str
    code: str
    discount_type: str
    discount_amount: float


class GatewayReferenceSchema(CamelModel):
    """Schema for gateway identifiers stored on an order."""

    external_order_id: str | None = None
    payment_id: str | None = None
    signature: str | None = None


class ReturnDetailsSchema(CamelModel):
    """Schema for return details stored on an order."""

    reason: str
    description: str
    return_date: datetime


class OrderResponse(CamelModel):
    """Schema for order API responses."""

    id: str = Field(description="Order unique identifier")
    user_id: str = Field(description="Owning user")
    products: list[OrderLineItemSchema] = Field(description="Order line items")
    shipping_address: dict[str, Any] = Field(description="Address snapshot")
    payment_method: str = Field(description="Payment method")
    coupon: AppliedCouponSchema | None = Field(default=None, description="Applied coupon snapshot")
    total_amount: float = Field(description="Subtotal before discount")
    discount_amount: float = Field(default=0, description="Discount applied")
    final_amount: float = Field(description="Amount payable")
    order_status: str = Field(description="Order status")
    payment_status: str = Field(description="Payment status")
    gateway_reference: GatewayReferenceSchema | None = Field(default=None, description="Gateway identifiers")
    return_details: ReturnDetailsSchema | None = Field(default=None, description="Return request details")
    order_date: datetime = Field(description="Order creation timestamp")


class PlaceOrderResponse(CamelModel):
    """Response for POST /orders."""

    message: str
    order: OrderResponse


class WalletOrderResponse(CamelModel):
    """Response for POST /orders/wallet."""

    message: str
    order_id: str
    order: OrderResponse


class OrderDetailsResponse(CamelModel):
    """Response for GET /orders/{order_id}."""

    message: str
    order_details: OrderResponse


class UserOrdersResponse(CamelModel):
    """Response for GET /users/{user_id}/orders."""

    message: str
    order_details: list[OrderResponse]


class OrderListResponse(CamelModel):
    """Response for the administrative GET /orders."""

    message: str
    orders: list[OrderResponse]


class StatusUpdateResponse(CamelModel):
    """Response for PATCH /orders/{order_id}/status."""

    message: str
    update_order: OrderResponse
    wallet: WalletSummary | None = None


class ReturnResponse(CamelModel):
    """Response for PATCH /orders/{order_id}/return."""

    message: str
    order: OrderResponse
    wallet: WalletSummary | None = None


class RefundResponse(CamelModel):
    """Response for POST /orders/{order_id}/refund."""

    message: str
    wallet: WalletSummary
