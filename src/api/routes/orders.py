"""Order, payment and refund API routes."""

from typing import Annotated

from fastapi import APIRouter, Header, status

from src.models.order import OrderStatus
from src.schemas.order import (
    GatewayIntent,
    GatewayIntentRequest,
    GatewayIntentResponse,
    OrderDetailsResponse,
    OrderListResponse,
    OrderResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    RefundResponse,
    ReturnRequest,
    ReturnResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
    UserOrdersResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WalletOrderRequest,
    WalletOrderResponse,
)
from src.schemas.wallet import WalletSummary
from src.services.order_service import OrderService


router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "/gateway-intent",
    response_model=GatewayIntentResponse,
    summary="Create gateway payment intent",
    description="Creates a payment intent with the gateway before the customer pays online.",
)
async def create_gateway_intent(data: GatewayIntentRequest) -> GatewayIntentResponse:
    """Create a gateway payment intent.

    Args:
        data: Amount in major units and optional currency.

    Returns:
        GatewayIntentResponse: The gateway-side intent.

    Raises:
        UpstreamError: 500 if the gateway call fails.
    """
    service = OrderService()
    intent = await service.create_payment_intent(data.amount, data.currency)
    return GatewayIntentResponse(success=True, order=GatewayIntent(**intent))


@router.post(
    "/verify-payment",
    response_model=VerifyPaymentResponse,
    summary="Verify gateway payment",
    description="Verifies the payment callback signature and marks the matching order as paid.",
)
async def verify_payment(data: VerifyPaymentRequest) -> VerifyPaymentResponse:
    """Verify a payment callback signature.

    Raises:
        IntegrityError: 400 if the signature does not match.
    """
    service = OrderService()
    await service.confirm_gateway_payment(data.gateway_order_id, data.payment_id, data.signature)
    return VerifyPaymentResponse(success=True, message="Payment verified successfully")


@router.post(
    "",
    response_model=PlaceOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Places a cash-on-delivery or online-gateway order, or records a failed online payment.",
)
async def place_order(data: PlaceOrderRequest) -> PlaceOrderResponse:
    """Place an order.

    Raises:
        ValidationError: 400 on missing fields.
        InsufficientStockError: 400 if any line item is out of stock.
    """
    service = OrderService()
    payment_failed = data.status == OrderStatus.PAYMENT_FAILED.value

    order = await service.place_order(
        user_id=data.user_id,
        products=data.products,
        shipping_address=data.shipping_address,
        payment_method=data.payment_method,
        total_amount=data.total_amount,
        coupon_code=data.coupon_code,
        final_amount=data.final_amount,
        gateway_order_id=data.gateway_order_id,
        payment_failed=payment_failed,
    )

    message = "Order created with payment failure" if payment_failed else "Order placed successfully."
    return PlaceOrderResponse(message=message, order=OrderResponse(**order))


@router.post(
    "/wallet",
    response_model=WalletOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order paid from wallet",
)
async def place_wallet_order(data: WalletOrderRequest) -> WalletOrderResponse:
    """Place an order paid from the user's wallet.

    Raises:
        InsufficientFundsError: 400 if the wallet balance is too low.
        InsufficientStockError: 400 if any line item is out of stock.
    """
    service = OrderService()
    order = await service.place_wallet_order(
        user_id=data.user_id,
        products=data.products,
        shipping_address=data.shipping_address,
        total_amount=data.total_amount,
        coupon_code=data.coupon_code,
        final_amount=data.final_amount,
    )
    return WalletOrderResponse(
        message="Order placed successfully using wallet.",
        order_id=order["id"],
        order=OrderResponse(**order),
    )


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Administrative listing of every order, newest first.",
)
async def list_orders() -> OrderListResponse:
    """List all orders."""
    service = OrderService()
    orders = await service.list_orders()
    return OrderListResponse(
        message="Orders found successfully.",
        orders=[OrderResponse(**order) for order in orders],
    )


@router.get(
    "/{order_id}",
    response_model=OrderDetailsResponse,
    summary="Get order by ID",
)
async def get_order(order_id: str) -> OrderDetailsResponse:
    """Get a single order.

    Raises:
        NotFoundError: 404 if the order does not exist.
    """
    service = OrderService()
    order = await service.get_order(order_id)
    return OrderDetailsResponse(
        message="Order details fetched successfully.",
        order_details=OrderResponse(**order),
    )


@router.patch(
    "/{order_id}/status",
    response_model=StatusUpdateResponse,
    summary="Update order status",
    description="Moves an order through its lifecycle. Cancellation and return restock items and may refund.",
)
async def update_order_status(order_id: str, data: StatusUpdateRequest) -> StatusUpdateResponse:
    """Update an order's status.

    Raises:
        ValidationError: 400 for an unrecognized status.
        InvalidTransitionError: 400 for a transition not allowed from the current status.
        NotFoundError: 404 if the order does not exist.
    """
    service = OrderService()
    order, wallet = await service.update_status(order_id, data.status)
    return StatusUpdateResponse(
        message="Order status updated successfully",
        update_order=OrderResponse(**order),
        wallet=WalletSummary.from_wallet(wallet) if wallet else None,
    )


@router.patch(
    "/{order_id}/return",
    response_model=ReturnResponse,
    summary="Return delivered order",
)
async def return_order(order_id: str, data: ReturnRequest) -> ReturnResponse:
    """Return a delivered order with a reason and description.

    Raises:
        ValidationError: 400 if reason or description is missing.
        InvalidTransitionError: 400 unless the order is Delivered.
    """
    service = OrderService()
    order, wallet = await service.return_order(
        order_id,
        status=data.status,
        reason=data.return_reason,
        description=data.return_description,
    )
    return ReturnResponse(
        message="Return processed successfully",
        order=OrderResponse(**order),
        wallet=WalletSummary.from_wallet(wallet) if wallet else None,
    )


@router.post(
    "/{order_id}/refund",
    response_model=RefundResponse,
    summary="Refund cancelled online order",
    description=(
        "Credits a cancelled, paid online order to the owner's wallet. "
        "Send an Idempotency-Key header to make retries safe."
    ),
)
async def refund_order(
    order_id: str,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> RefundResponse:
    """Refund an order to the owner's wallet.

    Raises:
        ConflictError: 400 unless the order is a cancelled, completed gateway payment.
        NotFoundError: 404 if the order does not exist.
    """
    service = OrderService()
    wallet = await service.refund_order(order_id, request_id=idempotency_key)
    return RefundResponse(message="Refund processed successfully!", wallet=WalletSummary.from_wallet(wallet))


users_router = APIRouter(prefix="/users", tags=["orders"])


@users_router.get(
    "/{user_id}/orders",
    response_model=UserOrdersResponse,
    summary="List a user's orders",
    description="Returns the user's orders, newest first.",
)
async def list_user_orders(user_id: str) -> UserOrdersResponse:
    """List orders for a user.

    Raises:
        NotFoundError: 404 if the user does not exist.
    """
    service = OrderService()
    orders = await service.get_orders_for_user(user_id)
    return UserOrdersResponse(
        message="Order details fetched successfully!",
        order_details=[OrderResponse(**order) for order in orders],
    )
