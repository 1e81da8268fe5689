"""Order placement, payment settlement and the order status state machine."""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from src.api.middleware.error_handler import (
    ConflictError,
    InsufficientFundsError,
    IntegrityError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from src.core.money import amount_to_json, to_amount
from src.core.supabase import get_supabase_client
from src.models.order import (
    AppliedCoupon,
    OrderCreate,
    OrderLineItem,
    OrderStatus,
    OrderUpdate,
    PaymentMethod,
    PaymentStatus,
)
from src.schemas.order import LineItemInput
from src.services.cart_service import CartService
from src.services.coupon_service import CouponService
from src.services.inventory_service import InventoryService
from src.services.payment_service import PaymentGatewayService
from src.services.user_service import UserService
from src.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"

# Statuses an order may move to from each status. Cancelled and Returned are terminal.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PROCESSING: frozenset(
        {
            OrderStatus.PROCESSING,
            OrderStatus.CONFIRMED,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.CONFIRMED: frozenset(
        {
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.PAYMENT_FAILED: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

# Statuses accepted by the status-update entry point
SETTABLE_STATUSES = frozenset(
    {
        OrderStatus.PROCESSING,
        OrderStatus.CONFIRMED,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.RETURNED,
    }
)


def build_line_items(products: list[LineItemInput]) -> list[OrderLineItem]:
    """Snapshot submitted cart lines into stored order line items."""
    items: list[OrderLineItem] = []
    for product in products:
        if product.quantity <= 0:
            raise ValidationError(f"Quantity for {product.name} must be greater than zero")
        variant = product.variant.model_dump(mode="json")
        variant["price"] = amount_to_json(product.variant.price)
        items.append(
            OrderLineItem(
                product_id=product.product_id,
                variant_id=product.variant_id,
                name=product.name,
                quantity=product.quantity,
                price=variant["price"],
                variant=variant,
            )
        )
    return items


def price_order(total_amount: Decimal, coupon: AppliedCoupon | None) -> tuple[Decimal, Decimal]:
    """Return (discount_amount, final_amount) for an order total.

    The discount never exceeds the total, so the final amount is within
    [0, total_amount].
    """
    total = to_amount(total_amount)
    discount = to_amount(coupon["discount_amount"]) if coupon else Decimal("0.00")
    discount = min(max(discount, Decimal("0.00")), total)
    return discount, max(total - discount, Decimal("0.00"))


class OrderService:
    """Service for checkout, order lookups and status transitions."""

    def __init__(
        self,
        inventory_service: InventoryService | None = None,
        wallet_service: WalletService | None = None,
        coupon_service: CouponService | None = None,
        cart_service: CartService | None = None,
        user_service: UserService | None = None,
        payment_service: PaymentGatewayService | None = None,
    ) -> None:
        """Initialize order service and its collaborators.

        Args:
            inventory_service: Optional stock service for testing.
            wallet_service: Optional wallet ledger for testing.
            coupon_service: Optional coupon evaluator for testing.
            cart_service: Optional cart service for testing.
            user_service: Optional user lookup for testing.
            payment_service: Optional payment gateway adapter for testing.
        """
        self.client = get_supabase_client()
        self.inventory = inventory_service or InventoryService()
        self.wallet = wallet_service or WalletService()
        self.coupons = coupon_service or CouponService()
        self.carts = cart_service or CartService()
        self.users = user_service or UserService()
        self.payments = payment_service or PaymentGatewayService()

    # Checkout

    async def place_order(
        self,
        user_id: str,
        products: list[LineItemInput],
        shipping_address: dict[str, Any],
        payment_method: PaymentMethod,
        total_amount: Decimal,
        coupon_code: str | None = None,
        final_amount: Decimal | None = None,
        gateway_order_id: str | None = None,
        payment_failed: bool = False,
    ) -> dict[str, Any]:
        """Place a cash-on-delivery or online-gateway order.

        Args:
            user_id: Ordering user.
            products: Cart lines.
            shipping_address: Address snapshot.
            payment_method: CashOnDelivery or OnlineGateway.
            total_amount: Subtotal before discount.
            coupon_code: Optional coupon code.
            final_amount: Client-computed payable amount, checked against ours.
            gateway_order_id: Gateway order id of a completed online payment.
            payment_failed: Record a failed online payment attempt instead.

        Returns:
            dict: The stored order.

        Raises:
            ValidationError: Missing fields or wallet payment method.
            InsufficientStockError: A line item exceeds available stock.
            UpstreamError: A stock decrement failed after the order was stored.
        """
        if not user_id or not products or not shipping_address:
            raise ValidationError("All fields are required.")
        if payment_method == PaymentMethod.WALLET:
            raise ValidationError("Wallet payments must use the wallet checkout")
        if payment_method == PaymentMethod.ONLINE_GATEWAY and not payment_failed and not gateway_order_id:
            raise ValidationError("Gateway order id is required for online payments")

        items = build_line_items(products)
        coupon = await self.coupons.resolve(coupon_code, to_amount(total_amount))
        discount, payable = price_order(total_amount, coupon)
        self._check_client_amount(final_amount, payable)

        if payment_failed:
            order_status = OrderStatus.PAYMENT_FAILED
            payment_status = PaymentStatus.FAILED
        else:
            await self.inventory.ensure_available(items)
            order_status = OrderStatus.PROCESSING
            payment_status = (
                PaymentStatus.COMPLETED
                if payment_method == PaymentMethod.ONLINE_GATEWAY
                else PaymentStatus.PENDING
            )

        gateway_reference = None
        if payment_method == PaymentMethod.ONLINE_GATEWAY and gateway_order_id:
            gateway_reference = {"external_order_id": gateway_order_id}

        order = await self._insert_order(
            {
                "id": str(uuid4()),
                "user_id": user_id,
                "products": items,
                "shipping_address": shipping_address,
                "payment_method": payment_method.value,
                "coupon": coupon,
                "total_amount": amount_to_json(total_amount),
                "discount_amount": amount_to_json(discount),
                "final_amount": amount_to_json(payable),
                "order_status": order_status.value,
                "payment_status": payment_status.value,
                "gateway_reference": gateway_reference,
                "return_details": None,
                "order_date": datetime.now(timezone.utc).isoformat(),
            }
        )

        if payment_failed:
            logger.warning("Order %s recorded with failed payment for user %s", order["id"], user_id)
            return order

        await self._settle_stock_and_cart(user_id, items)
        logger.info(
            "Order %s placed for user %s via %s: total %s, discount %s, final %s",
            order["id"],
            user_id,
            payment_method.value,
            total_amount,
            discount,
            payable,
        )
        return order

    async def place_wallet_order(
        self,
        user_id: str,
        products: list[LineItemInput],
        shipping_address: dict[str, Any],
        total_amount: Decimal,
        coupon_code: str | None = None,
        final_amount: Decimal | None = None,
    ) -> dict[str, Any]:
        """Place an order paid from the user's wallet.

        The balance is checked first, then stock; only when both pass is the
        wallet debited and the order stored.

        Raises:
            InsufficientFundsError: Wallet balance below the payable amount.
            InsufficientStockError: A line item exceeds available stock.
        """
        if not user_id or not products or not shipping_address:
            raise ValidationError("All fields are required.")

        items = build_line_items(products)
        coupon = await self.coupons.resolve(coupon_code, to_amount(total_amount))
        discount, payable = price_order(total_amount, coupon)
        self._check_client_amount(final_amount, payable)

        if not await self.wallet.has_sufficient_balance(user_id, payable):
            logger.warning("Wallet checkout rejected for user %s: balance below %s", user_id, payable)
            raise InsufficientFundsError()

        await self.inventory.ensure_available(items)

        order_id = str(uuid4())
        if payable > 0:
            await self.wallet.debit(user_id, payable, f"Order payment using wallet for order {order_id}")

        order = await self._insert_order(
            {
                "id": order_id,
                "user_id": user_id,
                "products": items,
                "shipping_address": shipping_address,
                "payment_method": PaymentMethod.WALLET.value,
                "coupon": coupon,
                "total_amount": amount_to_json(total_amount),
                "discount_amount": amount_to_json(discount),
                "final_amount": amount_to_json(payable),
                "order_status": OrderStatus.PROCESSING.value,
                "payment_status": PaymentStatus.COMPLETED.value,
                "gateway_reference": None,
                "return_details": None,
                "order_date": datetime.now(timezone.utc).isoformat(),
            }
        )

        await self._settle_stock_and_cart(user_id, items)
        logger.info("Wallet order %s placed for user %s: final %s", order_id, user_id, payable)
        return order

    async def create_payment_intent(self, amount: Decimal, currency: str | None = None) -> dict[str, Any]:
        """Create a gateway payment intent for the frontend to complete."""
        return await self.payments.create_intent(amount, currency)

    async def confirm_gateway_payment(
        self, gateway_order_id: str, payment_id: str, signature: str
    ) -> dict[str, Any] | None:
        """Verify a payment callback and mark the matching order as paid.

        Args:
            gateway_order_id: Gateway order id from the callback.
            payment_id: Gateway payment id from the callback.
            signature: Callback signature.

        Returns:
            dict | None: The updated order, or None when no order references
                this gateway order yet (the payment is verified before the
                order is placed).

        Raises:
            IntegrityError: If the signature does not match.
        """
        if not self.payments.verify(gateway_order_id, payment_id, signature):
            raise IntegrityError("Payment verification failed")

        response = (
            self.client.table(ORDERS_TABLE)
            .update(
                {
                    "gateway_reference": {
                        "external_order_id": gateway_order_id,
                        "payment_id": payment_id,
                        "signature": signature,
                    },
                    "payment_status": PaymentStatus.COMPLETED.value,
                }
            )
            .eq("gateway_reference->>external_order_id", gateway_order_id)
            .execute()
        )

        if response.data:
            logger.info("Payment %s verified for order %s", payment_id, response.data[0]["id"])
            return response.data[0]

        logger.info("Payment %s verified; no order references gateway order %s yet", payment_id, gateway_order_id)
        return None

    # Lookups

    async def get_order(self, order_id: str) -> dict[str, Any]:
        """Get an order by ID.

        Raises:
            NotFoundError: If the order does not exist.
        """
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("id", order_id)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Order not found.")
        return response.data

    async def get_orders_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """Get a user's orders, newest first.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = await self.users.get_user(user_id)
        if not user:
            raise NotFoundError("User not found.")

        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("order_date", desc=True)
            .execute()
        )
        return response.data or []

    async def list_orders(self) -> list[dict[str, Any]]:
        """Get every order, newest first."""
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .order("order_date", desc=True)
            .execute()
        )
        return response.data or []

    # Status transitions

    async def update_status(self, order_id: str, status: str) -> tuple[dict[str, Any], dict[str, Any] | None]:
        """Move an order to a new status.

        Returns:
            tuple: (updated order, owner's wallet after a cancellation or
                return, or None).

        Raises:
            ValidationError: Unknown status.
            NotFoundError: Unknown order.
            InvalidTransitionError: Transition not allowed from the current status.
        """
        target = self._parse_status(status)
        if target not in SETTABLE_STATUSES:
            raise ValidationError("Invalid order status")

        order = await self.get_order(order_id)
        updated, _ = await self._apply_transition(order, target)

        wallet = None
        if target in (OrderStatus.CANCELLED, OrderStatus.RETURNED):
            wallet = await self.wallet.get_wallet(order["user_id"])
        return updated, wallet

    async def return_order(
        self,
        order_id: str,
        status: str,
        reason: str | None,
        description: str | None,
    ) -> tuple[dict[str, Any], dict[str, Any] | None]:
        """Return a delivered order.

        Returns:
            tuple: (updated order, wallet if a refund was credited, else None).

        Raises:
            NotFoundError: Unknown order.
            ValidationError: Status is not Returned or reason/description missing.
            InvalidTransitionError: The order is not Delivered.
        """
        order = await self.get_order(order_id)

        if status != OrderStatus.RETURNED.value:
            raise ValidationError("Invalid status for return order")
        if not reason or not description:
            raise ValidationError("Return reason and description are required")

        return_details = {
            "reason": reason,
            "description": description,
            "return_date": datetime.now(timezone.utc).isoformat(),
        }
        return await self._apply_transition(order, OrderStatus.RETURNED, return_details)

    async def refund_order(self, order_id: str, request_id: str | None = None) -> dict[str, Any]:
        """Refund a cancelled, paid online order to the owner's wallet.

        Args:
            order_id: Order to refund.
            request_id: Optional refund-request id; repeating a request with
                the same id does not credit twice.

        Returns:
            dict: The updated wallet.

        Raises:
            NotFoundError: Unknown order.
            ConflictError: Order not eligible for a refund.
        """
        order = await self.get_order(order_id)

        if (
            order["payment_method"] != PaymentMethod.ONLINE_GATEWAY.value
            or order["payment_status"] != PaymentStatus.COMPLETED.value
        ):
            raise ConflictError(
                "Order is not eligible for refund. Only completed online payments can be refunded."
            )
        if order["order_status"] != OrderStatus.CANCELLED.value:
            raise ConflictError("Only cancelled orders can be refunded")

        wallet = await self.process_refund(order, request_id)
        if wallet is None:
            raise ConflictError("Order has no amount to refund")
        return wallet

    async def process_refund(self, order: dict[str, Any], request_id: str | None = None) -> dict[str, Any] | None:
        """Credit an order's final amount to its owner's wallet.

        Not idempotent unless ``request_id`` is supplied: each call without
        one appends another refund transaction.
        The request id is scoped to the order, so the same key sent for two
        orders refunds each once.

        Returns:
            dict | None: The updated wallet, or None for a zero-value order.
        """
        amount = to_amount(order["final_amount"])
        if amount <= 0:
            logger.info("Order %s has nothing to refund", order["id"])
            return None

        wallet = await self.wallet.credit(
            order["user_id"],
            amount,
            f"Refund for order {order['id']}",
            reference=f"{order['id']}:{request_id}" if request_id else None,
        )
        logger.info("Refunded %s for order %s to wallet of user %s", amount, order["id"], order["user_id"])
        return wallet

    async def _apply_transition(
        self,
        order: dict[str, Any],
        target: OrderStatus,
        return_details: dict[str, Any] | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any] | None]:
        """Apply one status transition with its side effects.

        Both the generic status update and the dedicated return request go
        through here, so they restock and refund identically.

        Returns:
            tuple: (updated order, wallet if a refund was credited, else None).
        """
        current = self._parse_status(order["order_status"])
        if target not in ALLOWED_TRANSITIONS[current]:
            if target == OrderStatus.CANCELLED:
                message = f"Cannot cancel the order with current status {current.value}"
            elif target == OrderStatus.RETURNED:
                message = "Only delivered orders can be returned"
            else:
                message = f"Cannot change order status from {current.value} to {target.value}"
            logger.warning("Rejected transition for order %s: %s -> %s", order["id"], current.value, target.value)
            raise InvalidTransitionError(message)

        update: OrderUpdate = {"order_status": target.value}
        refunded_wallet = None
        paid = order["payment_status"] == PaymentStatus.COMPLETED.value

        if target == OrderStatus.CANCELLED:
            await self.inventory.release_items(order["products"])
            if order["payment_method"] == PaymentMethod.ONLINE_GATEWAY.value and paid:
                refunded_wallet = await self.process_refund(order)

        elif target == OrderStatus.RETURNED:
            if return_details:
                update["return_details"] = return_details
            await self.inventory.release_items(order["products"])
            if paid:
                refunded_wallet = await self.process_refund(order)

        elif target == OrderStatus.PROCESSING:
            if current == OrderStatus.PAYMENT_FAILED:
                await self.inventory.ensure_available(order["products"])
                await self.inventory.reserve_items(order["products"])
            update["payment_status"] = PaymentStatus.COMPLETED.value

        elif target == OrderStatus.DELIVERED:
            update["payment_status"] = PaymentStatus.COMPLETED.value

        updated = await self._update_order(order["id"], update)
        logger.info("Order %s status changed: %s -> %s", order["id"], current.value, target.value)
        return updated, refunded_wallet

    # Helpers

    @staticmethod
    def _parse_status(status: str) -> OrderStatus:
        try:
            return OrderStatus(status)
        except ValueError as e:
            raise ValidationError("Invalid order status") from e

    @staticmethod
    def _check_client_amount(final_amount: Decimal | None, payable: Decimal) -> None:
        if final_amount is not None and to_amount(final_amount) != payable:
            logger.warning("Client final amount %s differs from computed %s; using computed", final_amount, payable)

    async def _settle_stock_and_cart(self, user_id: str, items: list[dict[str, Any]]) -> None:
        # Stock decrements and the cart update run together; a failure in one
        # does not undo the others.
        await asyncio.gather(
            self.inventory.reserve_items(items),
            self.carts.clear_cart(user_id),
        )

    async def _insert_order(self, data: OrderCreate) -> dict[str, Any]:
        response = self.client.table(ORDERS_TABLE).insert(data).execute()
        if not response.data:
            raise UpstreamError("Failed to place order")
        return response.data[0]

    async def _update_order(self, order_id: str, data: OrderUpdate) -> dict[str, Any]:
        response = (
            self.client.table(ORDERS_TABLE)
            .update(data)
            .eq("id", order_id)
            .execute()
        )
        if not response.data:
            raise UpstreamError("Failed to update order")
        return response.data[0]
