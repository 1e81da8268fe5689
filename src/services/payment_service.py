"""Payment gateway adapter.

Creates gateway-side payment intents and verifies payment callback
signatures. The signature is a hex HMAC-SHA256 of
``"<gateway order id>|<payment id>"`` keyed by the server-held signing
secret. This adapter never touches stock or carts.
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any
from uuid import uuid4

import stripe
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.api.middleware.error_handler import UpstreamError
from src.core.config import get_settings
from src.core.money import to_minor_units
from src.core.stripe import get_stripe

logger = logging.getLogger(__name__)

# Retry configuration for transient gateway errors
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 8


def compute_signature(secret: str, gateway_order_id: str, payment_id: str) -> str:
    """Hex HMAC-SHA256 over ``gateway_order_id|payment_id``."""
    body = f"{gateway_order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


class PaymentGatewayService:
    """Service wrapping the Stripe payment gateway."""

    def __init__(self) -> None:
        """Initialize payment gateway service."""
        self.stripe = get_stripe()
        self.settings = get_settings()

    @retry(
        retry=retry_if_exception_type((stripe.APIConnectionError, stripe.RateLimitError)),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    def _create_payment_intent(self, **params: Any) -> Any:
        """Create a PaymentIntent, retrying transient failures.

        The receipt token doubles as the Stripe idempotency key, so a
        retried request never creates a second intent.
        """
        return self.stripe.PaymentIntent.create(**params)

    async def create_intent(self, amount: Decimal, currency: str | None = None) -> dict[str, Any]:
        """Create a remote payment intent.

        Args:
            amount: Amount in major units; sent to the gateway x100, rounded.
            currency: ISO currency code, defaults to the configured currency.

        Returns:
            dict: id (gateway order id), amount (minor units), currency,
                receipt, status and client_secret.

        Raises:
            UpstreamError: If the gateway is not configured or the call fails.
        """
        if not self.settings.stripe_secret_key:
            raise UpstreamError("Payment initialization failed: payment gateway is not configured")

        currency = (currency or self.settings.default_currency).lower()
        minor_amount = to_minor_units(amount)
        receipt = f"receipt_{uuid4().hex}"

        try:
            intent = self._create_payment_intent(
                amount=minor_amount,
                currency=currency,
                metadata={"receipt": receipt},
                idempotency_key=receipt,
            )
        except stripe.StripeError as e:
            logger.error("Gateway intent creation failed: %s", str(e))
            raise UpstreamError("Payment initialization failed") from e

        logger.info("Created gateway intent %s for %d %s", intent.id, minor_amount, currency)
        return {
            "id": intent.id,
            "amount": minor_amount,
            "currency": currency,
            "receipt": receipt,
            "status": getattr(intent, "status", None),
            "client_secret": getattr(intent, "client_secret", None),
        }

    def verify(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        """Check a payment callback signature.

        Args:
            gateway_order_id: Gateway order id the payment belongs to.
            payment_id: Gateway payment id.
            signature: Hex signature supplied by the callback.

        Returns:
            bool: True if authentic, False if forged.

        Raises:
            UpstreamError: If no signing secret is configured.
        """
        if not self.settings.payment_signing_secret:
            raise UpstreamError("Payment verification failed: signing secret is not configured")

        expected = compute_signature(self.settings.payment_signing_secret, gateway_order_id, payment_id)
        authentic = hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
        if not authentic:
            logger.warning("Forged payment signature for gateway order %s payment %s", gateway_order_id, payment_id)
        return authentic
