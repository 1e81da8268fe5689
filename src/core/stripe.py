"""Stripe client configuration and singleton."""

import logging

import stripe

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_stripe() -> bool:
    """Configure Stripe SDK with API key from settings.

    This should be called once at application startup.
    If Stripe keys are not configured, gateway payments will fail with clear errors
    while cash-on-delivery and wallet checkouts keep working.

    Returns:
        bool: True if both the gateway key and the callback signing secret are set.
    """
    settings = get_settings()
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
    else:
        logger.warning("Stripe secret key not configured. Online payments will not work.")

    if not settings.payment_signing_secret:
        logger.warning("Payment signing secret not configured. Payment verification will fail.")

    return settings.is_payment_gateway_configured


def get_stripe() -> stripe:
    """Get the configured Stripe module.

    Returns:
        stripe: The Stripe module with API key configured.

    Note:
        Stripe SDK uses module-level configuration, so this returns
        the stripe module itself. Ensure configure_stripe() has been
        called before using Stripe API calls.
    """
    return stripe
