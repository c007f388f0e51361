"""
Stripe access point. Initializes the SDK from settings; no other module sets
stripe.api_key or reads the Stripe secrets.
"""
import json
import logging

import stripe
from django.conf import settings

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    """True if STRIPE_SECRET_KEY is set and non-empty."""
    key = getattr(settings, "STRIPE_SECRET_KEY", None) or ""
    return bool(key.strip())


def get_client():
    """
    Return the stripe module with the API key applied,
    e.g. stripe_service.get_client().PaymentIntent.create(...)
    """
    if not is_configured():
        raise RuntimeError("Stripe is not configured: STRIPE_SECRET_KEY is missing or empty.")
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def construct_webhook_event(payload: bytes, sig_header: str) -> dict:
    """
    Verify a webhook payload against STRIPE_WEBHOOK_SECRET and return the
    event as a plain dict.
    Raises ValueError (bad payload or missing secret) or
    stripe.SignatureVerificationError.
    """
    webhook_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or ""
    if not webhook_secret or not sig_header:
        raise ValueError("Missing STRIPE_WEBHOOK_SECRET or Stripe-Signature header")
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    stripe.WebhookSignature.verify_header(payload, sig_header, webhook_secret)
    event = json.loads(payload)
    if not isinstance(event, dict) or "type" not in event:
        raise ValueError("Webhook payload is not a Stripe event")
    return event


def check_api_ok() -> bool:
    """Minimal API call to verify the key works (admin status endpoint)."""
    if not is_configured():
        return False
    try:
        get_client().Balance.retrieve()
    except stripe.StripeError as e:
        logger.warning("check_api_ok: Stripe API check failed: %s", e)
        return False
    return True
