"""
Balance top-ups through Stripe PaymentIntents.

The client pays on the frontend with the returned client_secret; the
payment_intent.succeeded webhook then calls confirm_topup, which credits the
balance once per PaymentIntent no matter how often Stripe delivers the event.
"""
import logging

import stripe
from django.db import transaction

from accounts.models import CustomUser
from billing import config
from billing.models import Payment
from billing.services.ledger_service import add_balance
from billing.services.stripe_service import get_client, is_configured
from common.exceptions import BelowMinimum, InvalidRequest, PaymentsUnavailable, TopUpError
from common.money import format_cents

logger = logging.getLogger(__name__)

PAYMENT_TYPE_TOPUP = "wallet_topup"


def validate_topup_amount(amount_cents: int) -> None:
    if amount_cents < config.MIN_TOPUP_CENTS:
        raise BelowMinimum(
            f"Minimum top-up amount is ${format_cents(config.MIN_TOPUP_CENTS)}",
            minimum_amount=format_cents(config.MIN_TOPUP_CENTS),
        )
    if amount_cents > config.MAX_TOPUP_CENTS:
        raise InvalidRequest(
            f"Maximum top-up amount is ${format_cents(config.MAX_TOPUP_CENTS)}",
            maximum_amount=format_cents(config.MAX_TOPUP_CENTS),
        )


def create_topup_intent(user: CustomUser, amount_cents: int, attempt_id: str = None) -> dict:
    """
    Create a Stripe PaymentIntent (not confirmed) and a pending Payment row.

    Returns:
        {"payment_intent_id": "pi_xxx", "client_secret": "...", "amount_cents": int}

    Raises:
        BelowMinimum / InvalidRequest for out-of-range amounts,
        PaymentsUnavailable when Stripe is not configured,
        TopUpError when Stripe rejects the request.
    """
    validate_topup_amount(amount_cents)
    if not is_configured():
        raise PaymentsUnavailable()

    client = get_client()
    create_kwargs = dict(
        amount=amount_cents,
        currency=config.TOPUP_CURRENCY,
        confirm=False,
        capture_method="automatic",
        description="Balance top-up",
        metadata={
            "payment_type": PAYMENT_TYPE_TOPUP,
            "user_id": str(user.pk),
            "amount_cents": str(amount_cents),
        },
        payment_method_types=["card"],
    )
    # One key per payment UI attempt so a retried request reuses the same intent
    if (attempt_id or "").strip():
        create_kwargs["idempotency_key"] = f"{PAYMENT_TYPE_TOPUP}:{user.pk}:{attempt_id.strip()[:64]}"
    try:
        intent = client.PaymentIntent.create(**create_kwargs)
    except stripe.StripeError as e:
        logger.warning("create_topup_intent: Stripe rejected user=%s amount=%s: %s", user.pk, amount_cents, e)
        msg = getattr(e, "user_message", None)
        raise TopUpError(msg or "Could not start balance top-up. Please try again.")

    # A retried attempt returns the same intent; an existing row keeps its status
    payment, created = Payment.objects.get_or_create(
        stripe_payment_intent_id=intent.id,
        defaults={
            "user": user,
            "amount_cents": amount_cents,
            "currency": config.TOPUP_CURRENCY,
            "status": Payment.STATUS_PENDING,
        },
    )
    if not created and payment.status == Payment.STATUS_SUCCEEDED:
        logger.info("create_topup_intent: pi=%s already succeeded, reusing", intent.id)
    logger.info("create_topup_intent: user=%s pi=%s amount=%s", user.pk, intent.id, amount_cents)
    return {
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "amount_cents": amount_cents,
    }


@transaction.atomic()
def confirm_topup(payment_intent_id: str, user_id, amount_cents: int, currency: str = None):
    """
    Credit a succeeded top-up. Idempotent: the Payment row is locked and the
    balance is credited only on its first transition to succeeded.
    Returns the Transaction created, or None if already credited.
    """
    if amount_cents <= 0:
        raise TopUpError("Invalid top-up amount.")
    try:
        user = CustomUser.objects.get(pk=user_id)
    except CustomUser.DoesNotExist:
        raise TopUpError(f"User {user_id} not found for top-up.")

    payment, _ = Payment.objects.select_for_update().get_or_create(
        stripe_payment_intent_id=payment_intent_id,
        defaults={
            "user": user,
            "amount_cents": amount_cents,
            "currency": (currency or config.TOPUP_CURRENCY).lower()[:10],
        },
    )
    if payment.status == Payment.STATUS_SUCCEEDED:
        logger.info("confirm_topup: pi=%s already credited, skipping", payment_intent_id)
        return None

    payment.user = user
    payment.amount_cents = amount_cents
    payment.status = Payment.STATUS_SUCCEEDED
    payment.save(update_fields=["user", "amount_cents", "status", "updated_at"])

    tx, new_balance = add_balance(user, amount_cents, f"Added ${format_cents(amount_cents)} to balance")
    logger.info("confirm_topup: pi=%s user=%s credited=%s balance=%s", payment_intent_id, user.pk, amount_cents, new_balance)
    return tx


@transaction.atomic()
def mark_topup_failed(payment_intent_id: str) -> bool:
    """Flag a pending top-up as failed. A succeeded Payment is never downgraded."""
    updated = (
        Payment.objects.filter(stripe_payment_intent_id=payment_intent_id)
        .exclude(status=Payment.STATUS_SUCCEEDED)
        .update(status=Payment.STATUS_FAILED)
    )
    logger.info("mark_topup_failed: pi=%s updated=%s", payment_intent_id, updated)
    return bool(updated)
