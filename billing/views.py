"""
Billing views: payouts, reader reporting, balance top-ups and the Stripe webhook.
"""
import logging

import stripe
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.permissions import VIEW_EARNINGS, VIEW_PLATFORM_STATS, api_login_required, capability_required
from billing import config
from billing.services import reporting_service
from billing.services.payout_service import request_payout
from billing.services.stripe_service import check_api_ok, construct_webhook_event, is_configured
from billing.services.topup_service import PAYMENT_TYPE_TOPUP, confirm_topup, create_topup_intent, mark_topup_failed
from common.exceptions import TopUpError
from common.http import json_view, parse_json_body
from common.money import format_cents, to_cents

logger = logging.getLogger(__name__)


@require_http_methods(["POST"])
@api_login_required
@json_view("Failed to request payout")
def payout_request(request):
    """
    POST /api/payouts/request/  {"amount": 25.00, "method": "STRIPE"}
    201: {"success": true, "payout": {id, amount, method, status, remaining_balance}}
    """
    data = parse_json_body(request)
    amount_cents = to_cents(data.get("amount"))
    method = data.get("method") or data.get("payout_method") or config.DEFAULT_PAYOUT_METHOD
    result = request_payout(request.user, amount_cents, method=str(method))
    return JsonResponse({"success": True, "payout": result.as_dict()}, status=201)


@require_http_methods(["GET"])
@capability_required(VIEW_EARNINGS)
@json_view("Failed to get earnings")
def payout_earnings(request):
    return JsonResponse(reporting_service.reader_earnings(request.user))


@require_http_methods(["GET"])
@capability_required(VIEW_EARNINGS)
@json_view("Failed to get payout history")
def payout_history(request):
    return JsonResponse(reporting_service.payout_history(request.user))


@require_http_methods(["GET"])
@capability_required(VIEW_EARNINGS)
@json_view("Failed to get analytics")
def payout_analytics(request):
    return JsonResponse(reporting_service.reader_analytics(request.user))


@require_http_methods(["GET"])
@capability_required(VIEW_PLATFORM_STATS)
@json_view("Failed to get payouts")
def payout_all(request):
    """GET /api/payouts/all/ - admin only, latest payouts across all readers."""
    return JsonResponse(reporting_service.all_payouts())


@require_http_methods(["POST"])
@api_login_required
@json_view("Failed to create top-up")
def topup(request):
    """
    POST /api/billing/topup/  {"amount": 20.00, "attempt_id": "..."}
    Returns the PaymentIntent client_secret; the balance is credited by the webhook.
    """
    data = parse_json_body(request)
    amount_cents = to_cents(data.get("amount"))
    intent = create_topup_intent(request.user, amount_cents, attempt_id=data.get("attempt_id"))
    return JsonResponse(
        {
            "client_secret": intent["client_secret"],
            "payment_intent_id": intent["payment_intent_id"],
            "amount": format_cents(intent["amount_cents"]),
        },
        status=201,
    )


@require_http_methods(["GET"])
@capability_required(VIEW_PLATFORM_STATS)
def stripe_status(request):
    """GET /api/billing/stripe-status/ - admin only: is Stripe configured and reachable."""
    configured = is_configured()
    return JsonResponse({
        "stripe_configured": configured,
        "api_ok": check_api_ok() if configured else False,
    })


@csrf_exempt
@require_http_methods(["POST"])
def stripe_webhook(request):
    """
    POST /api/billing/stripe-webhook/
    Verifies the signature, handles payment_intent.succeeded and
    payment_intent.payment_failed for balance top-ups. Idempotent.
    """
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    try:
        event = construct_webhook_event(request.body, sig_header)
    except ValueError as e:
        logger.warning("stripe_webhook: invalid payload or missing secret: %s", e)
        return HttpResponse(status=400)
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe_webhook: signature verification failed: %s", e)
        return HttpResponse(status=400)

    if event["type"] == "payment_intent.succeeded":
        _handle_payment_intent_succeeded(event["data"]["object"])
    elif event["type"] == "payment_intent.payment_failed":
        _handle_payment_intent_failed(event["data"]["object"])
    else:
        logger.debug("stripe_webhook: ignoring event type=%s", event["type"])

    return HttpResponse(status=200)


def _handle_payment_intent_succeeded(obj):
    pi_id = obj.get("id")
    metadata = obj.get("metadata") or {}
    if not pi_id or metadata.get("payment_type") != PAYMENT_TYPE_TOPUP:
        logger.info("stripe_webhook: payment_intent.succeeded pi=%s is not a top-up, ignoring", pi_id)
        return
    user_id = metadata.get("user_id")
    try:
        confirm_topup(pi_id, int(user_id), obj.get("amount") or 0, currency=obj.get("currency"))
    except (TypeError, ValueError):
        logger.warning("stripe_webhook: top-up pi=%s has invalid metadata.user_id=%r", pi_id, user_id)
    except TopUpError as e:
        logger.warning("stripe_webhook: top-up pi=%s not credited: %s", pi_id, e.message)


def _handle_payment_intent_failed(obj):
    pi_id = obj.get("id")
    metadata = obj.get("metadata") or {}
    if not pi_id or metadata.get("payment_type") != PAYMENT_TYPE_TOPUP:
        return
    mark_topup_failed(pi_id)
