"""
Caller and reader-directory endpoints: /api/user/... and /api/readers/...
"""

from django.db.models import Q
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from accounts.models import CustomUser, ReaderProfile
from accounts.permissions import api_login_required
from billing import config
from billing.services.reporting_service import transaction_row
from common.exceptions import ReaderNotFound
from common.http import json_view
from common.money import format_cents
from readings.models import ReadingSession
from readings.serializers import reader_profile, session_summary


def _public_readers():
    return ReaderProfile.objects.select_related("user").filter(
        user__role=CustomUser.ROLE_READER,
        user__is_active=True,
    )


def user_payload(user) -> dict:
    data = {
        "id": user.pk,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "balance": format_cents(user.balance_cents),
        "date_joined": user.date_joined.isoformat(),
    }
    profile = ReaderProfile.objects.filter(user=user).first()
    if profile is not None:
        data["reader_profile"] = reader_profile(profile)
    return data


@require_http_methods(["GET"])
@api_login_required
@json_view("Failed to get user")
def me(request):
    request.user.refresh_from_db(fields=["balance_cents"])
    return JsonResponse({"user": user_payload(request.user)})


@require_http_methods(["GET"])
@api_login_required
@json_view("Failed to get balance")
def balance(request):
    balance_cents = CustomUser.objects.values_list("balance_cents", flat=True).get(pk=request.user.pk)
    return JsonResponse({"balance": format_cents(balance_cents)})


@require_http_methods(["GET"])
@api_login_required
@json_view("Failed to get transactions")
def transactions(request):
    rows = request.user.transactions.order_by("-created_at", "-id")[:config.HISTORY_LIMIT]
    return JsonResponse({"transactions": [transaction_row(tx) for tx in rows]})


@require_http_methods(["GET"])
@api_login_required
@json_view("Failed to get sessions")
def sessions(request):
    rows = (
        ReadingSession.objects.select_related("client", "reader")
        .filter(Q(client=request.user) | Q(reader=request.user))
        .order_by("-created_at")[:config.HISTORY_LIMIT]
    )
    return JsonResponse({"sessions": [session_summary(s) for s in rows]})


@require_http_methods(["GET"])
@json_view("Failed to get readers")
def reader_list(request):
    """GET /api/readers/ - public; ?online=true limits to online readers."""
    readers = _public_readers()
    if request.GET.get("online", "").lower() in ("1", "true", "yes"):
        readers = readers.filter(is_online=True)
    return JsonResponse({"readers": [reader_profile(p) for p in readers]})


@require_http_methods(["GET"])
@json_view("Failed to get reader")
def reader_detail(request, reader_id):
    profile = _public_readers().filter(user_id=reader_id).first()
    if profile is None:
        raise ReaderNotFound()
    return JsonResponse({"reader": reader_profile(profile)})
