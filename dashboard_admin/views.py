"""
Admin-only platform reporting: /api/admin/...
Reader onboarding and edits happen in the Django admin.
"""

from django.db.models import Q
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from accounts.models import CustomUser
from accounts.permissions import VIEW_PLATFORM_STATS, capability_required
from billing import config
from billing.services.reporting_service import platform_stats
from common.exceptions import InvalidRequest
from common.http import json_view
from common.money import format_cents
from readings.serializers import reader_profile

admin_required = capability_required(VIEW_PLATFORM_STATS)


@require_http_methods(["GET"])
@admin_required
@json_view("Failed to get stats")
def stats(request):
    return JsonResponse(platform_stats())


@require_http_methods(["GET"])
@admin_required
@json_view("Failed to get users")
def users(request):
    """GET /api/admin/users/?role=READER&search=ann"""
    qs = CustomUser.objects.order_by("-date_joined")
    role = (request.GET.get("role") or "").strip().upper()
    if role:
        if role not in {choice for choice, _ in CustomUser.ROLE_CHOICES}:
            raise InvalidRequest("Invalid role")
        qs = qs.filter(role=role)
    search = (request.GET.get("search") or "").strip()
    if search:
        qs = qs.filter(Q(email__icontains=search) | Q(name__icontains=search))

    return JsonResponse({
        "users": [
            {
                "id": u.pk,
                "email": u.email,
                "name": u.name,
                "role": u.role,
                "balance": format_cents(u.balance_cents),
                "is_active": u.is_active,
                "date_joined": u.date_joined.isoformat(),
            }
            for u in qs[:config.ADMIN_LIST_LIMIT]
        ]
    })


@require_http_methods(["GET"])
@admin_required
@json_view("Failed to get readers")
def readers(request):
    qs = (
        CustomUser.objects.filter(role=CustomUser.ROLE_READER)
        .select_related("reader_profile")
        .order_by("-date_joined")[:config.ADMIN_LIST_LIMIT]
    )
    rows = []
    for user in qs:
        profile = getattr(user, "reader_profile", None)
        rows.append({
            "id": user.pk,
            "email": user.email,
            "name": user.name,
            "is_active": user.is_active,
            "balance": format_cents(user.balance_cents),
            "profile": reader_profile(profile) if profile else None,
        })
    return JsonResponse({"readers": rows})
