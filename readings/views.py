"""
Session endpoints: /api/sessions/...
"""

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from accounts.permissions import api_login_required
from common.http import json_view, parse_json_body
from readings.serializers import reader_profile, session_summary
from readings.services import session_service


@require_http_methods(["POST"])
@api_login_required
@json_view("Failed to start session")
def start(request):
    """POST /api/sessions/start/  {"reader_id": 3, "session_type": "CHAT"}"""
    data = parse_json_body(request)
    session = session_service.start_session(
        request.user,
        data.get("reader_id"),
        data.get("session_type"),
    )
    return JsonResponse({"session": session_summary(session)}, status=201)


@require_http_methods(["POST"])
@api_login_required
@json_view("Failed to end session")
def end(request, session_id):
    """POST /api/sessions/<id>/end/ - settle and return the breakdown."""
    result = session_service.end_session(session_id, request.user)
    return JsonResponse({"success": True, **result.as_dict()})


@require_http_methods(["POST"])
@api_login_required
@json_view("Failed to cancel session")
def cancel(request, session_id):
    session = session_service.cancel_session(session_id, request.user)
    return JsonResponse({"success": True, "session": session_summary(session)})


@require_http_methods(["GET"])
@api_login_required
@json_view("Failed to get session")
def detail(request, session_id):
    session = session_service.get_session_for(session_id, request.user)
    return JsonResponse({"session": session_summary(session)})


@require_http_methods(["GET"])
@api_login_required
@json_view("Failed to get active sessions")
def active(request):
    sessions = session_service.active_sessions_for(request.user)
    return JsonResponse({"sessions": [session_summary(s) for s in sessions]})


@require_http_methods(["PUT", "POST"])
@api_login_required
@json_view("Failed to update status")
def reader_status(request):
    """PUT /api/sessions/reader/status/  {"is_online": true, "is_available": true}"""
    data = parse_json_body(request)
    profile = session_service.set_reader_status(
        request.user,
        data.get("is_online"),
        data.get("is_available"),
    )
    return JsonResponse({"success": True, "reader": reader_profile(profile)})
