"""
Capability checks. CustomUser.role is the only role source; every endpoint
asks `authorize(user, capability)` instead of re-reading roles ad hoc.
"""
from functools import wraps

from accounts.models import CustomUser
from common.exceptions import Forbidden, NotAReader, Unauthorized
from common.http import error_response

START_SESSION = "start_session"
REQUEST_PAYOUT = "request_payout"
VIEW_EARNINGS = "view_earnings"
SET_READER_STATUS = "set_reader_status"
VIEW_PLATFORM_STATS = "view_platform_stats"

CAPABILITIES = {
    START_SESSION: {CustomUser.ROLE_CLIENT, CustomUser.ROLE_READER, CustomUser.ROLE_ADMIN},
    REQUEST_PAYOUT: {CustomUser.ROLE_READER},
    VIEW_EARNINGS: {CustomUser.ROLE_READER, CustomUser.ROLE_ADMIN},
    SET_READER_STATUS: {CustomUser.ROLE_READER, CustomUser.ROLE_ADMIN},
    VIEW_PLATFORM_STATS: {CustomUser.ROLE_ADMIN},
}

_DENIED = {
    REQUEST_PAYOUT: NotAReader,
}


def has_capability(user, capability: str) -> bool:
    if user is None or not user.is_authenticated or not user.is_active:
        return False
    return user.role in CAPABILITIES[capability]


def authorize(user, capability: str) -> None:
    """Raise Unauthorized / Forbidden (NotAReader for payouts) unless user holds capability."""
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability}")
    if user is None or not user.is_authenticated:
        raise Unauthorized()
    if not has_capability(user, capability):
        raise _DENIED.get(capability, Forbidden)()


def api_login_required(view_func):
    """login_required for JSON endpoints: 401 instead of a redirect."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return error_response(Unauthorized())
        return view_func(request, *args, **kwargs)
    return wrapper


def capability_required(capability: str):
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            try:
                authorize(request.user, capability)
            except (Unauthorized, Forbidden) as e:
                return error_response(e)
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
