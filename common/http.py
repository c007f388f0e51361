"""
JSON view helpers: body parsing and DomainError -> JsonResponse mapping.
"""
import json
import logging
from functools import wraps

from django.http import JsonResponse

from common.exceptions import DomainError, InvalidRequest

logger = logging.getLogger(__name__)


def parse_json_body(request) -> dict:
    """Return the JSON object sent in the request body ({} for an empty body)."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise InvalidRequest("Invalid JSON")
    if not isinstance(data, dict):
        raise InvalidRequest("JSON body must be an object")
    return data


def error_response(exc: DomainError) -> JsonResponse:
    return JsonResponse(exc.as_dict(), status=exc.status_code)


def json_view(failure_message: str):
    """
    Wrap a view that returns a JsonResponse.

    DomainError -> its status and payload. Anything else is logged and becomes
    a 500 with `failure_message`; services run inside transaction.atomic() so
    no partial state is left behind.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            try:
                return view_func(request, *args, **kwargs)
            except DomainError as e:
                logger.info("%s: %s %s", view_func.__name__, type(e).__name__, e.message)
                return error_response(e)
            except Exception:
                logger.exception("%s: unexpected failure", view_func.__name__)
                return JsonResponse({"error": failure_message}, status=500)
        return wrapper
    return decorator
