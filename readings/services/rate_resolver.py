"""
Reader rate lookup used when opening a session. Pure read.
"""
from dataclasses import dataclass

from accounts.models import CustomUser, ReaderProfile
from common.exceptions import InvalidRequest, ReaderNotFound, ReaderUnavailable, ServiceNotOffered
from common.money import dollars_to_cents
from readings.models import ReadingSession

SESSION_TYPES = tuple(choice for choice, _ in ReadingSession.SESSION_TYPES)


@dataclass(frozen=True)
class RateQuote:
    reader_profile: ReaderProfile
    rate_per_minute_cents: int

    @property
    def reader_id(self):
        return self.reader_profile.user_id


def normalize_session_type(session_type) -> str:
    value = (session_type or "").strip().upper() if isinstance(session_type, str) else ""
    if value not in SESSION_TYPES:
        raise InvalidRequest(
            "Invalid session type",
            allowed_types=list(SESSION_TYPES),
        )
    return value


def normalize_reader_id(reader_id) -> int:
    """Accept an int or a string of digits; floats and booleans are rejected."""
    if isinstance(reader_id, bool):
        raise InvalidRequest("Invalid reader id")
    if isinstance(reader_id, int):
        return reader_id
    if isinstance(reader_id, str) and reader_id.strip().isdecimal():
        return int(reader_id.strip())
    raise InvalidRequest("Invalid reader id")


def resolve_rate(reader_id, session_type) -> RateQuote:
    """
    Per-minute rate (cents) the reader charges for session_type.

    Raises InvalidRequest for an unknown type or a malformed reader_id,
    ReaderNotFound if reader_id has no reader profile, ReaderUnavailable if
    the reader is not taking sessions, ServiceNotOffered if the rate for this
    type is zero.
    """
    session_type = normalize_session_type(session_type)
    reader_id = normalize_reader_id(reader_id)
    try:
        profile = ReaderProfile.objects.select_related("user").get(
            user_id=reader_id,
            user__role=CustomUser.ROLE_READER,
            user__is_active=True,
        )
    except (ReaderProfile.DoesNotExist, ValueError, TypeError):
        raise ReaderNotFound()

    if not profile.is_available:
        raise ReaderUnavailable()

    rate_cents = dollars_to_cents(profile.rate_for(session_type))
    if rate_cents <= 0:
        raise ServiceNotOffered()
    return RateQuote(reader_profile=profile, rate_per_minute_cents=rate_cents)
