"""
Reading session lifecycle: start, end (settle), cancel, lookups and reader
presence. Status changes are conditional updates keyed on the current status,
so two concurrent callers can never both move the same session.
"""
import logging
import math

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from accounts.models import CustomUser, ReaderProfile
from accounts.permissions import SET_READER_STATUS, START_SESSION, authorize
from billing import config
from common.exceptions import (
    Forbidden,
    InsufficientBalance,
    InvalidRequest,
    InvalidState,
    SessionNotActive,
    SessionNotFound,
)
from common.money import format_cents
from readings.models import ReadingSession
from readings.services.rate_resolver import normalize_session_type, resolve_rate
from readings.services.settlement_service import SettlementResult, settle

logger = logging.getLogger(__name__)


def compute_duration_minutes(start_time, end_time) -> int:
    """
    Billed minutes: elapsed time rounded up to the next whole minute, never
    below MIN_BILLED_MINUTES (covers zero and backwards clocks).
    """
    elapsed = end_time - start_time
    elapsed_us = (elapsed.days * 86400 + elapsed.seconds) * 1_000_000 + elapsed.microseconds
    minutes = math.ceil(elapsed_us / 60_000_000) if elapsed_us > 0 else 0
    return max(minutes, config.MIN_BILLED_MINUTES)


def _get_for_participant(session_id, caller) -> ReadingSession:
    try:
        session = ReadingSession.objects.select_related("client", "reader").get(pk=session_id)
    except (ReadingSession.DoesNotExist, ValueError, TypeError):
        raise SessionNotFound()
    if not session.is_participant(caller):
        raise Forbidden()
    return session


def start_session(client: CustomUser, reader_id, session_type, now=None) -> ReadingSession:
    """
    Open an ACTIVE session at the reader's current rate (frozen on the row).
    The client must be able to afford MIN_AFFORDABLE_MINUTES; nothing is held.
    """
    authorize(client, START_SESSION)
    now = now or timezone.now()
    session_type = normalize_session_type(session_type)
    quote = resolve_rate(reader_id, session_type)
    if quote.reader_id == client.pk:
        raise InvalidRequest("Cannot start a session with yourself")

    rate_cents = quote.rate_per_minute_cents
    required_cents = rate_cents * config.MIN_AFFORDABLE_MINUTES
    balance_cents = CustomUser.objects.values_list("balance_cents", flat=True).get(pk=client.pk)
    if balance_cents < required_cents:
        raise InsufficientBalance(
            required_balance=format_cents(required_cents),
            current_balance=format_cents(balance_cents),
        )

    session = ReadingSession.objects.create(
        client=client,
        reader_id=quote.reader_id,
        session_type=session_type,
        status=ReadingSession.STATUS_ACTIVE,
        start_time=now,
        rate_per_minute_cents=rate_cents,
    )
    logger.info(
        "start_session: session=%s client=%s reader=%s type=%s rate=%s",
        session.pk,
        client.pk,
        quote.reader_id,
        session.session_type,
        rate_cents,
    )
    return session


def end_session(session_id, caller, now=None) -> SettlementResult:
    """End an ACTIVE session (client or reader) and settle it."""
    session = _get_for_participant(session_id, caller)
    if session.status != ReadingSession.STATUS_ACTIVE:
        raise SessionNotActive()
    now = now or timezone.now()
    duration = compute_duration_minutes(session.start_time, now)
    logger.info("end_session: session=%s caller=%s minutes=%s", session.pk, caller.pk, duration)
    return settle(session, duration, now=now)


@transaction.atomic()
def cancel_session(session_id, caller, now=None) -> ReadingSession:
    """Cancel a PENDING or ACTIVE session. No money moves."""
    session = _get_for_participant(session_id, caller)
    now = now or timezone.now()
    cancelled = ReadingSession.objects.filter(
        pk=session.pk,
        status__in=ReadingSession.CANCELLABLE,
    ).update(status=ReadingSession.STATUS_CANCELLED, end_time=now)
    if not cancelled:
        raise InvalidState()
    session.refresh_from_db()
    logger.info("cancel_session: session=%s caller=%s", session.pk, caller.pk)
    return session


def get_session_for(session_id, caller) -> ReadingSession:
    return _get_for_participant(session_id, caller)


def active_sessions_for(user: CustomUser):
    return (
        ReadingSession.objects.select_related("client", "reader")
        .filter(Q(client=user) | Q(reader=user), status=ReadingSession.STATUS_ACTIVE)
        .order_by("-start_time")
    )


def set_reader_status(user: CustomUser, is_online, is_available=None) -> ReaderProfile:
    """Update the caller's own presence flags."""
    authorize(user, SET_READER_STATUS)
    if not isinstance(is_online, bool):
        raise InvalidRequest("is_online must be a boolean")
    if is_available is not None and not isinstance(is_available, bool):
        raise InvalidRequest("is_available must be a boolean")
    try:
        profile = ReaderProfile.objects.get(user=user)
    except ReaderProfile.DoesNotExist:
        raise InvalidRequest("Reader profile not found")

    profile.is_online = is_online
    update_fields = ["is_online", "updated_at"]
    if is_available is not None:
        profile.is_available = is_available
        update_fields.append("is_available")
    profile.save(update_fields=update_fields)
    logger.info("set_reader_status: reader=%s online=%s available=%s", user.pk, profile.is_online, profile.is_available)
    return profile
