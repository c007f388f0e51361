from datetime import timedelta

from django.utils import timezone

from common.exceptions import InvalidState
from readings.models import ReadingSession
from readings.services.session_service import cancel_session, end_session, start_session
from testing.financial.base import balance_of, check, ensure_test_users


def run():
    print("Running: scenario_cancel_completed")
    reader, client = ensure_test_users(client_balance_cents=5000)
    start = timezone.now() - timedelta(minutes=5)
    session = start_session(client, reader.pk, "CHAT", now=start)
    end_session(session.pk, client, now=start + timedelta(minutes=1))
    before = balance_of(client)
    try:
        cancel_session(session.pk, client)
    except InvalidState:
        pass
    else:
        raise Exception("Expected cancelling a completed session to fail.")
    session.refresh_from_db()
    check(session.status == ReadingSession.STATUS_COMPLETED, "Session must stay COMPLETED.")
    check(balance_of(client) == before, "Failed cancel must not move money.")
    print("✓ Passed")
