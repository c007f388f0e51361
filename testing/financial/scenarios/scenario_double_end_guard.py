from datetime import timedelta

from django.utils import timezone

from billing.models import Transaction
from common.exceptions import SessionNotActive
from readings.services.session_service import end_session, start_session
from testing.financial.base import balance_of, check, ensure_test_users


def run():
    print("Running: scenario_double_end_guard")
    reader, client = ensure_test_users(client_balance_cents=5000)
    start = timezone.now() - timedelta(minutes=5)
    session = start_session(client, reader.pk, "CHAT", now=start)
    end_session(session.pk, client, now=start + timedelta(minutes=2))
    after_first = balance_of(client)
    try:
        end_session(session.pk, reader, now=start + timedelta(minutes=4))
    except SessionNotActive:
        pass
    else:
        raise Exception("Expected second end to be rejected.")
    check(balance_of(client) == after_first, "Second end must not charge again.")
    check(Transaction.objects.filter(session_id=session.pk).count() == 2, "Second end must not add transactions.")
    print("✓ Passed")
