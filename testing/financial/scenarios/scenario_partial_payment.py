from datetime import timedelta

from django.utils import timezone

from readings.services.session_service import end_session, start_session
from testing.financial.base import assert_reconciled, balance_of, check, ensure_test_users


def run():
    print("Running: scenario_partial_payment")
    # $25 covers the 5-minute gate at $5/min; 8 minutes would cost $40
    reader, client = ensure_test_users(client_balance_cents=2500)
    start = timezone.now() - timedelta(minutes=10)
    session = start_session(client, reader.pk, "CHAT", now=start)
    result = end_session(session.pk, reader, now=start + timedelta(minutes=8))

    check(result.total_amount_cents == 2500, f"Expected the whole $25.00 balance, got {result.total_amount_cents}")
    check(result.warning is not None, "Partial payment must carry a warning")
    check(balance_of(client) == 0, "Client balance must end at exactly zero")
    check(balance_of(reader) == 1750, "Reader should earn 70% of $25.00")
    session.refresh_from_db()
    check(session.is_partial_payment, "Session must be flagged as partial payment")
    assert_reconciled(client, reader)
    print("✓ Passed")
