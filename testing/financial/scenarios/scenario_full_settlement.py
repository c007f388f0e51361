from datetime import timedelta

from django.utils import timezone

from billing.models import Transaction
from readings.services.session_service import end_session, start_session
from testing.financial.base import assert_reconciled, balance_of, check, ensure_test_users


def run():
    print("Running: scenario_full_settlement")
    reader, client = ensure_test_users(client_balance_cents=5000)
    start = timezone.now() - timedelta(minutes=10)
    session = start_session(client, reader.pk, "CHAT", now=start)
    result = end_session(session.pk, client, now=start + timedelta(minutes=3))

    check(result.total_amount_cents == 1500, f"Expected $15.00 charge, got {result.total_amount_cents}")
    check(result.reader_earnings_cents == 1050, f"Expected $10.50 reader share, got {result.reader_earnings_cents}")
    check(result.platform_fee_cents == 450, f"Expected $4.50 platform fee, got {result.platform_fee_cents}")
    check(result.warning is None, "Full payment must not carry a warning")
    check(balance_of(client) == 3500, "Client balance should be $35.00")
    check(balance_of(reader) == 1050, "Reader balance should be $10.50")
    pair = Transaction.objects.filter(session_id=session.pk).count()
    check(pair == 2, f"Expected 2 session transactions, got {pair}")
    reader.reader_profile.refresh_from_db()
    check(reader.reader_profile.total_sessions == 1, "Reader total_sessions should be 1")
    assert_reconciled(client, reader)
    print("✓ Passed")
