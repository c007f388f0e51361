from datetime import timedelta

from django.utils import timezone

from billing.services.payout_service import request_payout
from common.exceptions import BelowMinimum
from readings.services.session_service import end_session, start_session
from testing.financial.base import assert_reconciled, balance_of, check, ensure_test_users


def run():
    print("Running: scenario_payout")
    reader, client = ensure_test_users(client_balance_cents=10000)
    start = timezone.now() - timedelta(minutes=20)
    session = start_session(client, reader.pk, "CHAT", now=start)
    end_session(session.pk, client, now=start + timedelta(minutes=10))
    check(balance_of(reader) == 3500, "Reader should hold $35.00 after a 10 minute session")

    try:
        request_payout(reader, 1499)
    except BelowMinimum:
        pass
    else:
        raise Exception("Expected $14.99 payout to be rejected.")

    result = request_payout(reader, 1500, method="PAYPAL")
    check(result.status == "pending", "Payout status should be pending")
    check(result.remaining_balance_cents == 2000, "Remaining balance should be $20.00")
    assert_reconciled(reader)
    print("✓ Passed")
