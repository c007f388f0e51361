import uuid

from billing.services.topup_service import confirm_topup
from testing.financial.base import assert_reconciled, balance_of, check, ensure_test_users


def run():
    print("Running: scenario_topup_idempotent")
    _, client = ensure_test_users()
    pi_id = f"pi_scenario_{uuid.uuid4().hex[:16]}"
    confirm_topup(pi_id, client.pk, 2000)
    once = balance_of(client)
    confirm_topup(pi_id, client.pk, 2000)
    twice = balance_of(client)
    check(once == 2000, "First webhook delivery should credit $20.00")
    check(twice == once, "Repeated webhook delivery must not credit again")
    assert_reconciled(client)
    print("✓ Passed")
