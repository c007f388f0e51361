from decimal import Decimal

from django.conf import settings
from django.db import transaction

from accounts.models import CustomUser, ReaderProfile
from billing.services.ledger_service import add_balance, reconcile

SCENARIO_EMAIL_DOMAIN = "financial-scenario.local.test"
READER_EMAIL = f"test_reader@{SCENARIO_EMAIL_DOMAIN}"
CLIENT_EMAIL = f"test_client@{SCENARIO_EMAIL_DOMAIN}"


class ScenarioFailed(Exception):
    pass


def check(condition, message):
    if not condition:
        raise ScenarioFailed(message)


def assert_scenarios_enabled():
    if not settings.ALLOW_TEST_SCENARIOS:
        raise ScenarioFailed("Test scenarios disabled in this environment.")


@transaction.atomic()
def cleanup_scenario_data():
    """Remove scenario users; their sessions, transactions and payments go with them."""
    CustomUser.objects.filter(email__endswith=f"@{SCENARIO_EMAIL_DOMAIN}").delete()


@transaction.atomic()
def ensure_test_users(*, client_balance_cents=0, chat_rate=Decimal("5.00"), phone_rate=Decimal("0.00")):
    """
    Fresh reader + client pair. The client is funded through the ledger so the
    balance reconciles with its transactions.
    """
    cleanup_scenario_data()
    reader = CustomUser.objects.create_user(
        email=READER_EMAIL,
        password=None,
        name="Test Reader",
        role=CustomUser.ROLE_READER,
    )
    ReaderProfile.objects.create(
        user=reader,
        display_name="Test Reader",
        chat_rate_per_min=chat_rate,
        phone_rate_per_min=phone_rate,
        video_rate_per_min=Decimal("0.00"),
        is_online=True,
        is_available=True,
    )
    client = CustomUser.objects.create_user(
        email=CLIENT_EMAIL,
        password=None,
        name="Test Client",
        role=CustomUser.ROLE_CLIENT,
    )
    if client_balance_cents:
        add_balance(client, client_balance_cents, "Scenario funding")
    client.refresh_from_db()
    return reader, client


def balance_of(user) -> int:
    user.refresh_from_db(fields=["balance_cents"])
    return user.balance_cents


def assert_reconciled(*users):
    for user in users:
        result = reconcile(user.pk)
        check(result.is_balanced, f"Ledger drift for {user.email}: {result.drift_cents} cents")
