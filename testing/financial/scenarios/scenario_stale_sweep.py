from datetime import timedelta

from django.utils import timezone

from billing import config
from readings.cleanup.stale_sessions import settle_stale_sessions
from readings.models import ReadingSession
from readings.services.session_service import start_session
from testing.financial.base import check, ensure_test_users


def run():
    print("Running: scenario_stale_sweep")
    reader, client = ensure_test_users(client_balance_cents=200000)
    now = timezone.now()
    session = start_session(client, reader.pk, "CHAT", now=now - timedelta(hours=config.STALE_SESSION_HOURS + 2))
    settle_stale_sessions(now=now)
    session.refresh_from_db()
    check(session.status == ReadingSession.STATUS_COMPLETED, "Stale session should be settled")
    check(
        session.total_minutes == config.STALE_SESSION_HOURS * 60,
        f"Billed minutes should be capped at the window, got {session.total_minutes}",
    )
    print("✓ Passed")
