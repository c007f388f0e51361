"""
Stale session sweep.

An ACTIVE session whose participants disconnected without calling end stays
open forever and never bills. This sweep settles every ACTIVE session older
than STALE_SESSION_HOURS, billing at most that window.

CLEANUP RULES:
1. ACTIVE sessions with start_time < now - STALE_SESSION_HOURS are settled
2. Billed minutes = min(elapsed minutes, STALE_SESSION_HOURS * 60)
3. A session that was ended or cancelled meanwhile is skipped
"""
import logging
from datetime import timedelta

from django.utils import timezone

from billing import config
from common.exceptions import DomainError
from readings.models import ReadingSession
from readings.services.session_service import compute_duration_minutes
from readings.services.settlement_service import settle

logger = logging.getLogger(__name__)


def settle_stale_sessions(now=None):
    """
    Settle ACTIVE sessions past the staleness window. Idempotent.

    Returns:
        dict: {
            'sessions_checked': int,
            'sessions_settled': int,
            'sessions_skipped': int,
            'sessions_failed': int,
        }
    """
    now = now or timezone.now()
    window = timedelta(hours=config.STALE_SESSION_HOURS)
    max_minutes = config.STALE_SESSION_HOURS * 60
    cutoff = now - window

    stale = list(
        ReadingSession.objects.filter(
            status=ReadingSession.STATUS_ACTIVE,
            start_time__lt=cutoff,
        ).order_by("start_time")
    )
    logger.info(f"[settle_stale_sessions] {len(stale)} ACTIVE sessions started before {cutoff}")

    settled = skipped = failed = 0
    for session in stale:
        minutes = min(compute_duration_minutes(session.start_time, now), max_minutes)
        try:
            result = settle(session, minutes, now=now)
        except DomainError as e:
            # Ended or cancelled by a participant since the query ran
            skipped += 1
            logger.info(f"[settle_stale_sessions] skipped session={session.pk}: {e.message}")
            continue
        except Exception:
            failed += 1
            logger.exception(f"[settle_stale_sessions] settlement failed session={session.pk}")
            continue
        settled += 1
        logger.info(
            f"[settle_stale_sessions] settled session={session.pk} minutes={minutes} "
            f"total={result.total_amount_cents} partial={result.is_partial_payment}"
        )

    return {
        "sessions_checked": len(stale),
        "sessions_settled": settled,
        "sessions_skipped": skipped,
        "sessions_failed": failed,
    }
