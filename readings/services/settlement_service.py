"""
Settlement: turn an ended ACTIVE session into money movements.

Everything happens in one transaction.atomic() block: the session claim, the
client debit, the reader credit, their two SESSION_PAYMENT Transactions, the
session's settlement fields and the reader's total_sessions counter. Any
failure rolls all of it back and the session stays ACTIVE.
"""
import logging
from dataclasses import dataclass

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from accounts.models import ReaderProfile
from billing import config
from billing.models import Transaction
from billing.services import ledger_service
from common.exceptions import SessionNotActive
from common.money import format_cents, percent_of
from readings.models import ReadingSession

logger = logging.getLogger(__name__)

PARTIAL_PAYMENT_WARNING = "Insufficient balance - partial payment applied"


@dataclass(frozen=True)
class SettlementResult:
    session_id: int
    status: str
    duration_minutes: int
    total_amount_cents: int
    reader_earnings_cents: int
    platform_fee_cents: int
    warning: str = None

    @property
    def is_partial_payment(self) -> bool:
        return self.warning is not None

    def as_dict(self) -> dict:
        data = {
            "session_id": self.session_id,
            "status": self.status,
            "duration_minutes": self.duration_minutes,
            "total_amount": format_cents(self.total_amount_cents),
            "reader_earnings": format_cents(self.reader_earnings_cents),
            "platform_fee": format_cents(self.platform_fee_cents),
        }
        if self.warning:
            data["warning"] = self.warning
        return data


def split_revenue(total_cents: int):
    """(reader_earnings, platform_fee); reader share rounds half up, platform keeps the remainder."""
    reader_cents = percent_of(total_cents, config.READER_SHARE_PERCENT)
    return reader_cents, total_cents - reader_cents


@transaction.atomic()
def settle(session: ReadingSession, duration_minutes: int, now=None) -> SettlementResult:
    """
    Settle an ACTIVE session for duration_minutes at its frozen rate.

    Full path: client pays duration x rate.
    Partial path: client balance is short, so whatever it holds is charged and
    the balance ends at exactly zero.

    Raises SessionNotActive if the session was already completed or cancelled,
    including by a concurrent caller that got here first.
    """
    now = now or timezone.now()

    # Claim the transition; only one caller can flip ACTIVE -> COMPLETED
    claimed = ReadingSession.objects.filter(
        pk=session.pk,
        status=ReadingSession.STATUS_ACTIVE,
    ).update(
        status=ReadingSession.STATUS_COMPLETED,
        end_time=now,
        total_minutes=duration_minutes,
    )
    if not claimed:
        raise SessionNotActive()

    rate_cents = session.rate_per_minute_cents
    requested_cents = duration_minutes * rate_cents

    users = ledger_service.lock_users(session.client_id, session.reader_id)
    client_balance = users[session.client_id].balance_cents

    is_partial = client_balance < requested_cents
    total_cents = client_balance if is_partial else requested_cents
    reader_cents, platform_cents = split_revenue(total_cents)

    payment_description = f"{session.session_type} session - {duration_minutes} minutes"
    if is_partial:
        payment_description += " (partial)"
    ledger_service.post_entry(
        session.client_id,
        Transaction.TYPE_SESSION_PAYMENT,
        -total_cents,
        payment_description,
        reader_id=session.reader_id,
        session=session,
    )
    ledger_service.post_entry(
        session.reader_id,
        Transaction.TYPE_SESSION_PAYMENT,
        reader_cents,
        f"Earnings from {session.session_type} session - {duration_minutes} minutes",
        reader_id=session.reader_id,
        session=session,
    )

    ReadingSession.objects.filter(pk=session.pk).update(
        total_amount_cents=total_cents,
        reader_earnings_cents=reader_cents,
        platform_fee_cents=platform_cents,
        is_partial_payment=is_partial,
    )
    ReaderProfile.objects.filter(user_id=session.reader_id).update(total_sessions=F("total_sessions") + 1)

    session.refresh_from_db()
    logger.info(
        "settle: session=%s minutes=%s rate=%s total=%s reader=%s platform=%s partial=%s",
        session.pk,
        duration_minutes,
        rate_cents,
        total_cents,
        reader_cents,
        platform_cents,
        is_partial,
    )
    return SettlementResult(
        session_id=session.pk,
        status=session.status,
        duration_minutes=duration_minutes,
        total_amount_cents=total_cents,
        reader_earnings_cents=reader_cents,
        platform_fee_cents=platform_cents,
        warning=PARTIAL_PAYMENT_WARNING if is_partial else None,
    )
