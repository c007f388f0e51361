"""
Read-only reporting over sessions and the ledger.

Reader earnings come from the settled sessions' reader_earnings_cents, the
platform's revenue from platform_fee_cents. Nothing here writes.
Return values are JSON-ready dicts (money as "12.34" strings).
"""
from datetime import timedelta

from django.db.models import Avg, Count, Sum
from django.utils import timezone

from accounts.models import CustomUser
from billing import config
from billing.models import Transaction
from common.money import format_cents
from readings.models import ReadingSession


def _sum(queryset, field) -> int:
    return queryset.aggregate(total=Sum(field))["total"] or 0


def _payout_row(tx: Transaction, with_reader: bool = False) -> dict:
    row = {
        "id": tx.pk,
        "amount": format_cents(abs(tx.amount_cents)),
        "description": tx.description,
        "date": tx.created_at.isoformat(),
    }
    if with_reader:
        row["reader"] = {"name": tx.user.name, "email": tx.user.email}
    return row


def transaction_row(tx: Transaction) -> dict:
    return {
        "id": tx.pk,
        "type": tx.type,
        "amount": format_cents(tx.amount_cents),
        "description": tx.description,
        "session_id": tx.session_id,
        "date": tx.created_at.isoformat(),
    }


def _completed_sessions_for(reader: CustomUser):
    return ReadingSession.objects.filter(reader=reader, status=ReadingSession.STATUS_COMPLETED)


def reader_earnings(reader: CustomUser) -> dict:
    sessions = _completed_sessions_for(reader).order_by("-created_at")
    payouts = Transaction.objects.filter(user=reader, type=Transaction.TYPE_PAYOUT)

    total_earned = _sum(sessions, "reader_earnings_cents")
    total_paid_out = -_sum(payouts, "amount_cents")
    balance = CustomUser.objects.values_list("balance_cents", flat=True).get(pk=reader.pk)

    return {
        "earnings": {
            "total_earned": format_cents(total_earned),
            "total_paid_out": format_cents(total_paid_out),
            "available_balance": format_cents(balance),
            "total_sessions": sessions.count(),
        },
        "sessions": [
            {
                "id": s.pk,
                "amount": format_cents(s.total_amount_cents),
                "reader_earnings": format_cents(s.reader_earnings_cents),
                "minutes": s.total_minutes,
                "type": s.session_type,
                "is_partial_payment": s.is_partial_payment,
                "date": s.created_at.isoformat(),
            }
            for s in sessions
        ],
        "payouts": [_payout_row(tx) for tx in payouts.order_by("-created_at", "-id")],
    }


def reader_analytics(reader: CustomUser, now=None, days: int = config.ANALYTICS_WINDOW_DAYS) -> dict:
    now = now or timezone.now()
    recent = _completed_sessions_for(reader).filter(created_at__gte=now - timedelta(days=days))
    totals = recent.aggregate(
        earnings=Sum("reader_earnings_cents"),
        sessions=Count("id"),
        average_minutes=Avg("total_minutes"),
    )
    by_type = {
        row["session_type"]: {
            "count": row["count"],
            "earnings": format_cents(row["earnings"] or 0),
        }
        for row in recent.values("session_type").annotate(
            count=Count("id"),
            earnings=Sum("reader_earnings_cents"),
        ).order_by("session_type")
    }
    return {
        "analytics": {
            "window_days": days,
            "last_period": {
                "earnings": format_cents(totals["earnings"] or 0),
                "sessions": totals["sessions"],
                "average_session_length": round(float(totals["average_minutes"] or 0), 2),
            },
            "by_type": by_type,
        }
    }


def payout_history(user: CustomUser, limit: int = config.HISTORY_LIMIT) -> dict:
    payouts = Transaction.objects.filter(user=user, type=Transaction.TYPE_PAYOUT).order_by("-created_at", "-id")[:limit]
    return {"payouts": [_payout_row(tx) for tx in payouts]}


def all_payouts(limit: int = config.ADMIN_LIST_LIMIT) -> dict:
    payouts = (
        Transaction.objects.filter(type=Transaction.TYPE_PAYOUT)
        .select_related("user")
        .order_by("-created_at", "-id")[:limit]
    )
    return {"payouts": [_payout_row(tx, with_reader=True) for tx in payouts]}


def platform_stats(recent_limit: int = 10) -> dict:
    users = CustomUser.objects.all()
    sessions = ReadingSession.objects.all()
    completed = sessions.filter(status=ReadingSession.STATUS_COMPLETED)
    recent = Transaction.objects.select_related("user").order_by("-created_at", "-id")[:recent_limit]
    return {
        "stats": {
            "total_users": users.count(),
            "total_readers": users.filter(role=CustomUser.ROLE_READER).count(),
            "total_clients": users.filter(role=CustomUser.ROLE_CLIENT).count(),
            "total_sessions": sessions.count(),
            "completed_sessions": completed.count(),
            "active_sessions": sessions.filter(status=ReadingSession.STATUS_ACTIVE).count(),
            "total_revenue": format_cents(_sum(completed, "total_amount_cents")),
            "reader_earnings": format_cents(_sum(completed, "reader_earnings_cents")),
            "platform_revenue": format_cents(_sum(completed, "platform_fee_cents")),
            "total_payouts": format_cents(-_sum(Transaction.objects.filter(type=Transaction.TYPE_PAYOUT), "amount_cents")),
        },
        "recent_transactions": [
            dict(transaction_row(tx), user={"name": tx.user.name, "email": tx.user.email})
            for tx in recent
        ],
    }
