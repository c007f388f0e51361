"""
Reader payouts: debit the reader's balance and record one PAYOUT Transaction.
The transfer itself is handled outside the platform; the request stays "pending".
"""
import logging
from dataclasses import dataclass

from django.db import transaction

from accounts.models import CustomUser
from accounts.permissions import REQUEST_PAYOUT, authorize
from billing import config
from billing.models import Transaction
from billing.services.ledger_service import lock_users, post_entry
from common.exceptions import BelowMinimum, InsufficientBalance, InvalidRequest
from common.money import format_cents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayoutResult:
    transaction_id: int
    amount_cents: int
    method: str
    status: str
    remaining_balance_cents: int

    def as_dict(self) -> dict:
        return {
            "id": self.transaction_id,
            "amount": format_cents(self.amount_cents),
            "method": self.method,
            "status": self.status,
            "remaining_balance": format_cents(self.remaining_balance_cents),
        }


@transaction.atomic()
def request_payout(user: CustomUser, amount_cents: int, method: str = config.DEFAULT_PAYOUT_METHOD) -> PayoutResult:
    """
    Withdraw amount_cents from a reader's balance.

    Checks run in this order: role (NotAReader), method (InvalidRequest),
    minimum (BelowMinimum), balance (InsufficientBalance).
    """
    authorize(user, REQUEST_PAYOUT)
    method = (method or config.DEFAULT_PAYOUT_METHOD).upper()
    if method not in config.PAYOUT_METHODS:
        raise InvalidRequest(
            "Invalid payout method",
            allowed_methods=list(config.PAYOUT_METHODS),
        )
    if amount_cents < config.MIN_PAYOUT_CENTS:
        raise BelowMinimum(
            f"Minimum payout amount is ${format_cents(config.MIN_PAYOUT_CENTS)}",
            minimum_amount=format_cents(config.MIN_PAYOUT_CENTS),
        )

    reader = lock_users(user.pk)[user.pk]
    if reader.balance_cents < amount_cents:
        raise InsufficientBalance(
            available_balance=format_cents(reader.balance_cents),
            requested_amount=format_cents(amount_cents),
        )

    description = f"Payout request via {method} - ${format_cents(amount_cents)}"
    tx, remaining = post_entry(
        reader.pk,
        Transaction.TYPE_PAYOUT,
        -amount_cents,
        description,
        reader_id=reader.pk,
    )

    logger.info("request_payout: reader=%s amount=%s method=%s remaining=%s", reader.pk, amount_cents, method, remaining)
    return PayoutResult(
        transaction_id=tx.pk,
        amount_cents=amount_cents,
        method=method,
        status=config.PAYOUT_STATUS_PENDING,
        remaining_balance_cents=remaining,
    )
