"""
Ledger primitives. All balance changes go through here and create a Transaction.
Never modify CustomUser.balance_cents outside this module.

Balance writes are F-expression updates; debits only apply while the balance
covers them, so a balance can never go negative even without row locks.
Callers that need several entries to land together wrap them in one
transaction.atomic() (post_entry already does for a single pair).
"""
import logging
from dataclasses import dataclass

from django.db import transaction
from django.db.models import F, Sum

from accounts.models import CustomUser
from billing.models import Transaction
from common.exceptions import InsufficientBalance, LedgerError
from common.money import format_cents

logger = logging.getLogger(__name__)

_TRANSACTION_TYPES = {choice for choice, _ in Transaction.TYPE_CHOICES}


@dataclass(frozen=True)
class Reconciliation:
    user_id: int
    balance_cents: int
    ledger_cents: int

    @property
    def is_balanced(self) -> bool:
        return self.balance_cents == self.ledger_cents

    @property
    def drift_cents(self) -> int:
        return self.balance_cents - self.ledger_cents


def lock_users(*user_ids) -> dict:
    """
    Row-lock users in ascending pk order (prevents deadlocks between two
    settlements touching the same pair). Must be called inside transaction.atomic().
    Returns {pk: CustomUser} with fresh balances.
    """
    ids = sorted(set(user_ids))
    return {u.pk: u for u in CustomUser.objects.select_for_update().filter(pk__in=ids).order_by("pk")}


def current_balance(user_id) -> int:
    balance = CustomUser.objects.filter(pk=user_id).values_list("balance_cents", flat=True).first()
    if balance is None:
        raise LedgerError(f"User {user_id} does not exist")
    return balance


def adjust_balance(user_id, delta_cents: int) -> int:
    """
    Add delta_cents to the user's balance and return the new balance.
    Raises InsufficientBalance if a debit would drive the balance below zero.
    Draining a balance to exactly 0 is allowed (delta == -balance).
    """
    users = CustomUser.objects.filter(pk=user_id)
    if delta_cents < 0:
        users = users.filter(balance_cents__gte=-delta_cents)
    updated = users.update(balance_cents=F("balance_cents") + delta_cents)
    if not updated:
        balance = current_balance(user_id)
        raise InsufficientBalance(
            current_balance=format_cents(balance),
            required_amount=format_cents(-delta_cents),
        )
    return current_balance(user_id)


def record_transaction(
    user_id,
    tx_type: str,
    amount_cents: int,
    description: str,
    reader_id=None,
    session=None,
) -> Transaction:
    """Append one ledger row. Pair with adjust_balance in the same atomic block."""
    if tx_type not in _TRANSACTION_TYPES:
        raise LedgerError(f"Unknown transaction type: {tx_type}")
    return Transaction.objects.create(
        user_id=user_id,
        reader_id=reader_id,
        session=session,
        type=tx_type,
        amount_cents=amount_cents,
        description=(description or "")[:255],
    )


@transaction.atomic()
def post_entry(
    user_id,
    tx_type: str,
    amount_cents: int,
    description: str,
    reader_id=None,
    session=None,
):
    """
    Balance delta + its Transaction as one all-or-nothing unit.
    Returns (transaction, new_balance_cents).
    """
    new_balance = adjust_balance(user_id, amount_cents)
    tx = record_transaction(
        user_id,
        tx_type,
        amount_cents,
        description,
        reader_id=reader_id,
        session=session,
    )
    logger.debug("post_entry: user=%s type=%s amount=%s balance=%s", user_id, tx_type, amount_cents, new_balance)
    return tx, new_balance


def add_balance(user: CustomUser, amount_cents: int, description: str = None):
    """
    Credit a top-up (BALANCE_ADD). Amount must be positive.
    Returns (transaction, new_balance_cents).
    """
    if amount_cents <= 0:
        raise LedgerError("add_balance requires positive amount_cents")
    description = description or f"Added ${format_cents(amount_cents)} to balance"
    tx, new_balance = post_entry(user.pk, Transaction.TYPE_BALANCE_ADD, amount_cents, description)
    logger.info("add_balance: user=%s amount=%s new_balance=%s", user.pk, amount_cents, new_balance)
    return tx, new_balance


def ledger_total(user_id) -> int:
    return Transaction.objects.filter(user_id=user_id).aggregate(total=Sum("amount_cents"))["total"] or 0


def reconcile(user_id) -> Reconciliation:
    """Compare the stored balance with the sum of the user's ledger rows."""
    return Reconciliation(
        user_id=user_id,
        balance_cents=current_balance(user_id),
        ledger_cents=ledger_total(user_id),
    )
