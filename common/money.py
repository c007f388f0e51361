"""
Money helpers. All balances and ledger amounts are integer cents; the API
speaks dollars as strings ("12.34").
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from common.exceptions import InvalidRequest

CENT = Decimal("0.01")


def to_cents(value) -> int:
    """Parse a dollar amount (number or string) into cents. Rejects sub-cent precision."""
    if isinstance(value, bool) or value is None:
        raise InvalidRequest("Amount is required.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidRequest("Amount must be a number.")
    if not amount.is_finite():
        raise InvalidRequest("Amount must be a number.")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise InvalidRequest("Amount is out of range.")
    if amount != quantized:
        raise InvalidRequest("Amount cannot have more than two decimal places.")
    return int(amount * 100)


def dollars_to_cents(amount) -> int:
    """Decimal dollars (model fields) to cents, rounding half up."""
    if amount is None:
        return 0
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, percent: Decimal) -> int:
    return int((Decimal(amount_cents) * percent).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(amount_cents: int) -> str:
    """1400 -> "14.00", -550 -> "-5.50"."""
    return str((Decimal(amount_cents) / 100).quantize(CENT))
