"""
Billing configuration: single source of truth for revenue split, payout and
session money rules.

All monetary amounts are in cents (integer) unless otherwise noted.
"""
from decimal import Decimal

# Revenue split on settled session revenue: reader share, platform keeps the remainder
READER_SHARE_PERCENT = Decimal("0.70")
PLATFORM_SHARE_PERCENT = Decimal("1") - READER_SHARE_PERCENT

# Session start gate: client must afford this many minutes at the frozen rate (not a hold)
MIN_AFFORDABLE_MINUTES = 5

# Billed duration floor, also applied when the clock moved backwards
MIN_BILLED_MINUTES = 1

# ACTIVE sessions older than this are force-settled by settle_stale_sessions
STALE_SESSION_HOURS = 4

# Payouts
MIN_PAYOUT_CENTS = 1500
PAYOUT_METHODS = ("STRIPE", "PAYPAL", "BANK_TRANSFER")
DEFAULT_PAYOUT_METHOD = "STRIPE"
PAYOUT_STATUS_PENDING = "pending"

# Balance top-ups via Stripe
MIN_TOPUP_CENTS = 500
MAX_TOPUP_CENTS = 100000
TOPUP_CURRENCY = "usd"

# Reporting
ANALYTICS_WINDOW_DAYS = 30
HISTORY_LIMIT = 50
ADMIN_LIST_LIMIT = 100
