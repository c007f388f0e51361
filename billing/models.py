"""
Billing models. Transaction is the ledger; Payment tracks Stripe top-ups.
Balance changes go through billing.services.ledger_service, which pairs every
change with exactly one Transaction.
"""
from django.db import models

from common.exceptions import LedgerError


class Payment(models.Model):
    """One row per Stripe PaymentIntent used for a balance top-up; updated by webhooks (idempotent)."""

    STATUS_PENDING = "pending"
    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED = "failed"

    stripe_payment_intent_id = models.CharField(max_length=255, unique=True)
    user = models.ForeignKey(
        "accounts.CustomUser",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="payments",
    )
    amount_cents = models.IntegerField()
    currency = models.CharField(max_length=10, default="usd")
    status = models.CharField(max_length=50, default=STATUS_PENDING)  # pending, succeeded, failed

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        ordering = ["-created_at"]

    def __str__(self):
        return f"Payment {self.stripe_payment_intent_id} ({self.status})"


class Transaction(models.Model):
    """Immutable ledger entry. amount_cents: positive = credit, negative = debit."""

    TYPE_SESSION_PAYMENT = "SESSION_PAYMENT"
    TYPE_BALANCE_ADD = "BALANCE_ADD"
    TYPE_PAYOUT = "PAYOUT"
    TYPE_CHOICES = [
        (TYPE_SESSION_PAYMENT, "Session payment"),
        (TYPE_BALANCE_ADD, "Balance add"),
        (TYPE_PAYOUT, "Payout"),
    ]

    user = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    reader = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reader_transactions",
    )
    session = models.ForeignKey(
        "readings.ReadingSession",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    amount_cents = models.BigIntegerField()
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "type"], name="billing_tra_user_id_5a0e3c_idx"),
            models.Index(fields=["user", "-created_at"], name="billing_tra_user_id_c92f7b_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise LedgerError("Transactions are append-only and cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerError("Transactions are append-only and cannot be deleted.")

    def __str__(self):
        return f"Transaction user={self.user_id} {self.amount_cents}¢ {self.type}"
