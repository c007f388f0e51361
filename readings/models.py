from django.db import models

from common.exceptions import LedgerError


class ReadingSession(models.Model):
    """
    One billable client/reader engagement.

    rate_per_minute_cents is frozen when the session is created. The settlement
    fields (total_*, reader_earnings_cents, platform_fee_cents) are written once,
    on the ACTIVE -> COMPLETED transition, by readings.services.settlement_service.
    """
    TYPE_CHAT = "CHAT"
    TYPE_PHONE = "PHONE"
    TYPE_VIDEO = "VIDEO"
    SESSION_TYPES = [
        (TYPE_CHAT, "Chat"),
        (TYPE_PHONE, "Phone"),
        (TYPE_VIDEO, "Video"),
    ]

    STATUS_PENDING = "PENDING"
    STATUS_ACTIVE = "ACTIVE"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_CANCELLED = "CANCELLED"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_ACTIVE, "Active"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # Legal transitions; COMPLETED and CANCELLED are terminal
    TRANSITIONS = {
        STATUS_PENDING: {STATUS_ACTIVE, STATUS_CANCELLED},
        STATUS_ACTIVE: {STATUS_COMPLETED, STATUS_CANCELLED},
        STATUS_COMPLETED: set(),
        STATUS_CANCELLED: set(),
    }
    CANCELLABLE = (STATUS_PENDING, STATUS_ACTIVE)

    client = models.ForeignKey("accounts.CustomUser", on_delete=models.CASCADE, related_name="client_sessions")
    reader = models.ForeignKey("accounts.CustomUser", on_delete=models.CASCADE, related_name="reader_sessions")
    session_type = models.CharField(max_length=10, choices=SESSION_TYPES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    start_time = models.DateTimeField(blank=True, null=True)
    end_time = models.DateTimeField(blank=True, null=True)

    rate_per_minute_cents = models.PositiveIntegerField()
    total_minutes = models.PositiveIntegerField(default=0)
    total_amount_cents = models.BigIntegerField(default=0)
    reader_earnings_cents = models.BigIntegerField(default=0)
    platform_fee_cents = models.BigIntegerField(default=0)
    is_partial_payment = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Reading Session"
        verbose_name_plural = "Reading Sessions"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["client", "status"], name="readings_re_client__3f1c2a_idx"),
            models.Index(fields=["reader", "status"], name="readings_re_reader__8b7d41_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            frozen = type(self).objects.filter(pk=self.pk).values_list("rate_per_minute_cents", flat=True).first()
            if frozen is not None and frozen != self.rate_per_minute_cents:
                raise LedgerError(f"rate_per_minute_cents is frozen for session {self.pk}")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.session_type} session {self.pk} ({self.status})"

    def can_transition(self, new_status) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, set())

    def is_participant(self, user) -> bool:
        return user is not None and user.pk in (self.client_id, self.reader_id)
