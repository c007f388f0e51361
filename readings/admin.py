from django.contrib import admin
from .models import ReadingSession


@admin.register(ReadingSession)
class ReadingSessionAdmin(admin.ModelAdmin):
    """Sessions change state only through the session endpoints; settlement fields are read-only."""
    list_display = ("id", "client", "reader", "session_type", "status", "start_time", "total_minutes", "total_amount_cents")
    list_filter = ("session_type", "status", "is_partial_payment")
    search_fields = ("client__email", "reader__email")
    readonly_fields = (
        "client",
        "reader",
        "session_type",
        "status",
        "start_time",
        "end_time",
        "rate_per_minute_cents",
        "total_minutes",
        "total_amount_cents",
        "reader_earnings_cents",
        "platform_fee_cents",
        "is_partial_payment",
        "created_at",
    )

    def has_add_permission(self, request):
        return False
