from django.contrib import admin
from .models import Payment, Transaction


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("stripe_payment_intent_id", "user", "amount_cents", "currency", "status", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("stripe_payment_intent_id", "user__email")
    readonly_fields = ("stripe_payment_intent_id", "user", "amount_cents", "currency", "status", "created_at", "updated_at")

    def has_add_permission(self, request):
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Ledger is append-only: view only."""
    list_display = ("id", "user", "type", "amount_cents", "reader", "session", "description", "created_at")
    list_filter = ("type",)
    search_fields = ("user__email", "description")
    readonly_fields = ("user", "reader", "session", "type", "amount_cents", "description", "created_at")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
