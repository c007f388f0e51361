from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import Group
from .models import CustomUser, ReaderProfile
from .forms import CustomUserCreationForm, CustomUserChangeForm

# Hide Authentication and Authorization groups
admin.site.unregister(Group)


class UserAdmin(BaseUserAdmin):
    add_form = CustomUserCreationForm
    form = CustomUserChangeForm
    model = CustomUser
    list_display = ("email", "name", "role", "balance_display", "is_staff", "is_active")
    list_filter = ("role", "is_staff", "is_active")
    search_fields = ("email", "name")
    ordering = ("email",)
    # Balance changes only through the ledger so every change has a Transaction
    readonly_fields = ("balance_cents", "last_login", "date_joined")
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Account", {"fields": ("name", "role", "balance_cents")}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser", "user_permissions")}),
        ("Important dates", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("email", "name", "role", "password1", "password2")}),
    )

    def balance_display(self, obj):
        return f"${obj.balance_cents / 100:.2f}"
    balance_display.short_description = "Balance"


class ReaderProfileAdmin(admin.ModelAdmin):
    list_display = ("display_name", "email_display", "chat_rate_per_min", "phone_rate_per_min",
                    "video_rate_per_min", "is_online", "is_available", "rating", "total_sessions")
    list_filter = ("is_online", "is_available")
    search_fields = ("display_name", "user__email")
    readonly_fields = ("total_sessions", "created_at", "updated_at")

    fieldsets = (
        ("Reader", {
            "fields": ("user", "display_name", "bio", "specialties", "years_experience", "profile_image")
        }),
        ("Rates (per minute, 0 = not offered)", {
            "fields": ("chat_rate_per_min", "phone_rate_per_min", "video_rate_per_min")
        }),
        ("Status", {
            "fields": ("is_online", "is_available")
        }),
        ("Stats", {
            "fields": ("rating", "total_reviews", "total_sessions", "created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    def email_display(self, obj):
        return obj.user.email
    email_display.short_description = "Email"


admin.site.register(CustomUser, UserAdmin)
admin.site.register(ReaderProfile, ReaderProfileAdmin)
