from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils import timezone
from .managers import CustomUserManager


class CustomUser(AbstractBaseUser, PermissionsMixin):
    ROLE_CLIENT = "CLIENT"
    ROLE_READER = "READER"
    ROLE_ADMIN = "ADMIN"
    ROLE_CHOICES = [
        (ROLE_CLIENT, "Client"),
        (ROLE_READER, "Reader"),
        (ROLE_ADMIN, "Admin"),
    ]

    email = models.EmailField("email address", unique=True)
    name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_CLIENT, db_index=True)
    # Owned by billing.services.ledger_service; never assign directly
    balance_cents = models.BigIntegerField(default=0)
    is_staff = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    date_joined = models.DateTimeField(default=timezone.now)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = CustomUserManager()

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance_cents__gte=0),
                name="user_balance_non_negative",
            ),
        ]

    def save(self, *args, **kwargs):
        """Override save to ensure email is always stored in lowercase"""
        if self.email:
            self.email = self.email.lower().strip()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.email

    @property
    def is_reader(self):
        return self.role == self.ROLE_READER

    @property
    def is_platform_admin(self):
        return self.role == self.ROLE_ADMIN


class ReaderProfile(models.Model):
    """Public profile and per-service rates of a READER user. A rate of 0 means the service is not offered."""

    user = models.OneToOneField("accounts.CustomUser", on_delete=models.CASCADE, related_name="reader_profile")
    display_name = models.CharField(max_length=150)
    bio = models.TextField(blank=True)
    specialties = models.JSONField(default=list, blank=True)  # Array of specialty strings
    years_experience = models.PositiveIntegerField(blank=True, null=True)
    profile_image = models.URLField(blank=True, null=True)

    # Rates in dollars per minute
    chat_rate_per_min = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    phone_rate_per_min = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    video_rate_per_min = models.DecimalField(max_digits=8, decimal_places=2, default=0)

    is_online = models.BooleanField(default=False)
    is_available = models.BooleanField(default=True)

    # Aggregates: rating/total_reviews come from the review subsystem, total_sessions from settlement
    rating = models.DecimalField(max_digits=3, decimal_places=2, blank=True, null=True)
    total_reviews = models.PositiveIntegerField(default=0)
    total_sessions = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Reader Profile"
        verbose_name_plural = "Reader Profiles"
        ordering = ["-is_online", "-rating"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(chat_rate_per_min__gte=0)
                & models.Q(phone_rate_per_min__gte=0)
                & models.Q(video_rate_per_min__gte=0),
                name="reader_rates_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.display_name} ({self.user.email})"

    def rate_for(self, session_type):
        """Dollar rate for CHAT / PHONE / VIDEO, or None for an unknown type."""
        return {
            "CHAT": self.chat_rate_per_min,
            "PHONE": self.phone_rate_per_min,
            "VIDEO": self.video_rate_per_min,
        }.get(session_type)
