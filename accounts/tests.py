from decimal import Decimal

from django.contrib.auth.models import AnonymousUser
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.urls import reverse

from accounts.models import CustomUser, ReaderProfile
from accounts.permissions import (
    CAPABILITIES,
    REQUEST_PAYOUT,
    SET_READER_STATUS,
    START_SESSION,
    VIEW_EARNINGS,
    VIEW_PLATFORM_STATS,
    authorize,
    has_capability,
)
from billing.services.ledger_service import add_balance
from common.exceptions import Forbidden, NotAReader, Unauthorized


class CustomUserTests(TestCase):
    def test_email_is_lowercased(self):
        user = CustomUser.objects.create_user(email="  Seeker@Example.COM ", password="pass12345")
        self.assertEqual(user.email, "seeker@example.com")
        self.assertEqual(user.role, CustomUser.ROLE_CLIENT)
        self.assertEqual(user.balance_cents, 0)

    def test_superuser_is_platform_admin(self):
        admin = CustomUser.objects.create_superuser(email="admin@example.com", password="pass12345")
        self.assertTrue(admin.is_platform_admin)
        self.assertTrue(admin.is_staff)

    def test_balance_cannot_go_negative_in_database(self):
        user = CustomUser.objects.create_user(email="a@example.com", password="pass12345")
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                CustomUser.objects.filter(pk=user.pk).update(balance_cents=-1)

    def test_rate_for(self):
        reader = CustomUser.objects.create_user(email="r@example.com", role=CustomUser.ROLE_READER)
        profile = ReaderProfile.objects.create(user=reader, display_name="R", video_rate_per_min=Decimal("7.50"))
        self.assertEqual(profile.rate_for("VIDEO"), Decimal("7.50"))
        self.assertIsNone(profile.rate_for("FAX"))


class AuthorizationTests(TestCase):
    def setUp(self):
        self.client_user = CustomUser.objects.create_user(email="c@example.com")
        self.reader = CustomUser.objects.create_user(email="r@example.com", role=CustomUser.ROLE_READER)
        self.admin = CustomUser.objects.create_user(email="a@example.com", role=CustomUser.ROLE_ADMIN)

    def test_capability_table(self):
        expected = {
            START_SESSION: {self.client_user, self.reader, self.admin},
            REQUEST_PAYOUT: {self.reader},
            VIEW_EARNINGS: {self.reader, self.admin},
            SET_READER_STATUS: {self.reader, self.admin},
            VIEW_PLATFORM_STATS: {self.admin},
        }
        for capability in CAPABILITIES:
            allowed = {u for u in (self.client_user, self.reader, self.admin) if has_capability(u, capability)}
            self.assertEqual(allowed, expected[capability], capability)

    def test_payout_denial_is_not_a_reader(self):
        with self.assertRaises(NotAReader):
            authorize(self.admin, REQUEST_PAYOUT)

    def test_generic_denial(self):
        with self.assertRaises(Forbidden):
            authorize(self.client_user, VIEW_PLATFORM_STATS)

    def test_anonymous(self):
        with self.assertRaises(Unauthorized):
            authorize(AnonymousUser(), START_SESSION)

    def test_inactive_user_is_denied(self):
        self.reader.is_active = False
        self.assertFalse(has_capability(self.reader, REQUEST_PAYOUT))

    def test_unknown_capability(self):
        with self.assertRaises(ValueError):
            authorize(self.admin, "launch_rockets")


class UserApiTests(TestCase):
    def setUp(self):
        self.user = CustomUser.objects.create_user(email="me@example.com", password="pass12345", name="Me")
        add_balance(self.user, 1250)

    def test_requires_login(self):
        for name in ("me", "balance", "transactions", "sessions"):
            self.assertEqual(self.client.get(reverse(f"accounts:{name}")).status_code, 401, name)

    def test_me_and_balance(self):
        self.client.force_login(self.user)
        me = self.client.get(reverse("accounts:me")).json()["user"]
        self.assertEqual(me["email"], "me@example.com")
        self.assertEqual(me["balance"], "12.50")
        self.assertNotIn("reader_profile", me)
        self.assertEqual(self.client.get(reverse("accounts:balance")).json(), {"balance": "12.50"})

    def test_transactions(self):
        self.client.force_login(self.user)
        rows = self.client.get(reverse("accounts:transactions")).json()["transactions"]
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["type"], "BALANCE_ADD")
        self.assertEqual(rows[0]["amount"], "12.50")

    def test_sessions_empty(self):
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(reverse("accounts:sessions")).json(), {"sessions": []})


class ReaderDirectoryTests(TestCase):
    def setUp(self):
        self.online = CustomUser.objects.create_user(email="on@example.com", role=CustomUser.ROLE_READER)
        ReaderProfile.objects.create(user=self.online, display_name="Online", chat_rate_per_min=Decimal("3.99"), is_online=True)
        self.offline = CustomUser.objects.create_user(email="off@example.com", role=CustomUser.ROLE_READER)
        ReaderProfile.objects.create(user=self.offline, display_name="Offline")

    def test_list_is_public(self):
        readers = self.client.get(reverse("accounts:reader_list")).json()["readers"]
        self.assertEqual([r["display_name"] for r in readers], ["Online", "Offline"])
        self.assertEqual(readers[0]["rates"]["chat"], "3.99")

    def test_online_filter(self):
        readers = self.client.get(reverse("accounts:reader_list"), {"online": "true"}).json()["readers"]
        self.assertEqual([r["id"] for r in readers], [self.online.pk])

    def test_detail(self):
        response = self.client.get(reverse("accounts:reader_detail", args=[self.online.pk]))
        self.assertEqual(response.json()["reader"]["display_name"], "Online")
        self.assertEqual(self.client.get(reverse("accounts:reader_detail", args=[999999])).status_code, 404)
