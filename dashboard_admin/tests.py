from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser, ReaderProfile
from billing.services.ledger_service import add_balance
from readings.services.session_service import end_session, start_session


class AdminDashboardTests(TestCase):
    def setUp(self):
        self.admin = CustomUser.objects.create_superuser(email="admin@example.com", password="pass12345")
        self.reader = CustomUser.objects.create_user(email="reader@example.com", name="Reader", role=CustomUser.ROLE_READER)
        ReaderProfile.objects.create(user=self.reader, display_name="Reader", chat_rate_per_min=Decimal("4.00"))
        self.customer = CustomUser.objects.create_user(email="client@example.com", name="Client")
        add_balance(self.customer, 4000)
        start = timezone.now() - timedelta(minutes=10)
        session = start_session(self.customer, self.reader.pk, "CHAT", now=start)
        end_session(session.pk, self.customer, now=start + timedelta(minutes=5))

    def test_non_admin_is_forbidden(self):
        self.client.force_login(self.reader)
        for name in ("stats", "users", "readers"):
            self.assertEqual(self.client.get(reverse(f"dashboard_admin:{name}")).status_code, 403, name)

    def test_anonymous_is_unauthorized(self):
        self.assertEqual(self.client.get(reverse("dashboard_admin:stats")).status_code, 401)

    def test_stats(self):
        self.client.force_login(self.admin)
        body = self.client.get(reverse("dashboard_admin:stats")).json()
        stats = body["stats"]
        self.assertEqual(stats["total_users"], 3)
        self.assertEqual(stats["total_readers"], 1)
        self.assertEqual(stats["total_clients"], 1)
        self.assertEqual(stats["completed_sessions"], 1)
        self.assertEqual(stats["total_revenue"], "20.00")
        self.assertEqual(stats["platform_revenue"], "6.00")
        self.assertEqual(len(body["recent_transactions"]), 3)

    def test_users_filter(self):
        self.client.force_login(self.admin)
        users = self.client.get(reverse("dashboard_admin:users"), {"role": "client"}).json()["users"]
        self.assertEqual([u["email"] for u in users], ["client@example.com"])
        self.assertEqual(users[0]["balance"], "20.00")
        response = self.client.get(reverse("dashboard_admin:users"), {"role": "wizard"})
        self.assertEqual(response.status_code, 400)

    def test_readers(self):
        self.client.force_login(self.admin)
        readers = self.client.get(reverse("dashboard_admin:readers")).json()["readers"]
        self.assertEqual(len(readers), 1)
        self.assertEqual(readers[0]["balance"], "14.00")
        self.assertEqual(readers[0]["profile"]["total_sessions"], 1)
