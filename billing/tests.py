import hashlib
import hmac
import json
import threading
import time
import unittest
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock, patch

import stripe
from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser, ReaderProfile
from billing.models import Payment, Transaction
from billing.services import ledger_service, reporting_service
from billing.services.payout_service import PayoutResult, request_payout
from billing.services.topup_service import confirm_topup, create_topup_intent, mark_topup_failed
from common.exceptions import (
    BelowMinimum,
    InsufficientBalance,
    InvalidRequest,
    LedgerError,
    NotAReader,
    PaymentsUnavailable,
    TopUpError,
)
from common.money import format_cents, to_cents
from readings.services.session_service import end_session, start_session
from readings.services.settlement_service import split_revenue

WEBHOOK_SECRET = "whsec_test_secret"


def make_reader(email="reader@example.com", chat_rate="5.00"):
    reader = CustomUser.objects.create_user(email=email, password="pass12345", name="Reader", role=CustomUser.ROLE_READER)
    ReaderProfile.objects.create(user=reader, display_name="Reader", chat_rate_per_min=Decimal(chat_rate))
    return reader


def make_client(email="client@example.com", balance_cents=0):
    client = CustomUser.objects.create_user(email=email, password="pass12345", name="Client")
    if balance_cents:
        ledger_service.add_balance(client, balance_cents)
    client.refresh_from_db()
    return client


def signed_header(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class MoneyMathTests(SimpleTestCase):
    def test_split_twenty_dollars(self):
        self.assertEqual(split_revenue(2000), (1400, 600))

    def test_split_rounds_reader_share_half_up(self):
        # 5 cents * 0.70 = 3.5 -> 4
        self.assertEqual(split_revenue(5), (4, 1))
        self.assertEqual(split_revenue(0), (0, 0))

    def test_split_always_sums_to_total(self):
        for total in (1, 3, 7, 99, 1001, 123457):
            reader, platform = split_revenue(total)
            self.assertEqual(reader + platform, total)

    def test_to_cents(self):
        self.assertEqual(to_cents("14.99"), 1499)
        self.assertEqual(to_cents(15), 1500)
        self.assertEqual(to_cents(15.5), 1550)

    def test_to_cents_rejects_bad_input(self):
        for value in (None, True, "abc", "1.001", "NaN", "1e30", 1e40):
            with self.assertRaises(InvalidRequest):
                to_cents(value)

    def test_format_cents(self):
        self.assertEqual(format_cents(1400), "14.00")
        self.assertEqual(format_cents(-550), "-5.50")

    def test_payout_result_payload(self):
        result = PayoutResult(transaction_id=7, amount_cents=1500, method="STRIPE", status="pending", remaining_balance_cents=250)
        self.assertEqual(
            result.as_dict(),
            {"id": 7, "amount": "15.00", "method": "STRIPE", "status": "pending", "remaining_balance": "2.50"},
        )


class LedgerServiceTests(TestCase):
    def setUp(self):
        self.user = make_client(balance_cents=1000)

    def test_add_balance_records_transaction(self):
        tx, balance = ledger_service.add_balance(self.user, 500)
        self.assertEqual(balance, 1500)
        self.assertEqual(tx.type, Transaction.TYPE_BALANCE_ADD)
        self.assertEqual(tx.amount_cents, 500)
        self.assertEqual(tx.description, "Added $5.00 to balance")

    def test_add_balance_rejects_non_positive(self):
        with self.assertRaises(LedgerError):
            ledger_service.add_balance(self.user, 0)

    def test_debit_beyond_balance_is_rejected(self):
        with self.assertRaises(InsufficientBalance) as ctx:
            ledger_service.post_entry(self.user.pk, Transaction.TYPE_PAYOUT, -1001, "too much")
        self.assertEqual(ctx.exception.details["current_balance"], "10.00")
        self.user.refresh_from_db()
        self.assertEqual(self.user.balance_cents, 1000)
        self.assertEqual(Transaction.objects.filter(user=self.user).count(), 1)

    def test_debit_can_drain_to_zero(self):
        _, balance = ledger_service.post_entry(self.user.pk, Transaction.TYPE_PAYOUT, -1000, "all of it")
        self.assertEqual(balance, 0)

    def test_unknown_transaction_type(self):
        with self.assertRaises(LedgerError):
            ledger_service.record_transaction(self.user.pk, "PLATFORM_FEE", 10, "nope")

    def test_transactions_are_append_only(self):
        tx = Transaction.objects.get(user=self.user)
        tx.description = "edited"
        with self.assertRaises(LedgerError):
            tx.save()
        with self.assertRaises(LedgerError):
            tx.delete()

    def test_reconcile(self):
        ledger_service.post_entry(self.user.pk, Transaction.TYPE_PAYOUT, -300, "out")
        result = ledger_service.reconcile(self.user.pk)
        self.assertTrue(result.is_balanced)
        self.assertEqual(result.balance_cents, 700)

    def test_lock_users_returns_fresh_rows(self):
        other = make_client(email="other@example.com", balance_cents=200)
        users = ledger_service.lock_users(other.pk, self.user.pk, self.user.pk)
        self.assertEqual(sorted(users), sorted([self.user.pk, other.pk]))
        self.assertEqual(users[other.pk].balance_cents, 200)


class PayoutServiceTests(TestCase):
    def setUp(self):
        self.reader = make_reader()
        ledger_service.post_entry(self.reader.pk, Transaction.TYPE_SESSION_PAYMENT, 2000, "Earnings", reader_id=self.reader.pk)
        self.reader.refresh_from_db()

    def test_client_cannot_request_payout(self):
        client = make_client(balance_cents=5000)
        with self.assertRaises(NotAReader):
            request_payout(client, 1500)

    def test_payout_floor(self):
        with self.assertRaises(BelowMinimum) as ctx:
            request_payout(self.reader, 1499)
        self.assertEqual(ctx.exception.details["minimum_amount"], "15.00")

        result = request_payout(self.reader, 1500)
        self.assertEqual(result.status, "pending")
        self.assertEqual(result.remaining_balance_cents, 500)

    def test_payout_records_transaction(self):
        result = request_payout(self.reader, 1500, method="paypal")
        tx = Transaction.objects.get(pk=result.transaction_id)
        self.assertEqual(tx.type, Transaction.TYPE_PAYOUT)
        self.assertEqual(tx.amount_cents, -1500)
        self.assertEqual(tx.reader_id, self.reader.pk)
        self.assertEqual(tx.description, "Payout request via PAYPAL - $15.00")

    def test_payout_insufficient_balance(self):
        with self.assertRaises(InsufficientBalance) as ctx:
            request_payout(self.reader, 2001)
        self.assertEqual(ctx.exception.details, {"available_balance": "20.00", "requested_amount": "20.01"})
        self.reader.refresh_from_db()
        self.assertEqual(self.reader.balance_cents, 2000)

    def test_invalid_method(self):
        with self.assertRaises(InvalidRequest):
            request_payout(self.reader, 1500, method="CASH")

    def test_payout_endpoint(self):
        self.client.force_login(self.reader)
        response = self.client.post(
            reverse("billing:payout_request"),
            data=json.dumps({"amount": 15, "method": "BANK_TRANSFER"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        payout = response.json()["payout"]
        self.assertEqual(payout["amount"], "15.00")
        self.assertEqual(payout["status"], "pending")
        self.assertEqual(payout["remaining_balance"], "5.00")

    def test_payout_endpoint_below_minimum(self):
        self.client.force_login(self.reader)
        response = self.client.post(
            reverse("billing:payout_request"),
            data=json.dumps({"amount": "14.99"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["minimum_amount"], "15.00")

    def test_payout_endpoint_huge_amount_is_rejected(self):
        self.client.force_login(self.reader)
        response = self.client.post(
            reverse("billing:payout_request"),
            data=json.dumps({"amount": "1e30"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Transaction.objects.filter(type=Transaction.TYPE_PAYOUT).count(), 0)

    def test_payout_endpoint_requires_login(self):
        response = self.client.post(reverse("billing:payout_request"), data="{}", content_type="application/json")
        self.assertEqual(response.status_code, 401)

    def test_payout_endpoint_storage_failure(self):
        self.client.force_login(self.reader)
        with patch("billing.views.request_payout", side_effect=RuntimeError("db down")):
            response = self.client.post(
                reverse("billing:payout_request"),
                data=json.dumps({"amount": 15}),
                content_type="application/json",
            )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to request payout"})


class TopUpServiceTests(TestCase):
    def setUp(self):
        self.user = make_client()

    def test_confirm_topup_is_idempotent(self):
        first = confirm_topup("pi_123", self.user.pk, 2000)
        second = confirm_topup("pi_123", self.user.pk, 2000)
        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.user.refresh_from_db()
        self.assertEqual(self.user.balance_cents, 2000)
        self.assertEqual(Payment.objects.get(stripe_payment_intent_id="pi_123").status, Payment.STATUS_SUCCEEDED)

    def test_confirm_topup_unknown_user(self):
        with self.assertRaises(TopUpError):
            confirm_topup("pi_404", 999999, 2000)
        self.assertFalse(Payment.objects.filter(stripe_payment_intent_id="pi_404").exists())

    def test_failed_never_downgrades_succeeded(self):
        confirm_topup("pi_ok", self.user.pk, 1000)
        self.assertFalse(mark_topup_failed("pi_ok"))
        self.assertEqual(Payment.objects.get(stripe_payment_intent_id="pi_ok").status, Payment.STATUS_SUCCEEDED)

    @override_settings(STRIPE_SECRET_KEY="")
    def test_create_intent_without_stripe(self):
        with self.assertRaises(PaymentsUnavailable):
            create_topup_intent(self.user, 2000)

    def test_create_intent_amount_bounds(self):
        with self.assertRaises(BelowMinimum):
            create_topup_intent(self.user, 499)
        with self.assertRaises(InvalidRequest):
            create_topup_intent(self.user, 100001)

    @patch("billing.services.topup_service.is_configured", return_value=True)
    @patch("billing.services.topup_service.get_client")
    def test_create_intent_records_pending_payment(self, get_client, _configured):
        stripe_client = Mock()
        stripe_client.PaymentIntent.create.return_value = SimpleNamespace(id="pi_new", client_secret="pi_new_secret")
        get_client.return_value = stripe_client

        result = create_topup_intent(self.user, 2500, attempt_id="abc")

        self.assertEqual(result["client_secret"], "pi_new_secret")
        kwargs = stripe_client.PaymentIntent.create.call_args.kwargs
        self.assertEqual(kwargs["amount"], 2500)
        self.assertEqual(kwargs["metadata"]["payment_type"], "wallet_topup")
        self.assertEqual(kwargs["metadata"]["user_id"], str(self.user.pk))
        self.assertEqual(kwargs["idempotency_key"], f"wallet_topup:{self.user.pk}:abc")
        payment = Payment.objects.get(stripe_payment_intent_id="pi_new")
        self.assertEqual(payment.status, Payment.STATUS_PENDING)
        self.user.refresh_from_db()
        self.assertEqual(self.user.balance_cents, 0)

    @patch("billing.services.topup_service.is_configured", return_value=True)
    @patch("billing.services.topup_service.get_client")
    def test_retried_attempt_does_not_reopen_succeeded_payment(self, get_client, _configured):
        stripe_client = Mock()
        stripe_client.PaymentIntent.create.return_value = SimpleNamespace(id="pi_retry", client_secret="pi_retry_secret")
        get_client.return_value = stripe_client

        create_topup_intent(self.user, 2000, attempt_id="a1")
        confirm_topup("pi_retry", self.user.pk, 2000)
        # Same idempotency key, Stripe hands back the same intent
        result = create_topup_intent(self.user, 2000, attempt_id="a1")
        self.assertEqual(result["payment_intent_id"], "pi_retry")
        self.assertEqual(Payment.objects.get(stripe_payment_intent_id="pi_retry").status, Payment.STATUS_SUCCEEDED)

        self.assertIsNone(confirm_topup("pi_retry", self.user.pk, 2000))
        self.user.refresh_from_db()
        self.assertEqual(self.user.balance_cents, 2000)
        self.assertEqual(Transaction.objects.filter(user=self.user, type=Transaction.TYPE_BALANCE_ADD).count(), 1)

    @patch("billing.services.topup_service.is_configured", return_value=True)
    @patch("billing.services.topup_service.get_client")
    def test_create_intent_stripe_error(self, get_client, _configured):
        stripe_client = Mock()
        stripe_client.PaymentIntent.create.side_effect = stripe.StripeError("card declined")
        get_client.return_value = stripe_client
        with self.assertRaises(TopUpError):
            create_topup_intent(self.user, 2500)
        self.assertFalse(Payment.objects.exists())


@override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
class StripeWebhookTests(TestCase):
    def setUp(self):
        self.user = make_client()

    def _event(self, event_type, pi_id="pi_hook", amount=2000):
        return json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": event_type,
            "data": {"object": {
                "id": pi_id,
                "object": "payment_intent",
                "amount": amount,
                "currency": "usd",
                "metadata": {"payment_type": "wallet_topup", "user_id": str(self.user.pk)},
            }},
        })

    def _post(self, payload, header=None):
        return self.client.post(
            reverse("billing:stripe_webhook"),
            data=payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=header if header is not None else signed_header(payload),
        )

    def test_succeeded_credits_once(self):
        payload = self._event("payment_intent.succeeded")
        self.assertEqual(self._post(payload).status_code, 200)
        self.assertEqual(self._post(payload).status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.balance_cents, 2000)
        self.assertEqual(Transaction.objects.filter(user=self.user, type=Transaction.TYPE_BALANCE_ADD).count(), 1)

    def test_failed_marks_payment(self):
        Payment.objects.create(stripe_payment_intent_id="pi_hook", user=self.user, amount_cents=2000)
        self.assertEqual(self._post(self._event("payment_intent.payment_failed")).status_code, 200)
        self.assertEqual(Payment.objects.get(stripe_payment_intent_id="pi_hook").status, Payment.STATUS_FAILED)

    def test_bad_signature_is_rejected(self):
        payload = self._event("payment_intent.succeeded")
        response = self._post(payload, header=signed_header(payload, secret="whsec_other"))
        self.assertEqual(response.status_code, 400)
        self.user.refresh_from_db()
        self.assertEqual(self.user.balance_cents, 0)

    def test_missing_signature_is_rejected(self):
        self.assertEqual(self._post(self._event("payment_intent.succeeded"), header="").status_code, 400)


class ReportingServiceTests(TestCase):
    def setUp(self):
        self.reader = make_reader()
        self.customer = make_client(balance_cents=5000)
        start = timezone.now() - timedelta(minutes=15)
        session = start_session(self.customer, self.reader.pk, "CHAT", now=start)
        end_session(session.pk, self.customer, now=start + timedelta(minutes=10))
        request_payout(self.reader, 1500)
        self.admin = CustomUser.objects.create_superuser(email="admin@example.com", password="pass12345")

    def test_reader_earnings(self):
        report = reporting_service.reader_earnings(self.reader)
        self.assertEqual(report["earnings"], {
            "total_earned": "35.00",
            "total_paid_out": "15.00",
            "available_balance": "20.00",
            "total_sessions": 1,
        })
        self.assertEqual(report["sessions"][0]["reader_earnings"], "35.00")
        self.assertEqual(report["payouts"][0]["amount"], "15.00")

    def test_reader_analytics(self):
        analytics = reporting_service.reader_analytics(self.reader)["analytics"]
        self.assertEqual(analytics["last_period"]["sessions"], 1)
        self.assertEqual(analytics["last_period"]["earnings"], "35.00")
        self.assertEqual(analytics["last_period"]["average_session_length"], 10.0)
        self.assertEqual(analytics["by_type"]["CHAT"], {"count": 1, "earnings": "35.00"})

    def test_platform_stats(self):
        stats = reporting_service.platform_stats()["stats"]
        self.assertEqual(stats["total_revenue"], "50.00")
        self.assertEqual(stats["reader_earnings"], "35.00")
        self.assertEqual(stats["platform_revenue"], "15.00")
        self.assertEqual(stats["total_payouts"], "15.00")
        self.assertEqual(stats["completed_sessions"], 1)

    def test_all_payouts_admin_only(self):
        self.client.force_login(self.reader)
        self.assertEqual(self.client.get(reverse("billing:payout_all")).status_code, 403)
        self.client.force_login(self.admin)
        response = self.client.get(reverse("billing:payout_all"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payouts"][0]["reader"]["email"], self.reader.email)

    def test_earnings_endpoint(self):
        self.client.force_login(self.reader)
        response = self.client.get(reverse("billing:payout_earnings"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["earnings"]["available_balance"], "20.00")

    def test_earnings_forbidden_for_client(self):
        self.client.force_login(self.customer)
        self.assertEqual(self.client.get(reverse("billing:payout_earnings")).status_code, 403)


@unittest.skipUnless(connection.vendor == "postgresql", "row locks need PostgreSQL")
class ConcurrentPayoutTests(TransactionTestCase):
    def test_concurrent_payouts_never_overdraw(self):
        reader = make_reader()
        ledger_service.add_balance(reader, 2000)
        reader.refresh_from_db()
        barrier = threading.Barrier(2)
        outcomes = []

        def payout():
            barrier.wait()
            try:
                request_payout(reader, 1500)
                outcomes.append("paid")
            except InsufficientBalance:
                outcomes.append("rejected")
            finally:
                connection.close()

        threads = [threading.Thread(target=payout) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(outcomes), ["paid", "rejected"])
        reader.refresh_from_db()
        self.assertEqual(reader.balance_cents, 500)
        self.assertEqual(Transaction.objects.filter(user=reader, type=Transaction.TYPE_PAYOUT).count(), 1)
        self.assertTrue(ledger_service.reconcile(reader.pk).is_balanced)
