import json
import threading
import unittest
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.db import DatabaseError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser, ReaderProfile
from billing.models import Transaction
from billing.services import ledger_service
from common.exceptions import (
    Forbidden,
    InsufficientBalance,
    InvalidRequest,
    InvalidState,
    LedgerError,
    ReaderNotFound,
    ReaderUnavailable,
    ServiceNotOffered,
    SessionNotActive,
    SessionNotFound,
)
from readings.cleanup.stale_sessions import settle_stale_sessions
from readings.models import ReadingSession
from readings.services.rate_resolver import resolve_rate
from readings.services.session_service import (
    active_sessions_for,
    cancel_session,
    compute_duration_minutes,
    end_session,
    get_session_for,
    set_reader_status,
    start_session,
)
from readings.services.settlement_service import PARTIAL_PAYMENT_WARNING, settle


def make_reader(email="reader@example.com", chat="5.00", phone="0.00", video="0.00", available=True):
    reader = CustomUser.objects.create_user(email=email, password="pass12345", name="Reader", role=CustomUser.ROLE_READER)
    ReaderProfile.objects.create(
        user=reader,
        display_name="Madame Reader",
        chat_rate_per_min=Decimal(chat),
        phone_rate_per_min=Decimal(phone),
        video_rate_per_min=Decimal(video),
        is_available=available,
    )
    return reader


def make_client(email="client@example.com", balance_cents=0):
    client = CustomUser.objects.create_user(email=email, password="pass12345", name="Client")
    if balance_cents:
        ledger_service.add_balance(client, balance_cents)
    client.refresh_from_db()
    return client


def open_session(client, reader, rate_cents=500, started=None, session_type=ReadingSession.TYPE_CHAT):
    """ACTIVE session created directly, bypassing the start gate."""
    return ReadingSession.objects.create(
        client=client,
        reader=reader,
        session_type=session_type,
        status=ReadingSession.STATUS_ACTIVE,
        start_time=started or timezone.now(),
        rate_per_minute_cents=rate_cents,
    )


def balance(user):
    return CustomUser.objects.values_list("balance_cents", flat=True).get(pk=user.pk)


class DurationTests(SimpleTestCase):
    start = datetime(2024, 1, 1, 12, 0, tzinfo=dt_timezone.utc)

    def minutes(self, **delta):
        return compute_duration_minutes(self.start, self.start + timedelta(**delta))

    def test_rounds_up_partial_minutes(self):
        self.assertEqual(self.minutes(seconds=61), 2)
        self.assertEqual(self.minutes(seconds=59, microseconds=500000), 1)

    def test_whole_minutes_are_exact(self):
        self.assertEqual(self.minutes(seconds=60), 1)
        self.assertEqual(self.minutes(seconds=120), 2)
        self.assertEqual(self.minutes(hours=2), 120)

    def test_floor_is_one_minute(self):
        self.assertEqual(self.minutes(seconds=0), 1)
        self.assertEqual(self.minutes(seconds=-30), 1)


class RateResolverTests(TestCase):
    def test_resolves_cents(self):
        reader = make_reader(chat="2.99")
        quote = resolve_rate(reader.pk, "chat")
        self.assertEqual(quote.rate_per_minute_cents, 299)
        self.assertEqual(quote.reader_id, reader.pk)

    def test_unknown_reader(self):
        with self.assertRaises(ReaderNotFound):
            resolve_rate(424242, "CHAT")

    def test_client_is_not_a_reader(self):
        client = make_client()
        with self.assertRaises(ReaderNotFound):
            resolve_rate(client.pk, "CHAT")

    def test_reader_id_must_be_an_integer(self):
        reader = make_reader()
        self.assertEqual(resolve_rate(str(reader.pk), "CHAT").reader_id, reader.pk)
        for bad in (reader.pk + 0.7, True, "1.5", None, [reader.pk]):
            with self.assertRaises(InvalidRequest):
                resolve_rate(bad, "CHAT")

    def test_unavailable_reader(self):
        reader = make_reader(available=False)
        with self.assertRaises(ReaderUnavailable):
            resolve_rate(reader.pk, "CHAT")

    def test_service_not_offered(self):
        reader = make_reader(phone="0.00")
        with self.assertRaises(ServiceNotOffered):
            resolve_rate(reader.pk, "PHONE")

    def test_invalid_session_type(self):
        reader = make_reader()
        for value in ("SMOKE_SIGNALS", "", None, 3):
            with self.assertRaises(InvalidRequest):
                resolve_rate(reader.pk, value)


class StartSessionTests(TestCase):
    def setUp(self):
        self.reader = make_reader()

    def test_balance_gate(self):
        client = make_client(balance_cents=2499)
        with self.assertRaises(InsufficientBalance) as ctx:
            start_session(client, self.reader.pk, "CHAT")
        self.assertEqual(ctx.exception.details, {"required_balance": "25.00", "current_balance": "24.99"})
        self.assertFalse(ReadingSession.objects.exists())

    def test_start_is_a_gate_not_a_hold(self):
        client = make_client(balance_cents=2500)
        session = start_session(client, self.reader.pk, "CHAT")
        self.assertEqual(session.status, ReadingSession.STATUS_ACTIVE)
        self.assertEqual(session.rate_per_minute_cents, 500)
        self.assertIsNotNone(session.start_time)
        self.assertEqual(balance(client), 2500)

    def test_cannot_read_for_yourself(self):
        ledger_service.add_balance(self.reader, 5000)
        with self.assertRaises(InvalidRequest):
            start_session(self.reader, self.reader.pk, "CHAT")

    def test_rate_is_frozen(self):
        client = make_client(balance_cents=10000)
        start = timezone.now() - timedelta(minutes=5)
        session = start_session(client, self.reader.pk, "CHAT", now=start)
        ReaderProfile.objects.filter(user=self.reader).update(chat_rate_per_min=Decimal("9.00"))

        result = end_session(session.pk, client, now=start + timedelta(minutes=2))
        self.assertEqual(result.total_amount_cents, 1000)

    def test_rate_cannot_be_rewritten(self):
        client = make_client(balance_cents=10000)
        session = start_session(client, self.reader.pk, "CHAT")
        session.rate_per_minute_cents = 1
        with self.assertRaises(LedgerError):
            session.save()


class SettlementTests(TestCase):
    def setUp(self):
        self.reader = make_reader()
        self.start = timezone.now() - timedelta(hours=1)

    def test_full_payment(self):
        client = make_client(balance_cents=5000)
        session = open_session(client, self.reader, started=self.start)

        result = end_session(session.pk, client, now=self.start + timedelta(minutes=4))

        self.assertEqual(result.duration_minutes, 4)
        self.assertEqual(result.total_amount_cents, 2000)
        self.assertEqual(result.reader_earnings_cents, 1400)
        self.assertEqual(result.platform_fee_cents, 600)
        self.assertIsNone(result.warning)
        self.assertEqual(balance(client), 3000)
        self.assertEqual(balance(self.reader), 1400)

        session.refresh_from_db()
        self.assertEqual(session.status, ReadingSession.STATUS_COMPLETED)
        self.assertEqual(session.total_minutes, 4)
        self.assertEqual(session.end_time, self.start + timedelta(minutes=4))
        self.assertEqual(session.platform_fee_cents, 600)
        self.assertFalse(session.is_partial_payment)

        debit = Transaction.objects.get(session=session, user=client)
        credit = Transaction.objects.get(session=session, user=self.reader)
        self.assertEqual(debit.amount_cents, -2000)
        self.assertEqual(debit.description, "CHAT session - 4 minutes")
        self.assertEqual(credit.amount_cents, 1400)
        self.assertEqual(credit.description, "Earnings from CHAT session - 4 minutes")
        self.assertEqual(-debit.amount_cents, credit.amount_cents + session.platform_fee_cents)

    def test_partial_payment(self):
        client = make_client(balance_cents=1000)
        session = open_session(client, self.reader, started=self.start)

        result = end_session(session.pk, self.reader, now=self.start + timedelta(minutes=3))

        self.assertEqual(result.total_amount_cents, 1000)
        self.assertEqual(result.reader_earnings_cents, 700)
        self.assertEqual(result.platform_fee_cents, 300)
        self.assertEqual(result.warning, PARTIAL_PAYMENT_WARNING)
        self.assertEqual(balance(client), 0)
        self.assertEqual(balance(self.reader), 700)
        session.refresh_from_db()
        self.assertTrue(session.is_partial_payment)
        self.assertEqual(
            Transaction.objects.get(session=session, user=client).description,
            "CHAT session - 3 minutes (partial)",
        )

    def test_zero_balance_still_writes_pair(self):
        client = make_client()
        session = open_session(client, self.reader, started=self.start)

        result = end_session(session.pk, client, now=self.start + timedelta(minutes=1))

        self.assertEqual(result.total_amount_cents, 0)
        amounts = sorted(Transaction.objects.filter(session=session).values_list("amount_cents", flat=True))
        self.assertEqual(amounts, [0, 0])

    def test_increments_reader_sessions(self):
        client = make_client(balance_cents=5000)
        end_session(open_session(client, self.reader, started=self.start).pk, client, now=self.start + timedelta(minutes=1))
        end_session(open_session(client, self.reader, started=self.start).pk, client, now=self.start + timedelta(minutes=1))
        self.assertEqual(ReaderProfile.objects.get(user=self.reader).total_sessions, 2)

    def test_second_end_is_rejected(self):
        client = make_client(balance_cents=5000)
        session = open_session(client, self.reader, started=self.start)
        end_session(session.pk, client, now=self.start + timedelta(minutes=2))

        with self.assertRaises(SessionNotActive):
            end_session(session.pk, self.reader, now=self.start + timedelta(minutes=5))
        self.assertEqual(balance(client), 4000)
        self.assertEqual(Transaction.objects.filter(session=session).count(), 2)

    def test_claim_guard_with_stale_instance(self):
        client = make_client(balance_cents=5000)
        session = open_session(client, self.reader, started=self.start)
        # Another caller completed it after this instance was loaded
        ReadingSession.objects.filter(pk=session.pk).update(status=ReadingSession.STATUS_COMPLETED)

        with self.assertRaises(SessionNotActive):
            settle(session, 3)
        self.assertFalse(Transaction.objects.filter(session=session).exists())
        self.assertEqual(balance(client), 5000)

    def test_failure_rolls_everything_back(self):
        client = make_client(balance_cents=5000)
        session = open_session(client, self.reader, started=self.start)
        real_post_entry = ledger_service.post_entry
        calls = []

        def fail_on_second_entry(*args, **kwargs):
            if calls:
                raise DatabaseError("disk full")
            calls.append(args)
            return real_post_entry(*args, **kwargs)

        with patch("readings.services.settlement_service.ledger_service.post_entry", side_effect=fail_on_second_entry):
            with self.assertRaises(DatabaseError):
                end_session(session.pk, client, now=self.start + timedelta(minutes=2))

        session.refresh_from_db()
        self.assertEqual(session.status, ReadingSession.STATUS_ACTIVE)
        self.assertIsNone(session.end_time)
        self.assertEqual(balance(client), 5000)
        self.assertEqual(balance(self.reader), 0)
        self.assertFalse(Transaction.objects.filter(session=session).exists())
        self.assertEqual(ReaderProfile.objects.get(user=self.reader).total_sessions, 0)

    def test_participants_only(self):
        client = make_client(balance_cents=5000)
        stranger = make_client(email="stranger@example.com")
        session = open_session(client, self.reader, started=self.start)
        with self.assertRaises(Forbidden):
            end_session(session.pk, stranger)
        with self.assertRaises(SessionNotFound):
            end_session(987654, client)


class CancelSessionTests(TestCase):
    def setUp(self):
        self.reader = make_reader()
        self.client_user = make_client(balance_cents=5000)

    def test_cancel_active(self):
        session = open_session(self.client_user, self.reader)
        cancelled = cancel_session(session.pk, self.client_user)
        self.assertEqual(cancelled.status, ReadingSession.STATUS_CANCELLED)
        self.assertIsNotNone(cancelled.end_time)
        self.assertEqual(balance(self.client_user), 5000)
        self.assertFalse(Transaction.objects.filter(session=session).exists())

    def test_cancel_pending(self):
        session = ReadingSession.objects.create(
            client=self.client_user,
            reader=self.reader,
            session_type=ReadingSession.TYPE_VIDEO,
            rate_per_minute_cents=300,
        )
        self.assertEqual(cancel_session(session.pk, self.reader).status, ReadingSession.STATUS_CANCELLED)

    def test_cannot_cancel_completed(self):
        start = timezone.now() - timedelta(minutes=10)
        session = open_session(self.client_user, self.reader, started=start)
        end_session(session.pk, self.client_user, now=start + timedelta(minutes=2))
        before = balance(self.client_user)

        with self.assertRaises(InvalidState):
            cancel_session(session.pk, self.client_user)
        session.refresh_from_db()
        self.assertEqual(session.status, ReadingSession.STATUS_COMPLETED)
        self.assertEqual(balance(self.client_user), before)

    def test_cannot_end_cancelled(self):
        session = open_session(self.client_user, self.reader)
        cancel_session(session.pk, self.client_user)
        with self.assertRaises(InvalidState):
            cancel_session(session.pk, self.client_user)
        with self.assertRaises(SessionNotActive):
            end_session(session.pk, self.client_user)


class LookupTests(TestCase):
    def setUp(self):
        self.reader = make_reader()
        self.client_user = make_client(balance_cents=5000)

    def test_active_sessions_for_both_sides(self):
        session = open_session(self.client_user, self.reader)
        self.assertEqual(list(active_sessions_for(self.client_user)), [session])
        self.assertEqual(list(active_sessions_for(self.reader)), [session])
        cancel_session(session.pk, self.reader)
        self.assertEqual(list(active_sessions_for(self.client_user)), [])

    def test_get_session_for_stranger(self):
        session = open_session(self.client_user, self.reader)
        self.assertEqual(get_session_for(session.pk, self.reader), session)
        with self.assertRaises(Forbidden):
            get_session_for(session.pk, make_client(email="x@example.com"))

    def test_set_reader_status(self):
        profile = set_reader_status(self.reader, True, is_available=False)
        self.assertTrue(profile.is_online)
        self.assertFalse(profile.is_available)
        with self.assertRaises(Forbidden):
            set_reader_status(self.client_user, True)
        with self.assertRaises(InvalidRequest):
            set_reader_status(self.reader, "yes")


class StaleSessionSweepTests(TestCase):
    def setUp(self):
        self.reader = make_reader()
        self.client_user = make_client(balance_cents=200000)

    def test_settles_stale_and_caps_minutes(self):
        now = timezone.now()
        stale = open_session(self.client_user, self.reader, started=now - timedelta(hours=6))
        fresh = open_session(self.client_user, self.reader, started=now - timedelta(minutes=30))

        result = settle_stale_sessions(now=now)

        self.assertEqual(result["sessions_checked"], 1)
        self.assertEqual(result["sessions_settled"], 1)
        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(stale.status, ReadingSession.STATUS_COMPLETED)
        self.assertEqual(stale.total_minutes, 240)
        self.assertEqual(stale.total_amount_cents, 120000)
        self.assertEqual(fresh.status, ReadingSession.STATUS_ACTIVE)

    def test_is_idempotent(self):
        now = timezone.now()
        open_session(self.client_user, self.reader, started=now - timedelta(hours=5))
        settle_stale_sessions(now=now)
        second = settle_stale_sessions(now=now)
        self.assertEqual(second["sessions_checked"], 0)

    def test_command(self):
        open_session(self.client_user, self.reader, started=timezone.now() - timedelta(hours=5))
        out = StringIO()
        call_command("settle_stale_sessions", stdout=out)
        self.assertIn("1 settled", out.getvalue())


class SessionApiTests(TestCase):
    def setUp(self):
        self.reader = make_reader()
        self.client_user = make_client(balance_cents=5000)

    def post_json(self, url, data=None):
        return self.client.post(url, data=json.dumps(data or {}), content_type="application/json")

    def test_requires_login(self):
        response = self.post_json(reverse("readings:start"), {"reader_id": self.reader.pk, "session_type": "CHAT"})
        self.assertEqual(response.status_code, 401)
        self.assertIn("error", response.json())

    def test_start_and_end(self):
        self.client.force_login(self.client_user)
        response = self.post_json(reverse("readings:start"), {"reader_id": self.reader.pk, "session_type": "CHAT"})
        self.assertEqual(response.status_code, 201)
        session = response.json()["session"]
        self.assertEqual(session["status"], "ACTIVE")
        self.assertEqual(session["rate_per_minute"], "5.00")

        response = self.post_json(reverse("readings:end", args=[session["id"]]))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "COMPLETED")
        self.assertEqual(body["duration_minutes"], 1)
        self.assertEqual(body["total_amount"], "5.00")
        self.assertEqual(body["reader_earnings"], "3.50")
        self.assertEqual(body["platform_fee"], "1.50")
        self.assertNotIn("warning", body)

    def test_start_errors(self):
        self.client.force_login(self.client_user)
        response = self.post_json(reverse("readings:start"), {"reader_id": 999999, "session_type": "CHAT"})
        self.assertEqual(response.status_code, 404)
        response = self.post_json(reverse("readings:start"), {"reader_id": self.reader.pk, "session_type": "PHONE"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Reader does not offer this service type")

    def test_start_rejects_fractional_reader_id(self):
        self.client.force_login(self.client_user)
        response = self.post_json(reverse("readings:start"), {"reader_id": self.reader.pk + 0.7, "session_type": "CHAT"})
        self.assertEqual(response.status_code, 400)
        response = self.post_json(reverse("readings:start"), {"reader_id": True, "session_type": "CHAT"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(ReadingSession.objects.exists())

    def test_start_insufficient_balance_payload(self):
        poor = make_client(email="poor@example.com", balance_cents=100)
        self.client.force_login(poor)
        response = self.post_json(reverse("readings:start"), {"reader_id": self.reader.pk, "session_type": "CHAT"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {
            "error": "Insufficient balance",
            "required_balance": "25.00",
            "current_balance": "1.00",
        })

    def test_end_by_stranger(self):
        session = open_session(self.client_user, self.reader)
        self.client.force_login(make_client(email="stranger@example.com"))
        self.assertEqual(self.post_json(reverse("readings:end", args=[session.pk])).status_code, 403)

    def test_end_storage_failure_is_500(self):
        session = open_session(self.client_user, self.reader)
        self.client.force_login(self.client_user)
        with patch("readings.services.session_service.settle", side_effect=DatabaseError("down")):
            response = self.post_json(reverse("readings:end", args=[session.pk]))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to end session"})
        session.refresh_from_db()
        self.assertEqual(session.status, ReadingSession.STATUS_ACTIVE)

    def test_cancel_completed_is_400(self):
        start = timezone.now() - timedelta(minutes=5)
        session = open_session(self.client_user, self.reader, started=start)
        end_session(session.pk, self.client_user, now=start + timedelta(minutes=1))
        self.client.force_login(self.client_user)
        response = self.post_json(reverse("readings:cancel", args=[session.pk]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Cannot cancel this session")

    def test_detail_and_active(self):
        session = open_session(self.client_user, self.reader)
        self.client.force_login(self.reader)
        response = self.client.get(reverse("readings:detail", args=[session.pk]))
        self.assertEqual(response.json()["session"]["id"], session.pk)
        response = self.client.get(reverse("readings:active"))
        self.assertEqual([s["id"] for s in response.json()["sessions"]], [session.pk])

    def test_reader_status(self):
        self.client.force_login(self.reader)
        response = self.client.put(
            reverse("readings:reader_status"),
            data=json.dumps({"is_online": True}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["reader"]["is_online"])

    def test_invalid_json(self):
        self.client.force_login(self.client_user)
        response = self.client.post(reverse("readings:start"), data="{not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)


@unittest.skipUnless(connection.vendor == "postgresql", "row locks need PostgreSQL")
class ConcurrentEndTests(TransactionTestCase):
    def test_concurrent_ends_settle_once(self):
        reader = make_reader()
        client = make_client(balance_cents=5000)
        start = timezone.now() - timedelta(minutes=3)
        session = open_session(client, reader, started=start)
        barrier = threading.Barrier(2)
        outcomes = []

        def end_as(user):
            barrier.wait()
            try:
                end_session(session.pk, user, now=start + timedelta(minutes=3))
                outcomes.append("settled")
            except SessionNotActive:
                outcomes.append("rejected")
            finally:
                connection.close()

        threads = [threading.Thread(target=end_as, args=(u,)) for u in (client, reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(outcomes), ["rejected", "settled"])
        self.assertEqual(balance(client), 3500)
        self.assertEqual(balance(reader), 1050)
        self.assertEqual(Transaction.objects.filter(session=session).count(), 2)
