import json
from decimal import Decimal

from django.http import JsonResponse
from django.test import RequestFactory, SimpleTestCase

from common.exceptions import InsufficientBalance, InvalidRequest, NotAReader
from common.http import json_view, parse_json_body
from common.money import dollars_to_cents, percent_of


class DomainErrorTests(SimpleTestCase):
    def test_payload_carries_details(self):
        exc = InsufficientBalance(required_balance="25.00", current_balance="10.00")
        self.assertEqual(exc.status_code, 400)
        self.assertEqual(exc.as_dict(), {
            "error": "Insufficient balance",
            "required_balance": "25.00",
            "current_balance": "10.00",
        })

    def test_not_a_reader_is_forbidden(self):
        self.assertEqual(NotAReader().status_code, 403)
        self.assertEqual(NotAReader().message, "Only readers can request payouts")


class JsonViewTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_domain_error_becomes_response(self):
        @json_view("Failed")
        def view(request):
            raise InvalidRequest("Bad amount", field="amount")

        response = view(self.factory.post("/"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content), {"error": "Bad amount", "field": "amount"})

    def test_unexpected_error_is_500(self):
        @json_view("Failed to do the thing")
        def view(request):
            raise KeyError("boom")

        with self.assertLogs("common.http", level="ERROR"):
            response = view(self.factory.post("/"))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.content), {"error": "Failed to do the thing"})

    def test_passthrough(self):
        @json_view("Failed")
        def view(request):
            return JsonResponse({"ok": True})

        self.assertEqual(view(self.factory.get("/")).status_code, 200)

    def test_parse_json_body(self):
        self.assertEqual(parse_json_body(self.factory.post("/", data="", content_type="application/json")), {})
        request = self.factory.post("/", data="[1, 2]", content_type="application/json")
        with self.assertRaises(InvalidRequest):
            parse_json_body(request)


class MoneyTests(SimpleTestCase):
    def test_dollars_to_cents(self):
        self.assertEqual(dollars_to_cents("4.99"), 499)
        self.assertEqual(dollars_to_cents(None), 0)

    def test_percent_of_half_up(self):
        self.assertEqual(percent_of(15, Decimal("0.70")), 11)
