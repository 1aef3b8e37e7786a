"""Tests for helpers, request validation and fee calculation."""

import pytest

from connectpay.services.stripe_service import (
    build_payment_metadata,
    calculate_platform_fee,
    verify_webhook_signature,
)
from connectpay.utils import first_value, object_id, to_json, to_minor_units
from connectpay.validation import (
    RequestValidationError,
    is_absolute_url,
    parse_checkout,
    parse_payment_intent,
)


class TestHelpers:

    def test_first_value(self):
        assert first_value(["a", "b"]) == "a"
        assert first_value([]) is None
        assert first_value("x") == "x"
        assert first_value(None) is None

    def test_object_id(self):
        assert object_id("pi_1") == "pi_1"
        assert object_id({"id": "pi_2", "object": "payment_intent"}) == "pi_2"
        assert object_id(None) is None

    def test_to_minor_units(self):
        assert to_minor_units("150") == 150
        assert to_minor_units(None, default=7) == 7
        assert to_minor_units("", default=7) == 7
        assert to_minor_units("abc", default=3) == 3

    def test_to_json_stringifies_unknown_types(self):
        class Opaque:
            def __str__(self):
                return "opaque"

        assert to_json({"a": [1, Opaque()]}) == {"a": [1, "opaque"]}
        assert to_json(None) is None


class TestFees:

    @pytest.mark.parametrize("subtotal,percent,expected", [
        (1000, 10, 100),
        (999, 10, 99),
        (1, 10, 0),
        (2599, 12.5, 324),
        (5000, 0, 0),
    ])
    def test_fee_rounds_down(self, subtotal, percent, expected):
        assert calculate_platform_fee(subtotal, percent) == expected

    def test_metadata_without_buyer(self):
        metadata = build_payment_metadata("acct_1", 50, quantity=2)
        assert metadata == {
            "sellerStripeAccountId": "acct_1",
            "platformFee": "50",
            "quantity": "2",
        }


class TestSignatureCheck:

    def test_missing_header(self, app):
        check = verify_webhook_signature(b"{}", None, secret="whsec_x")
        assert not check.ok
        assert check.message == "Missing Stripe-Signature header"

    def test_malformed_header_never_raises(self, app):
        check = verify_webhook_signature(b"{}", "garbage", secret="whsec_x")
        assert not check.ok
        assert check.event is None
        assert check.message


class TestValidation:

    def test_checkout_defaults(self):
        data = parse_checkout({"userId": "u1", "priceId": "price_1"}, 10)
        assert data["quantity"] == 1
        assert data["fee_percent"] == 10
        assert data["buyer_id"] is None
        assert data["success_url"] is None

    def test_checkout_rejects_bool_quantity(self):
        with pytest.raises(RequestValidationError) as exc:
            parse_checkout({"userId": "u1", "priceId": "p", "quantity": True}, 10)
        assert exc.value.issues[0]["path"] == ["quantity"]

    def test_checkout_quantity_upper_bound(self):
        with pytest.raises(RequestValidationError):
            parse_checkout({"userId": "u1", "priceId": "p", "quantity": 100}, 10)

    def test_payment_intent_lowercases_currency(self):
        data = parse_payment_intent(
            {"stripeAccountId": "acct_1", "amount": 100, "currency": "JPY"}, 10
        )
        assert data["currency"] == "jpy"

    def test_account_reference_required(self):
        with pytest.raises(RequestValidationError) as exc:
            parse_payment_intent({"amount": 100, "currency": "usd"}, 10)
        messages = [i["message"] for i in exc.value.issues]
        assert "Either userId or stripeAccountId is required" in messages

    @pytest.mark.parametrize("url,expected", [
        ("https://shop.test/ok", True),
        ("http://localhost:5000/x", True),
        ("/relative", False),
        ("javascript:alert(1)", False),
        ("https://", False),
    ])
    def test_absolute_url(self, url, expected):
        assert is_absolute_url(url) is expected
