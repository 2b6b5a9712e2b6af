import base64
import hashlib
import hmac
import json

import pytest
import requests
import stripe

from voiceover.config import Settings
from voiceover.errors import ProviderError, category_for_status_code
from voiceover.providers.base import PaymentEvent, from_decimal_string, get_header, to_decimal_string
from voiceover.providers.paypal import PayPalProvider
from voiceover.providers.registry import build_providers
from voiceover.providers.square import SquareProvider
from voiceover.providers.stripe_provider import StripeProvider

NOTIFICATION_URL = "https://api.example.com/webhooks/square"

PAYPAL_HEADERS = {
    "PAYPAL-AUTH-ALGO": "SHA256withRSA",
    "PAYPAL-CERT-URL": "https://api.sandbox.paypal.com/v1/notifications/certs/CERT-1",
    "PAYPAL-TRANSMISSION-ID": "tx-1",
    "PAYPAL-TRANSMISSION-SIG": "sig",
    "PAYPAL-TRANSMISSION-TIME": "2024-01-01T00:00:00Z",
}


def fake_response(mocker, payload, status_code=200):
    response = mocker.Mock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.text = json.dumps(payload)
    response.json.return_value = payload
    return response


@pytest.fixture
def square():
    return SquareProvider("sq_token", "LOC1", notification_url=NOTIFICATION_URL)


@pytest.fixture
def paypal():
    return PayPalProvider("client", "secret")


# Shared helpers

def test_amount_conversion():
    assert to_decimal_string(5000) == "50.00"
    assert to_decimal_string(1) == "0.01"
    assert from_decimal_string("50.00") == 5000
    assert from_decimal_string("10.5") == 1050
    assert from_decimal_string(None) is None


def test_header_lookup_is_case_insensitive():
    assert get_header({"X-Square-HmacSha256-Signature": "abc"}, "x-square-hmacsha256-signature") == "abc"
    assert get_header({}, "x-missing") == ""


@pytest.mark.parametrize("status_code, category", [
    (401, "configuration"), (403, "configuration"), (429, "rate_limited"),
    (400, "validation"), (404, "validation"), (500, "unavailable"), (503, "unavailable"),
])
def test_category_for_status_code(status_code, category):
    assert category_for_status_code(status_code) == category


def test_provider_error_hides_detail():
    error = ProviderError("rate_limited", "raw provider body with secrets")

    assert error.status_code == 502
    assert "secrets" not in error.message
    assert ProviderError("configuration").status_code == 500
    assert ProviderError("weird").category == "unavailable"


def test_registry_builds_configured_providers_only():
    assert build_providers(Settings()) == {}

    providers = build_providers(Settings(
        stripe_secret_key="sk_test",
        square_access_token="sq_token",
        square_location_id="LOC1",
    ))

    assert sorted(providers) == ["square", "stripe"]
    assert isinstance(providers["stripe"], StripeProvider)


# Square

def test_square_signature(square):
    body = b'{"type":"payment.updated"}'
    digest = hmac.new(b"sig_key", NOTIFICATION_URL.encode() + body, hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode()

    assert square.verify_webhook_signature(body, {"x-square-hmacsha256-signature": signature}, "sig_key")
    assert not square.verify_webhook_signature(body + b" ", {"x-square-hmacsha256-signature": signature}, "sig_key")
    assert not square.verify_webhook_signature(body, {"x-square-hmacsha256-signature": signature}, "other")
    assert not square.verify_webhook_signature(body, {}, "sig_key")
    assert not square.verify_webhook_signature(body, {"x-square-hmacsha256-signature": signature}, "")


def test_square_create_checkout(square, mocker):
    request = mocker.patch("voiceover.providers.square.requests.request", return_value=fake_response(mocker, {
        "payment_link": {"id": "PL1", "order_id": "SQ_ORDER_1", "url": "https://square.link/u/abc"},
    }))

    session = square.create_checkout(7, 5000, "USD", "Voiceover Order #7", "https://shop/ok", "https://shop/cancel")

    assert session.session_id == "SQ_ORDER_1"
    assert session.approval_url == "https://square.link/u/abc"
    method, url = request.call_args.args
    assert method == "POST"
    assert url == "https://connect.squareupsandbox.com/v2/online-checkout/payment-links"
    body = request.call_args.kwargs["json"]
    assert body["order"]["line_items"][0]["base_price_money"] == {"amount": 5000, "currency": "USD"}
    assert body["checkout_options"]["redirect_url"] == "https://shop/ok"
    assert request.call_args.kwargs["headers"]["Authorization"] == "Bearer sq_token"


def test_square_status_with_tender_is_paid(square, mocker):
    mocker.patch("voiceover.providers.square.requests.request", return_value=fake_response(mocker, {
        "order": {
            "id": "SQ_ORDER_1",
            "state": "OPEN",
            "tenders": [{"id": "T1", "payment_id": "PAY1"}],
            "total_money": {"amount": 5000, "currency": "USD"},
        },
    }))

    status = square.get_status("SQ_ORDER_1")
    captured = square.capture("SQ_ORDER_1")

    assert status.status == "PAID"
    assert status.event == PaymentEvent.CAPTURED
    assert status.amount == 5000
    assert captured.capture_id == "PAY1"


def test_square_errors(square, mocker):
    request = mocker.patch("voiceover.providers.square.requests.request",
                           return_value=fake_response(mocker, {"errors": []}, status_code=401))
    with pytest.raises(ProviderError) as exc:
        square.get_status("SQ_ORDER_1")
    assert exc.value.category == "configuration"

    request.side_effect = requests.Timeout("read timed out")
    with pytest.raises(ProviderError) as exc:
        square.get_status("SQ_ORDER_1")
    assert exc.value.category == "network_timeout"

    with pytest.raises(ProviderError) as exc:
        SquareProvider("", "").get_status("x")
    assert exc.value.category == "configuration"


def test_square_rejects_unknown_environment():
    with pytest.raises(ValueError):
        SquareProvider("tok", "LOC1", environment="staging")


def test_square_parse_event(square):
    body = json.dumps({
        "type": "payment.updated",
        "data": {"object": {"payment": {"id": "PAY1", "order_id": "SQ_ORDER_1", "status": "COMPLETED"}}},
    })

    event = square.parse_event(body)

    assert event.session_id == "SQ_ORDER_1"
    assert event.event == PaymentEvent.CAPTURED
    assert event.capture_id == "PAY1"
    assert square.parse_event(json.dumps({"type": "refund.created"})).event is None


# PayPal

def test_paypal_create_checkout(paypal, mocker):
    request = mocker.patch("voiceover.providers.paypal.requests.request", return_value=fake_response(mocker, {
        "id": "PP_ORDER_1",
        "status": "PAYER_ACTION_REQUIRED",
        "links": [
            {"rel": "self", "href": "https://api-m.sandbox.paypal.com/v2/checkout/orders/PP_ORDER_1"},
            {"rel": "payer-action", "href": "https://www.sandbox.paypal.com/checkoutnow?token=PP_ORDER_1"},
        ],
    }))

    session = paypal.create_checkout(7, 5000, "USD", "Voiceover Order #7", "https://shop/ok", "https://shop/cancel")

    assert session.session_id == "PP_ORDER_1"
    assert session.approval_url == "https://www.sandbox.paypal.com/checkoutnow?token=PP_ORDER_1"
    assert paypal.classify(session.raw_status) == PaymentEvent.PENDING
    body = request.call_args.kwargs["json"]
    assert body["purchase_units"][0]["amount"]["value"] == "50.00"
    assert request.call_args.kwargs["headers"]["PayPal-Request-Id"] == "order-7"
    assert request.call_args.kwargs["auth"] == ("client", "secret")


def test_paypal_create_checkout_without_approval_link(paypal, mocker):
    mocker.patch("voiceover.providers.paypal.requests.request",
                 return_value=fake_response(mocker, {"id": "PP_ORDER_1", "links": []}))

    with pytest.raises(ProviderError):
        paypal.create_checkout(7, 5000, "USD", "d", "https://shop/ok", "https://shop/cancel")


def test_paypal_capture(paypal, mocker):
    request = mocker.patch("voiceover.providers.paypal.requests.request", return_value=fake_response(mocker, {
        "id": "PP_ORDER_1",
        "status": "COMPLETED",
        "purchase_units": [{"payments": {"captures": [
            {"id": "CAP1", "status": "COMPLETED", "amount": {"value": "50.00", "currency_code": "USD"}},
        ]}}],
    }))

    result = paypal.capture("PP_ORDER_1")

    assert result.event == PaymentEvent.CAPTURED
    assert result.capture_id == "CAP1"
    assert result.amount == 5000
    assert request.call_args.args[1].endswith("/v2/checkout/orders/PP_ORDER_1/capture")


def test_paypal_verify_webhook(paypal, mocker):
    request = mocker.patch("voiceover.providers.paypal.requests.request",
                           return_value=fake_response(mocker, {"verification_status": "SUCCESS"}))
    body = json.dumps({"event_type": "PAYMENT.CAPTURE.COMPLETED"}).encode()

    assert paypal.verify_webhook_signature(body, PAYPAL_HEADERS, "WH-1")
    sent = request.call_args.kwargs["json"]
    assert sent["webhook_id"] == "WH-1"
    assert sent["transmission_id"] == "tx-1"

    request.return_value = fake_response(mocker, {"verification_status": "FAILURE"})
    assert not paypal.verify_webhook_signature(body, PAYPAL_HEADERS, "WH-1")


def test_paypal_verify_webhook_missing_headers(paypal, mocker):
    request = mocker.patch("voiceover.providers.paypal.requests.request")
    headers = dict(PAYPAL_HEADERS)
    del headers["PAYPAL-TRANSMISSION-SIG"]

    assert not paypal.verify_webhook_signature(b"{}", headers, "WH-1")
    assert not paypal.verify_webhook_signature(b"{}", PAYPAL_HEADERS, "")
    request.assert_not_called()


def test_paypal_parse_capture_event(paypal):
    body = json.dumps({
        "event_type": "PAYMENT.CAPTURE.COMPLETED",
        "resource": {
            "id": "CAP1",
            "status": "COMPLETED",
            "supplementary_data": {"related_ids": {"order_id": "PP_ORDER_1"}},
        },
    })

    event = paypal.parse_event(body)

    assert event.session_id == "PP_ORDER_1"
    assert event.capture_id == "CAP1"
    assert event.event == PaymentEvent.CAPTURED
    denied = paypal.parse_event(json.dumps({"event_type": "PAYMENT.CAPTURE.DENIED", "resource": {}}))
    assert denied.event == PaymentEvent.FAILED


# Stripe

def test_stripe_create_checkout(mocker):
    create = mocker.patch("stripe.checkout.Session.create", return_value={
        "id": "cs_test_1", "url": "https://checkout.stripe.com/c/pay/cs_test_1",
        "status": "open", "payment_status": "unpaid",
    })

    session = StripeProvider("sk_test").create_checkout(7, 5000, "USD", "Order #7", "https://ok", "https://cancel")

    assert session.session_id == "cs_test_1"
    assert session.raw_status == "UNPAID"
    kwargs = create.call_args.kwargs
    assert kwargs["api_key"] == "sk_test"
    assert kwargs["line_items"][0]["price_data"]["currency"] == "usd"
    assert kwargs["client_reference_id"] == "7"


def test_stripe_requires_api_key():
    with pytest.raises(ProviderError) as exc:
        StripeProvider("").get_status("cs_test_1")
    assert exc.value.category == "configuration"


def test_stripe_maps_sdk_errors(mocker):
    mocker.patch("stripe.checkout.Session.retrieve", side_effect=stripe.error.RateLimitError("slow down"))

    with pytest.raises(ProviderError) as exc:
        StripeProvider("sk_test").get_status("cs_test_1")

    assert exc.value.category == "rate_limited"


def test_stripe_verify_webhook(mocker):
    construct = mocker.patch("stripe.Webhook.construct_event", return_value={"id": "evt_1"})
    provider = StripeProvider("sk_test")

    assert provider.verify_webhook_signature(b"{}", {"Stripe-Signature": "t=1,v1=abc"}, "whsec_test")
    construct.assert_called_once_with(b"{}", "t=1,v1=abc", "whsec_test")

    construct.side_effect = stripe.error.SignatureVerificationError("Invalid", "t=1,v1=abc")
    assert not provider.verify_webhook_signature(b"{}", {"Stripe-Signature": "t=1,v1=abc"}, "whsec_test")
    assert not provider.verify_webhook_signature(b"{}", {}, "whsec_test")


def test_stripe_parse_event():
    provider = StripeProvider("sk_test")

    def event(event_type, payment_status="paid", status="complete"):
        return json.dumps({"type": event_type, "data": {"object": {
            "id": "cs_test_1", "payment_status": payment_status, "status": status, "payment_intent": "pi_1",
        }}})

    completed = provider.parse_event(event("checkout.session.completed"))
    assert completed.event == PaymentEvent.CAPTURED
    assert completed.session_id == "cs_test_1"
    assert completed.capture_id == "pi_1"

    delayed = provider.parse_event(event("checkout.session.completed", payment_status="unpaid"))
    assert delayed.event == PaymentEvent.PENDING

    expired = provider.parse_event(event("checkout.session.expired", payment_status="unpaid", status="expired"))
    assert expired.event == PaymentEvent.FAILED

    assert provider.parse_event(event("charge.refunded")).event is None


@pytest.mark.parametrize("provider", [
    StripeProvider("sk_test"),
    SquareProvider("sq_token", "LOC1", notification_url=NOTIFICATION_URL),
    PayPalProvider("client", "secret"),
])
def test_parse_event_rejects_non_object_body(provider):
    with pytest.raises(ValueError):
        provider.parse_event(b"[]")
    with pytest.raises(ValueError):
        provider.parse_event(b"not json")
