import json
import logging
from traceback import format_exc

import requests

from voiceover.errors import ProviderError, category_for_status_code
from voiceover.providers.base import (
    CaptureResult,
    CheckoutSession,
    PaymentEvent,
    PaymentProvider,
    PaymentStatus,
    WebhookEvent,
    from_decimal_string,
    get_header,
    load_event,
    to_decimal_string,
)

logger = logging.getLogger(__name__)

BRAND_NAME = "Voiceover Customs"

# Headers PayPal signs every webhook delivery with
TRANSMISSION_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}

EVENT_TYPES = {
    "PAYMENT.CAPTURE.COMPLETED": PaymentEvent.CAPTURED,
    "CHECKOUT.ORDER.COMPLETED": PaymentEvent.CAPTURED,
    "PAYMENT.CAPTURE.PENDING": PaymentEvent.PENDING,
    "CHECKOUT.ORDER.APPROVED": PaymentEvent.PENDING,
    "PAYMENT.CAPTURE.DENIED": PaymentEvent.FAILED,
    "PAYMENT.CAPTURE.DECLINED": PaymentEvent.FAILED,
    "CHECKOUT.ORDER.VOIDED": PaymentEvent.FAILED,
}


def _first_capture(data: dict) -> dict:
    for unit in data.get("purchase_units") or []:
        captures = (unit.get("payments") or {}).get("captures") or []
        if captures:
            return captures[0]
    return {}


class PayPalProvider(PaymentProvider):
    """Redirect-based PayPal checkout (Orders v2) with an explicit capture step."""

    name = "paypal"
    status_events = {
        "COMPLETED": PaymentEvent.CAPTURED,
        "CREATED": PaymentEvent.PENDING,
        "SAVED": PaymentEvent.PENDING,
        "APPROVED": PaymentEvent.PENDING,
        "PAYER_ACTION_REQUIRED": PaymentEvent.PENDING,
        "PENDING": PaymentEvent.PENDING,
        "VOIDED": PaymentEvent.FAILED,
        "DENIED": PaymentEvent.FAILED,
        "DECLINED": PaymentEvent.FAILED,
        "FAILED": PaymentEvent.FAILED,
    }

    def __init__(self, client_id: str, secret_key: str,
                 api_url: str = "https://api-m.sandbox.paypal.com", timeout: float = 15.0):
        self.client_id = client_id
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, payload=None, request_id: str = None) -> dict:
        if not self.client_id or not self.secret_key:
            raise ProviderError("configuration", "PayPal credentials are not set")
        headers = {"Content-Type": "application/json"}
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        try:
            response = requests.request(
                method,
                f"{self.api_url}{path}",
                json=payload,
                headers=headers,
                auth=(self.client_id, self.secret_key),
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.error(f"PayPal {method} {path} did not complete: {str(e)}")
            raise ProviderError("network_timeout", str(e))

        if not response.ok:
            logger.error(f"PayPal {method} {path} returned {response.status_code}: {response.text}")
            raise ProviderError(category_for_status_code(response.status_code), response.text)

        try:
            return response.json()
        except ValueError:
            logger.error(f"PayPal {method} {path} returned invalid JSON\n{format_exc()}")
            raise ProviderError("unavailable", "invalid JSON from PayPal")

    def create_checkout(self, order_id, amount, currency, description, return_url, cancel_url):
        value = to_decimal_string(amount)
        data = self._request("POST", "/v2/checkout/orders", {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": str(order_id),
                "custom_id": str(order_id),
                "description": description,
                "amount": {
                    "currency_code": currency,
                    "value": value,
                    "breakdown": {"item_total": {"currency_code": currency, "value": value}},
                },
            }],
            "payment_source": {
                "paypal": {
                    "experience_context": {
                        "payment_method_preference": "IMMEDIATE_PAYMENT_REQUIRED",
                        "brand_name": BRAND_NAME,
                        "landing_page": "NO_PREFERENCE",
                        "shipping_preference": "NO_SHIPPING",
                        "user_action": "PAY_NOW",
                        "return_url": return_url,
                        "cancel_url": cancel_url,
                    }
                }
            },
        }, request_id=f"order-{order_id}")

        approval_url = next(
            (link.get("href") for link in data.get("links") or [] if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        if not data.get("id") or not approval_url:
            logger.error(f"PayPal order response is missing fields: {data}")
            raise ProviderError("unavailable", "incomplete order response")
        return CheckoutSession(session_id=data["id"], approval_url=approval_url, raw_status=data.get("status", ""))

    def capture(self, session_id):
        data = self._request("POST", f"/v2/checkout/orders/{session_id}/capture", {},
                             request_id=f"capture-{session_id}")
        raw_status = data.get("status", "")
        capture = _first_capture(data)
        money = capture.get("amount") or {}
        return CaptureResult(
            status=raw_status,
            event=self.classify(raw_status),
            capture_id=capture.get("id"),
            amount=from_decimal_string(money.get("value")),
            currency=money.get("currency_code"),
        )

    def get_status(self, session_id):
        data = self._request("GET", f"/v2/checkout/orders/{session_id}")
        raw_status = data.get("status", "")
        units = data.get("purchase_units") or [{}]
        money = units[0].get("amount") or {}
        return PaymentStatus(
            status=raw_status,
            event=self.classify(raw_status),
            amount=from_decimal_string(money.get("value")),
            currency=money.get("currency_code"),
        )

    def verify_webhook_signature(self, raw_body, headers, secret):
        """Ask PayPal to verify the delivery; ``secret`` is our webhook id."""
        if not secret:
            return False
        fields = {key: get_header(headers, header) for key, header in TRANSMISSION_HEADERS.items()}
        if not all(fields.values()):
            return False
        try:
            webhook_event = json.loads(raw_body)
        except ValueError:
            return False

        try:
            data = self._request("POST", "/v1/notifications/verify-webhook-signature", {
                **fields,
                "webhook_id": secret,
                "webhook_event": webhook_event,
            })
        except ProviderError as e:
            logger.warning(f"PayPal webhook verification call failed: {e.detail}")
            return False
        return data.get("verification_status") == "SUCCESS"

    def parse_event(self, raw_body):
        payload = load_event(raw_body)
        event_type = payload.get("event_type", "")
        resource = payload.get("resource") or {}

        if event_type.startswith("PAYMENT.CAPTURE."):
            related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
            session_id = related.get("order_id")
            capture_id = resource.get("id")
        else:
            session_id = resource.get("id")
            capture_id = _first_capture(resource).get("id")

        return WebhookEvent(
            event_type=event_type,
            session_id=session_id,
            event=EVENT_TYPES.get(event_type),
            raw_status=resource.get("status"),
            capture_id=capture_id,
        )
