import logging
import uuid
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
    get_header,
    hmac_sha256_base64,
    load_event,
    signatures_match,
)

logger = logging.getLogger(__name__)

SQUARE_URLS = {
    "sandbox": "https://connect.squareupsandbox.com",
    "production": "https://connect.squareup.com",
}
SQUARE_VERSION = "2024-07-17"
SIGNATURE_HEADER = "x-square-hmacsha256-signature"
PAYMENT_EVENT_TYPES = ("payment.created", "payment.updated")


class SquareProvider(PaymentProvider):
    """Card payments through Square hosted payment links.

    The Square order behind the payment link is the provider session; its id
    is what gets stored on our Order.
    """

    name = "square"
    status_events = {
        "PAID": PaymentEvent.CAPTURED,
        "COMPLETED": PaymentEvent.CAPTURED,
        "OPEN": PaymentEvent.PENDING,
        "DRAFT": PaymentEvent.PENDING,
        "APPROVED": PaymentEvent.PENDING,
        "PENDING": PaymentEvent.PENDING,
        "FAILED": PaymentEvent.FAILED,
        "CANCELED": PaymentEvent.FAILED,
    }

    def __init__(self, access_token: str, location_id: str, environment: str = "sandbox",
                 notification_url: str = "", timeout: float = 15.0):
        if environment not in SQUARE_URLS:
            raise ValueError(f"Invalid SQUARE_ENVIRONMENT: '{environment}'. Must be 'sandbox' or 'production'.")
        self.access_token = access_token
        self.location_id = location_id
        self.base_url = SQUARE_URLS[environment]
        self.notification_url = notification_url
        self.timeout = timeout

    def _request(self, method: str, path: str, payload=None) -> dict:
        if not self.access_token or not self.location_id:
            raise ProviderError("configuration", "Square access token or location id is not set")
        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Square-Version": SQUARE_VERSION,
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.error(f"Square {method} {path} did not complete: {str(e)}")
            raise ProviderError("network_timeout", str(e))

        if not response.ok:
            logger.error(f"Square {method} {path} returned {response.status_code}: {response.text}")
            raise ProviderError(category_for_status_code(response.status_code), response.text)

        try:
            return response.json()
        except ValueError:
            logger.error(f"Square {method} {path} returned invalid JSON\n{format_exc()}")
            raise ProviderError("unavailable", "invalid JSON from Square")

    def create_checkout(self, order_id, amount, currency, description, return_url, cancel_url):
        data = self._request("POST", "/v2/online-checkout/payment-links", {
            "idempotency_key": str(uuid.uuid4()),
            "description": description,
            "order": {
                "location_id": self.location_id,
                "reference_id": str(order_id),
                "line_items": [{
                    "name": description,
                    "quantity": "1",
                    "base_price_money": {"amount": amount, "currency": currency},
                }],
            },
            "checkout_options": {"redirect_url": return_url},
        })
        link = data.get("payment_link") or {}
        if not link.get("order_id") or not link.get("url"):
            logger.error(f"Square payment link response is missing fields: {data}")
            raise ProviderError("unavailable", "incomplete payment link response")
        return CheckoutSession(session_id=link["order_id"], approval_url=link["url"], raw_status="OPEN")

    def _retrieve_order(self, session_id: str) -> dict:
        return self._request("GET", f"/v2/orders/{session_id}").get("order") or {}

    @staticmethod
    def _order_status(order: dict) -> str:
        # Any tender on the order means the buyer paid
        if order.get("tenders"):
            return "PAID"
        return order.get("state") or "OPEN"

    def capture(self, session_id):
        # Payment-link payments complete on their own; read the order back
        order = self._retrieve_order(session_id)
        raw_status = self._order_status(order)
        tenders = order.get("tenders") or []
        money = order.get("total_money") or {}
        return CaptureResult(
            status=raw_status,
            event=self.classify(raw_status),
            capture_id=tenders[0].get("payment_id") or tenders[0].get("id") if tenders else None,
            amount=money.get("amount"),
            currency=money.get("currency"),
        )

    def get_status(self, session_id):
        order = self._retrieve_order(session_id)
        raw_status = self._order_status(order)
        money = order.get("total_money") or {}
        return PaymentStatus(
            status=raw_status,
            event=self.classify(raw_status),
            amount=money.get("amount"),
            currency=money.get("currency"),
        )

    def verify_webhook_signature(self, raw_body, headers, secret):
        provided = get_header(headers, SIGNATURE_HEADER)
        if not secret or not provided or not self.notification_url:
            return False
        expected = hmac_sha256_base64(secret, self.notification_url.encode("utf-8") + raw_body)
        return signatures_match(expected, provided)

    def parse_event(self, raw_body):
        payload = load_event(raw_body)
        event_type = payload.get("type", "")
        payment = ((payload.get("data") or {}).get("object") or {}).get("payment") or {}
        raw_status = payment.get("status")
        event = self.classify(raw_status) if event_type in PAYMENT_EVENT_TYPES else None
        return WebhookEvent(
            event_type=event_type,
            session_id=payment.get("order_id"),
            event=event,
            raw_status=raw_status,
            capture_id=payment.get("id"),
        )
