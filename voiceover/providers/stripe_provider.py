import logging
from traceback import format_exc

import stripe

from voiceover.errors import ProviderError
from voiceover.providers.base import (
    CaptureResult,
    CheckoutSession,
    PaymentEvent,
    PaymentProvider,
    PaymentStatus,
    WebhookEvent,
    get_header,
    load_event,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"

# Checkout Session events -> normalized event (completed is refined by payment_status)
EVENT_TYPES = {
    "checkout.session.completed": None,
    "checkout.session.async_payment_succeeded": PaymentEvent.CAPTURED,
    "checkout.session.async_payment_failed": PaymentEvent.FAILED,
    "checkout.session.expired": PaymentEvent.FAILED,
}


def _error_category(error: stripe.error.StripeError) -> str:
    if isinstance(error, (stripe.error.AuthenticationError, stripe.error.PermissionError)):
        return "configuration"
    if isinstance(error, stripe.error.RateLimitError):
        return "rate_limited"
    if isinstance(error, stripe.error.APIConnectionError):
        return "network_timeout"
    if isinstance(error, (stripe.error.InvalidRequestError, stripe.error.CardError)):
        return "validation"
    return "unavailable"


def _session_status(session) -> str:
    """Collapse a Checkout Session's status/payment_status into one raw value."""
    if session.get("status") == "expired":
        return "EXPIRED"
    return (session.get("payment_status") or "unpaid").upper()


class StripeProvider(PaymentProvider):
    """Card payments through Stripe Checkout Sessions."""

    name = "stripe"
    status_events = {
        "PAID": PaymentEvent.CAPTURED,
        "NO_PAYMENT_REQUIRED": PaymentEvent.CAPTURED,
        "UNPAID": PaymentEvent.PENDING,
        "EXPIRED": PaymentEvent.FAILED,
    }

    def __init__(self, api_key: str):
        self.api_key = api_key

    def _call(self, action: str, func, *args, **kwargs):
        if not self.api_key:
            raise ProviderError("configuration", "STRIPE_SECRET_KEY is not set")
        try:
            return func(*args, api_key=self.api_key, **kwargs)
        except stripe.error.StripeError as e:
            logger.error(f"Stripe {action} failed: {str(e)}\n{format_exc()}")
            raise ProviderError(_error_category(e), str(e))

    def create_checkout(self, order_id, amount, currency, description, return_url, cancel_url):
        session = self._call(
            "checkout creation",
            stripe.checkout.Session.create,
            mode="payment",
            line_items=[{
                "quantity": 1,
                "price_data": {
                    "currency": currency.lower(),
                    "unit_amount": amount,
                    "product_data": {"name": description},
                },
            }],
            client_reference_id=str(order_id),
            metadata={"order_id": str(order_id)},
            success_url=return_url,
            cancel_url=cancel_url,
            idempotency_key=f"order-{order_id}",
        )
        return CheckoutSession(
            session_id=session["id"],
            approval_url=session["url"],
            raw_status=_session_status(session),
        )

    def capture(self, session_id):
        # Checkout captures on completion; reading the session is the capture step
        session = self._call("session retrieval", stripe.checkout.Session.retrieve, session_id)
        raw_status = _session_status(session)
        return CaptureResult(
            status=raw_status,
            event=self.classify(raw_status),
            capture_id=session.get("payment_intent"),
            amount=session.get("amount_total"),
            currency=(session.get("currency") or "").upper() or None,
        )

    def get_status(self, session_id):
        session = self._call("session retrieval", stripe.checkout.Session.retrieve, session_id)
        raw_status = _session_status(session)
        return PaymentStatus(
            status=raw_status,
            event=self.classify(raw_status),
            amount=session.get("amount_total"),
            currency=(session.get("currency") or "").upper() or None,
        )

    def verify_webhook_signature(self, raw_body, headers, secret):
        signature = get_header(headers, SIGNATURE_HEADER)
        if not secret or not signature:
            return False
        try:
            stripe.Webhook.construct_event(raw_body, signature, secret)
        except ValueError:
            logger.warning("Stripe webhook payload could not be parsed")
            return False
        except stripe.error.SignatureVerificationError:
            logger.warning("Stripe webhook signature mismatch")
            return False
        return True

    def parse_event(self, raw_body):
        payload = load_event(raw_body)
        event_type = payload.get("type", "")
        session = (payload.get("data") or {}).get("object") or {}
        raw_status = _session_status(session) if session else None

        if event_type not in EVENT_TYPES:
            event = None
        elif EVENT_TYPES[event_type] is None:
            event = self.classify(raw_status)
        else:
            event = EVENT_TYPES[event_type]

        return WebhookEvent(
            event_type=event_type,
            session_id=session.get("id"),
            event=event,
            raw_status=raw_status,
            capture_id=session.get("payment_intent"),
        )
