import base64
import enum
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


class PaymentEvent(str, enum.Enum):
    CAPTURED = "payment_captured"
    FAILED = "payment_failed"
    PENDING = "payment_pending"


@dataclass
class CheckoutSession:
    session_id: str
    approval_url: str
    raw_status: str


@dataclass
class CaptureResult:
    status: str
    event: Optional[PaymentEvent]
    capture_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None


@dataclass
class PaymentStatus:
    status: str
    event: Optional[PaymentEvent]
    amount: Optional[int] = None
    currency: Optional[str] = None


@dataclass
class WebhookEvent:
    event_type: str
    session_id: Optional[str]
    event: Optional[PaymentEvent]
    raw_status: Optional[str] = None
    capture_id: Optional[str] = None


class PaymentProvider(ABC):
    """Uniform interface over an external payment provider.

    All amounts crossing this interface are integer minor currency units;
    each adapter converts to its own wire format.
    """

    name = ""

    # raw provider status (upper-cased) -> normalized event
    status_events: Mapping[str, PaymentEvent] = {}

    @abstractmethod
    def create_checkout(self, order_id: int, amount: int, currency: str, description: str,
                        return_url: str, cancel_url: str) -> CheckoutSession:
        ...

    @abstractmethod
    def capture(self, session_id: str) -> CaptureResult:
        ...

    @abstractmethod
    def get_status(self, session_id: str) -> PaymentStatus:
        ...

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        ...

    @abstractmethod
    def parse_event(self, raw_body: bytes) -> WebhookEvent:
        ...

    def classify(self, raw_status: Optional[str]) -> Optional[PaymentEvent]:
        if not raw_status:
            return None
        return self.status_events.get(raw_status.upper())


def get_header(headers: Mapping[str, str], name: str) -> str:
    """Case-insensitive header lookup that works on plain dicts too."""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
        return ""
    return value


def load_event(raw_body) -> dict:
    """Decode a webhook body; anything but a JSON object is a ValueError."""
    payload = json.loads(raw_body)
    if not isinstance(payload, dict):
        raise ValueError("webhook payload must be a JSON object")
    return payload


def hmac_sha256_base64(secret: str, message: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def signatures_match(expected: str, provided: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def to_decimal_string(amount: int) -> str:
    """Minor units -> "12.34" for providers that want decimal strings."""
    return str((Decimal(amount) / 100).quantize(Decimal("0.01")))


def from_decimal_string(value) -> Optional[int]:
    if value in (None, ""):
        return None
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
