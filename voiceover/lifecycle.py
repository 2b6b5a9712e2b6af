import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from voiceover.config import Settings
from voiceover.errors import (
    AuthError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from voiceover.models import ADMIN_SETTABLE_STATUSES, Order, OrderStatus
from voiceover.notifications import EmailNotifier
from voiceover.providers.base import PaymentEvent, PaymentProvider, PaymentStatus
from voiceover.repository import OrderRepository
from voiceover.storage import S3Storage

logger = logging.getLogger(__name__)

# (current status, payment event) -> new status; anything missing is a no-op
TRANSITIONS: Dict[Tuple[OrderStatus, PaymentEvent], OrderStatus] = {
    (OrderStatus.PENDING, PaymentEvent.CAPTURED): OrderStatus.PAID,
    (OrderStatus.PENDING, PaymentEvent.FAILED): OrderStatus.PAYMENT_FAILED,
    (OrderStatus.PENDING, PaymentEvent.PENDING): OrderStatus.PENDING,
    (OrderStatus.PAID, PaymentEvent.CAPTURED): OrderStatus.PAID,
}

COMPLETABLE_STATUSES = (OrderStatus.PAID, OrderStatus.PROCESSING)

MAX_PAGE_SIZE = 200


def next_status(current: OrderStatus, event: PaymentEvent) -> Optional[OrderStatus]:
    return TRANSITIONS.get((current, event))


@dataclass
class CustomerInfo:
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


@dataclass
class PaymentLink:
    redirect_url: str
    provider_session_id: str
    order_id: int
    reused: bool = False


@dataclass
class WebhookAck:
    received: bool = True
    order_id: Optional[int] = None
    status: Optional[str] = None
    transitioned: bool = False


@dataclass
class ListedOrder:
    order: Order
    video_url: str
    final_video_url: Optional[str] = None


@dataclass
class OrderPage:
    orders: List[ListedOrder]
    total: int
    limit: int
    offset: int


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class OrderLifecycleService:
    """Owns every Order state change and the side effects attached to it."""

    def __init__(self, db: Session, providers: Mapping[str, PaymentProvider], storage: S3Storage,
                 notifier: EmailNotifier, settings: Settings):
        self.repo = OrderRepository(db)
        self.providers = providers
        self.storage = storage
        self.notifier = notifier
        self.settings = settings

    def _provider(self, name: str) -> PaymentProvider:
        provider = self.providers.get(name)
        if provider is None:
            valid = ", ".join(sorted(self.providers)) or "none configured"
            raise ValidationError(f"Unsupported payment method '{name}'. Must be one of: {valid}")
        return provider

    def _require_order(self, order_id: int) -> Order:
        order = self.repo.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def _notify(self, description: str, send, *args) -> bool:
        try:
            sent = bool(send(*args))
        except Exception:
            logger.exception(f"Notification '{description}' raised; order state is kept")
            return False
        if not sent:
            logger.warning(f"Notification '{description}' was not sent")
        return sent

    # Customer flow

    def create_order(self, customer: CustomerInfo, video_key: str, amount: int, duration: int,
                     payment_method: str, script: Optional[str] = None) -> Order:
        missing = [
            name for name, value in (
                ("firstName", customer.first_name),
                ("lastName", customer.last_name),
                ("email", customer.email),
                ("videoKey", video_key),
                ("paymentMethod", payment_method),
            ) if not value or not str(value).strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        if "@" not in customer.email:
            raise ValidationError("Invalid email address")
        if not _is_positive_int(amount):
            raise ValidationError("Invalid amount: must be a positive integer in minor currency units")
        if not _is_positive_int(duration):
            raise ValidationError("Invalid duration: must be at least 1 second")
        self._provider(payment_method)

        if not self.storage.object_exists(video_key):
            raise ValidationError("Uploaded video not found. Upload the video before placing the order.")

        user = self.repo.find_or_create_user(
            customer.first_name.strip(), customer.last_name.strip(), customer.email, customer.phone
        )
        order = self.repo.create_order(
            user_id=user.id,
            status=OrderStatus.PENDING.value,
            price=amount,
            duration=duration,
            script=script,
            original_video_key=video_key,
            payment_method=payment_method,
        )
        logger.info(f"Order {order.id} created for user {user.id} ({payment_method}, {amount})")
        return order

    def get_order(self, order_id: int) -> Order:
        return self._require_order(order_id)

    def create_payment_link(self, order_id: int, provider: str, amount: Optional[int] = None,
                            return_url: Optional[str] = None, cancel_url: Optional[str] = None) -> PaymentLink:
        adapter = self._provider(provider)
        if amount is not None and not _is_positive_int(amount):
            raise ValidationError("Invalid amount: must be a positive integer in minor currency units")

        order = self._require_order(order_id)
        if amount is not None and amount != order.price:
            raise ValidationError("Amount does not match the order price")

        if order.payment_intent_id:
            if order.payment_method != provider:
                raise ConflictError(
                    f"Order already has a {order.payment_method} payment session"
                )
            logger.info(f"Order {order.id} already has payment session {order.payment_intent_id}")
            return PaymentLink(order.payment_url, order.payment_intent_id, order.id, reused=True)

        if order.status != OrderStatus.PENDING.value:
            raise InvalidStateError(f"Cannot create a payment link for an order that is {order.status}")

        session = adapter.create_checkout(
            order.id,
            order.price,
            self.settings.currency,
            f"Voiceover Order #{order.id} ({order.duration}s)",
            return_url or self.settings.default_return_url(order.id),
            cancel_url or self.settings.default_cancel_url(),
        )
        bound = self.repo.bind_payment_session(
            order.id,
            session.session_id,
            payment_method=provider,
            payment_status=session.raw_status,
            payment_url=session.approval_url,
        )
        if not bound:
            order = self._require_order(order.id)
            logger.warning(
                f"Order {order.id} was bound to {order.payment_intent_id} concurrently; "
                f"provider session {session.session_id} is unused"
            )
            return PaymentLink(order.payment_url, order.payment_intent_id, order.id, reused=True)

        logger.info(f"Order {order.id} bound to {provider} session {session.session_id}")
        return PaymentLink(session.approval_url, session.session_id, order.id)

    # Provider-driven transitions

    def _apply_payment_event(self, order: Order, event: PaymentEvent, raw_status: Optional[str],
                             capture_id: Optional[str]) -> bool:
        current = OrderStatus(order.status)
        target = next_status(current, event)
        if target is None:
            logger.info(f"Order {order.id}: {event.value} ignored while {current.value}")
            return False

        if target == current:
            self.repo.update_payment_fields(order.id, from_statuses=[current.value],
                                            payment_status=raw_status, capture_id=capture_id)
            return False

        extra = {"payment_status": raw_status, "capture_id": capture_id}
        extra = {key: value for key, value in extra.items() if value}
        if not self.repo.transition(order.id, [current.value], target.value, **extra):
            logger.info(f"Order {order.id} left {current.value} before {event.value} was applied")
            return False

        logger.info(f"Order {order.id}: {current.value} -> {target.value} on {event.value}")
        if target == OrderStatus.PAID:
            paid_order = self._require_order(order.id)
            self._notify(f"new order alert #{order.id}", self.notifier.send_new_order_alert, paid_order)
            self._notify(f"order confirmation #{order.id}", self.notifier.send_order_confirmation, paid_order)
        return True

    def handle_payment_webhook(self, raw_body: bytes, headers: Mapping[str, str], provider: str) -> WebhookAck:
        adapter = self.providers.get(provider)
        if adapter is None:
            raise NotFoundError("Unknown payment provider")

        secret = self.settings.webhook_secret_for(provider)
        if not adapter.verify_webhook_signature(raw_body, headers, secret):
            logger.warning(f"Rejected {provider} webhook with an invalid signature")
            raise AuthError("Invalid webhook signature")

        try:
            event = adapter.parse_event(raw_body)
        except ValueError:
            raise ValidationError("Invalid webhook payload")

        if event.event is None:
            logger.info(f"Unhandled {provider} event type: {event.event_type}")
            return WebhookAck()
        if not event.session_id:
            logger.warning(f"{provider} event {event.event_type} carries no session id")
            return WebhookAck()

        order = self.repo.get_by_payment_intent(event.session_id)
        if order is None:
            logger.info(f"No order for {provider} session {event.session_id}; acknowledging")
            return WebhookAck()
        if order.payment_method != provider:
            logger.warning(
                f"Order {order.id} uses {order.payment_method} but got a {provider} event; ignoring"
            )
            return WebhookAck(order_id=order.id, status=order.status)

        transitioned = self._apply_payment_event(order, event.event, event.raw_status, event.capture_id)
        order = self._require_order(order.id)
        return WebhookAck(order_id=order.id, status=order.status, transitioned=transitioned)

    def capture_provider_payment(self, provider_session_id: str, provider: str) -> Order:
        adapter = self._provider(provider)
        order = self.repo.get_by_payment_intent(provider_session_id)
        if order is None:
            raise NotFoundError("No order found for this payment")
        if order.payment_method != provider:
            raise ValidationError("Payment method does not match the order")
        if order.status != OrderStatus.PENDING.value:
            logger.info(f"Order {order.id} is already {order.status}; skipping capture")
            return order

        result = adapter.capture(provider_session_id)
        if result.event is None:
            logger.warning(f"Order {order.id}: unrecognized capture status {result.status}")
            self.repo.update_payment_fields(order.id, from_statuses=[OrderStatus.PENDING.value],
                                            payment_status=result.status, capture_id=result.capture_id)
        else:
            self._apply_payment_event(order, result.event, result.status, result.capture_id)
        return self._require_order(order.id)

    def get_payment_status(self, provider_session_id: str, provider: str) -> PaymentStatus:
        return self._provider(provider).get_status(provider_session_id)

    # Admin flow

    def admin_complete_order(self, order_id: int, final_video_key: str) -> Tuple[Order, bool]:
        final_video_key = (final_video_key or "").strip()
        if not final_video_key:
            raise ValidationError("finalVideoKey is required")

        order = self._require_order(order_id)
        completable = [status.value for status in COMPLETABLE_STATUSES]
        if order.status not in completable or not self.repo.transition(
            order.id, completable, OrderStatus.COMPLETE.value, final_video_key=final_video_key
        ):
            raise InvalidStateError("Order must be paid or processing to complete")

        order = self._require_order(order.id)
        logger.info(f"Order {order.id} completed with {final_video_key}")

        download_url = None
        try:
            download_url = self.storage.generate_download_url(final_video_key)
        except ProviderError as e:
            logger.warning(f"No download link for order {order.id}: {e.detail}")
        notified = self._notify(
            f"completion notice #{order.id}", self.notifier.send_completion_notice, order, download_url
        )
        return order, notified

    def admin_update_status(self, order_id: int, new_status: str) -> Order:
        valid = [status.value for status in ADMIN_SETTABLE_STATUSES]
        if new_status not in valid:
            raise ValidationError("Invalid status. Must be one of: " + ", ".join(valid))

        order = self._require_order(order_id)
        if order.status == new_status:
            return order
        if new_status == OrderStatus.COMPLETE.value and not order.final_video_key:
            raise InvalidStateError("Order cannot be marked complete without a final video")

        previous = order.status
        values = {}
        if previous == OrderStatus.PAYMENT_FAILED.value and new_status == OrderStatus.PENDING.value:
            # Release the dead provider session so a fresh link can be issued
            values = dict(payment_intent_id=None, payment_url=None, payment_status=None, capture_id=None)

        if not self.repo.transition(order.id, [previous], new_status, **values):
            raise ConflictError("Order status changed concurrently, please retry")
        logger.info(f"Order {order.id}: {previous} -> {new_status} by admin override")
        return self._require_order(order.id)

    def admin_delete_order(self, order_id: int) -> None:
        if not self.repo.delete_order(order_id):
            raise NotFoundError("Order not found")
        logger.info(f"Order {order_id} deleted by admin")

    def list_orders(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> OrderPage:
        if status and status not in [s.value for s in OrderStatus]:
            raise ValidationError(
                "Invalid status filter. Must be one of: " + ", ".join(s.value for s in OrderStatus)
            )
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        orders, total = self.repo.list_orders(status=status, limit=limit, offset=offset)
        listed = []
        for order in orders:
            # URLs are generated per read and never stored
            listed.append(ListedOrder(
                order=order,
                video_url=self.storage.generate_download_url(order.original_video_key),
                final_video_url=(
                    self.storage.generate_download_url(order.final_video_key)
                    if order.final_video_key else None
                ),
            ))
        return OrderPage(orders=listed, total=total, limit=limit, offset=offset)
