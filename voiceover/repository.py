import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from voiceover.errors import ConflictError
from voiceover.models import Admin, Order, User

logger = logging.getLogger(__name__)


class OrderRepository:
    """Persistence for users, orders and the admin record.

    Status changes go through :meth:`transition`, a single conditional
    UPDATE, so two racing requests cannot both apply a transition.
    """

    def __init__(self, db: Session):
        self.db = db

    # Users

    def find_or_create_user(self, first_name: str, last_name: str, email: str,
                            phone: Optional[str] = None) -> User:
        email = email.strip().lower()
        user = self.db.query(User).filter_by(email=email).first()
        if user:
            return user

        user = User(first_name=first_name, last_name=last_name, email=email, phone=phone)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created the same user first
            self.db.rollback()
            return self.db.query(User).filter_by(email=email).one()
        self.db.refresh(user)
        return user

    # Orders

    def create_order(self, **fields) -> Order:
        order = Order(**fields)
        self.db.add(order)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Order insert rejected: {str(e.orig)}")
            raise ConflictError("Payment session is already bound to another order")
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .options(joinedload(Order.user))
            .filter(Order.id == order_id)
            .first()
        )

    def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .options(joinedload(Order.user))
            .filter(Order.payment_intent_id == payment_intent_id)
            .first()
        )

    def bind_payment_session(self, order_id: int, payment_intent_id: str, **values) -> bool:
        """Attach a provider session to an order that has none yet.

        Returns False when the order already had a session (lost race).
        Raises ConflictError when the session id belongs to another order.
        """
        values.update(payment_intent_id=payment_intent_id, updated_at=datetime.now(timezone.utc))
        try:
            updated = (
                self.db.query(Order)
                .filter(Order.id == order_id, Order.payment_intent_id.is_(None))
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Payment session {payment_intent_id} is already bound to another order")
            raise ConflictError("Payment session is already bound to another order")
        return updated == 1

    def transition(self, order_id: int, from_statuses: Iterable[str], to_status: str, **values) -> bool:
        """Set ``to_status`` only if the order is still in one of ``from_statuses``."""
        values.update(status=to_status, updated_at=datetime.now(timezone.utc))
        updated = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.status.in_(list(from_statuses)))
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def update_payment_fields(self, order_id: int, from_statuses: Optional[Iterable[str]] = None, **values) -> bool:
        """Record raw provider data without touching the business status.

        With ``from_statuses`` the write only lands while the order is still
        in one of them. Returns False when nothing was written.
        """
        values = {key: value for key, value in values.items() if value is not None}
        if not values:
            return False
        values["updated_at"] = datetime.now(timezone.utc)
        query = self.db.query(Order).filter(Order.id == order_id)
        if from_statuses is not None:
            query = query.filter(Order.status.in_(list(from_statuses)))
        updated = query.update(values, synchronize_session=False)
        self.db.commit()
        return updated == 1

    def delete_order(self, order_id: int) -> bool:
        deleted = self.db.query(Order).filter(Order.id == order_id).delete(synchronize_session=False)
        self.db.commit()
        return deleted == 1

    def list_orders(self, status: Optional[str] = None, limit: int = 50,
                    offset: int = 0) -> Tuple[List[Order], int]:
        query = self.db.query(Order)
        if status:
            query = query.filter(Order.status == status)
        total = query.count()
        orders = (
            query.options(joinedload(Order.user))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return orders, total

    # Admin

    def get_admin(self, email: str) -> Optional[Admin]:
        return self.db.query(Admin).filter_by(email=email.strip().lower()).first()

    def save_admin(self, email: str, password_hash: str, name: Optional[str] = None) -> Admin:
        admin = self.get_admin(email)
        if admin is None:
            admin = Admin(email=email.strip().lower(), password=password_hash, name=name)
            self.db.add(admin)
        else:
            admin.password = password_hash
            if name:
                admin.name = name
        self.db.commit()
        self.db.refresh(admin)
        return admin
