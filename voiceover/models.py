import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from voiceover.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    COMPLETE = "complete"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"


# Statuses an admin may set by hand
ADMIN_SETTABLE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.COMPLETE,
)

TERMINAL_STATUSES = (OrderStatus.COMPLETE, OrderStatus.CANCELLED)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    orders = relationship("Order", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value, index=True)
    price = Column(Integer, nullable=False)                 # minor currency units
    duration = Column(Integer, nullable=False)              # seconds
    script = Column(Text, nullable=True)
    original_video_key = Column(String, nullable=False)
    final_video_key = Column(String, nullable=True)
    payment_method = Column(String, nullable=False)         # provider name
    payment_intent_id = Column(String, unique=True, index=True, nullable=True)
    payment_status = Column(String, nullable=True)          # raw provider state
    payment_url = Column(String, nullable=True)
    capture_id = Column(String, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    user = relationship("User", back_populates="orders")


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)              # bcrypt hash
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
