from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from canteen.config import settings
from canteen.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")
MONEY = Numeric(10, 2)

USER_ROLES = ("student", "owner")
BOOKING_STATUSES = ("confirmed", "cancelled")
ORDER_STATUSES = ("pending", "preparing", "ready", "completed")
NOTICE_TYPES = ("info", "warning", "closure", "special")
DEFAULT_EMOJI = "🍽️"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_zone() -> Optional[tzinfo]:
    """The configured zone, or None for the server's own zone rules."""
    if settings.timezone:
        return ZoneInfo(settings.timezone)
    return None


def localize(value: datetime) -> datetime:
    """Attach the local zone to a naive wall-clock time, using the offset in force at that instant."""
    tz = local_zone()
    if tz is None:
        return value.astimezone()
    return value.replace(tzinfo=tz)


def to_local(value: datetime) -> datetime:
    return value.astimezone(local_zone())


def local_today() -> date:
    return to_local(utcnow()).date()


class User(Base):
    __tablename__ = "user_account"
    __table_args__ = (
        CheckConstraint("role IN ('student', 'owner')", name="user_role"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    # stored lowercased
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False)
    student_id: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class MenuItem(Base):
    __tablename__ = "menu_item"
    __table_args__ = (
        CheckConstraint("price >= 0", name="menu_item_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    emoji: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_EMOJI)
    available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    popular: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class TimeSlot(Base):
    __tablename__ = "time_slot"
    __table_args__ = (
        # booked may exceed total after the owner lowers capacity; it is never negative
        CheckConstraint("booked >= 0", name="time_slot_booked_non_negative"),
        CheckConstraint("total >= 0", name="time_slot_total_non_negative"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    time: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Booking(Base):
    __tablename__ = "booking"
    __table_args__ = (
        CheckConstraint("status IN ('confirmed', 'cancelled')", name="booking_status"),
        UniqueConstraint("user_id", "idempotency_key", name="uq_booking_idempotency"),
        Index("ix_booking_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    booking_code: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("user_account.id"), nullable=False, index=True)
    slot_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("time_slot.id"), nullable=False)
    # label snapshot taken at reservation time
    time_slot: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="confirmed")
    idempotency_key: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Order(Base):
    __tablename__ = "customer_order"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'preparing', 'ready', 'completed')", name="order_status"
        ),
        CheckConstraint("total >= 0", name="order_total_non_negative"),
        UniqueConstraint("user_id", "idempotency_key", name="uq_order_idempotency"),
        Index("ix_customer_order_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    order_code: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("user_account.id"), nullable=False, index=True)
    # [{"name", "price", "quantity", "emoji"}, ...] stored verbatim
    items: Mapped[list] = mapped_column(JSON_TYPE, nullable=False)
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    idempotency_key: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Notice(Base):
    __tablename__ = "notice"
    __table_args__ = (
        CheckConstraint(
            "type IN ('info', 'warning', 'closure', 'special')", name="notice_type"
        ),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="info")
    urgent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
