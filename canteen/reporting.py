from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from canteen.config import settings
from canteen.models import Booking, MenuItem, Notice, Order, localize, to_local, utcnow
from canteen.security import Principal, require_owner


class DashboardStats(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    today_revenue: Decimal = Decimal("0")
    today_orders: int = 0
    today_bookings: int = 0
    active_notices: int = 0
    popular_items: list[MenuItem] = Field(default_factory=list)


def day_bounds(as_of: datetime) -> tuple[datetime, datetime]:
    """Return ``[local midnight, next local midnight)`` around ``as_of`` as UTC instants.

    Each midnight takes the UTC offset in force on its own date, so DST change days
    are 23 or 25 hours long.
    """
    if as_of.tzinfo is None:
        as_of = localize(as_of)
    local_date: date = to_local(as_of).date()
    starts_at = localize(datetime.combine(local_date, time(0)))
    ends_at = localize(datetime.combine(local_date + timedelta(days=1), time(0)))
    return starts_at.astimezone(timezone.utc), ends_at.astimezone(timezone.utc)


def dashboard(db: Session, principal: Principal, as_of: Optional[datetime] = None) -> DashboardStats:
    require_owner(principal)
    as_of = as_of or utcnow()
    if as_of.tzinfo is None:
        as_of = localize(as_of)
    as_of = as_of.astimezone(timezone.utc)
    starts_at, ends_at = day_bounds(as_of)

    revenue, order_count = db.execute(
        select(func.coalesce(func.sum(Order.total), 0), func.count(Order.id)).where(
            Order.created_at >= starts_at, Order.created_at < ends_at
        )
    ).one()
    booking_count = db.scalar(
        select(func.count(Booking.id)).where(
            Booking.created_at >= starts_at, Booking.created_at < ends_at
        )
    )
    notices = select(func.count(Notice.id))
    if settings.filter_expired_notices:
        notices = notices.where(or_(Notice.expiry.is_(None), Notice.expiry > as_of))
    popular = list(db.scalars(select(MenuItem).where(MenuItem.popular.is_(True)).order_by(MenuItem.id)))

    return DashboardStats(
        today_revenue=Decimal(str(revenue)).quantize(Decimal("0.01")),
        today_orders=order_count,
        today_bookings=booking_count or 0,
        active_notices=db.scalar(notices) or 0,
        popular_items=popular,
    )
