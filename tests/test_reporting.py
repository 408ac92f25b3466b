import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from canteen.config import settings
from canteen.errors import Forbidden
from canteen.models import Booking, MenuItem, Notice, Order, TimeSlot
from canteen.reporting import dashboard, day_bounds
from canteen.security import Principal

OWNER = Principal(subject_id=1, role="owner")
STUDENT = Principal(subject_id=2, role="student")

UTC = timezone.utc


def _order(db, total: str, created_at: datetime, status: str = "pending") -> Order:
    order = Order(
        order_code="ORD123456",
        user_id=2,
        items=[{"name": "Coffee", "price": float(total), "quantity": 1, "emoji": "☕"}],
        total=Decimal(total),
        status=status,
        created_at=created_at,
    )
    db.add(order)
    db.commit()
    return order


def test_dashboard_on_empty_store(db, utc_day) -> None:
    stats = dashboard(db, OWNER, datetime(2026, 10, 19, 12, 0, tzinfo=UTC))
    assert stats.today_revenue == Decimal("0")
    assert stats.today_orders == 0
    assert stats.today_bookings == 0
    assert stats.active_notices == 0
    assert stats.popular_items == []


def test_dashboard_requires_owner(db) -> None:
    with pytest.raises(Forbidden):
        dashboard(db, STUDENT)


def test_day_boundary_splits_orders(db, utc_day) -> None:
    _order(db, "4.00", datetime(2026, 10, 19, 23, 59, 59, tzinfo=UTC))
    _order(db, "6.50", datetime(2026, 10, 20, 0, 0, 1, tzinfo=UTC))

    day_d = dashboard(db, OWNER, datetime(2026, 10, 19, 8, 0, tzinfo=UTC))
    day_after = dashboard(db, OWNER, datetime(2026, 10, 20, 8, 0, tzinfo=UTC))

    assert (day_d.today_orders, day_d.today_revenue) == (1, Decimal("4.00"))
    assert (day_after.today_orders, day_after.today_revenue) == (1, Decimal("6.50"))


def test_day_follows_configured_zone(db, monkeypatch) -> None:
    monkeypatch.setattr(settings, "timezone", "Asia/Karachi")
    # 19:30 UTC is 00:30 the next day in Karachi (+05:00)
    _order(db, "3.00", datetime(2026, 3, 10, 19, 30, tzinfo=UTC))

    starts_at, ends_at = day_bounds(datetime(2026, 3, 11, 9, 0, tzinfo=UTC))
    assert starts_at == datetime(2026, 3, 10, 19, 0, tzinfo=UTC)
    assert ends_at - starts_at == timedelta(days=1)
    assert dashboard(db, OWNER, datetime(2026, 3, 11, 9, 0, tzinfo=UTC)).today_orders == 1
    assert dashboard(db, OWNER, datetime(2026, 3, 10, 12, 0, tzinfo=UTC)).today_orders == 0


@pytest.fixture
def new_york_server(monkeypatch):
    monkeypatch.setattr(settings, "timezone", None)
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_server_zone_uses_offset_of_the_reported_day(db, new_york_server) -> None:
    # 23:30 EST on Jan 15
    _order(db, "5.00", datetime(2026, 1, 16, 4, 30, tzinfo=UTC))

    assert day_bounds(datetime(2026, 1, 15, 17, 0, tzinfo=UTC)) == (
        datetime(2026, 1, 15, 5, 0, tzinfo=UTC),
        datetime(2026, 1, 16, 5, 0, tzinfo=UTC),
    )
    assert day_bounds(datetime(2026, 1, 15, 23, 30)) == day_bounds(datetime(2026, 1, 15, 17, 0, tzinfo=UTC))
    assert dashboard(db, OWNER, datetime(2026, 1, 15, 17, 0, tzinfo=UTC)).today_orders == 1
    assert dashboard(db, OWNER, datetime(2026, 1, 16, 17, 0, tzinfo=UTC)).today_orders == 0


def test_server_zone_dst_change_days(new_york_server) -> None:
    spring = day_bounds(datetime(2026, 3, 8, 17, 0, tzinfo=UTC))
    assert spring == (datetime(2026, 3, 8, 5, 0, tzinfo=UTC), datetime(2026, 3, 9, 4, 0, tzinfo=UTC))
    assert spring[1] - spring[0] == timedelta(hours=23)

    autumn = day_bounds(datetime(2026, 11, 1, 17, 0, tzinfo=UTC))
    assert autumn == (datetime(2026, 11, 1, 4, 0, tzinfo=UTC), datetime(2026, 11, 2, 5, 0, tzinfo=UTC))
    assert autumn[1] - autumn[0] == timedelta(hours=25)


def test_configured_zone_matches_server_zone_across_dst(monkeypatch) -> None:
    monkeypatch.setattr(settings, "timezone", "America/New_York")
    assert day_bounds(datetime(2026, 3, 8, 17, 0, tzinfo=UTC)) == (
        datetime(2026, 3, 8, 5, 0, tzinfo=UTC),
        datetime(2026, 3, 9, 4, 0, tzinfo=UTC),
    )
    assert day_bounds(datetime(2026, 7, 1, 12, 0, tzinfo=UTC))[0] == datetime(2026, 7, 1, 4, 0, tzinfo=UTC)


def test_dashboard_counts_every_status_and_today_bookings(db, utc_day) -> None:
    noon = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
    _order(db, "8.99", noon, status="completed")
    _order(db, "2.99", noon + timedelta(minutes=5), status="pending")
    slot = TimeSlot(time="12:00-13:00", label="12:00 - 1:00 PM", booked=2, total=20)
    db.add(slot)
    db.flush()
    db.add_all(
        [
            Booking(booking_code="BOOK000001", user_id=2, slot_id=slot.id, time_slot=slot.label,
                    date="2026-10-18", created_at=noon),
            Booking(booking_code="BOOK000002", user_id=2, slot_id=slot.id, time_slot=slot.label,
                    date="2026-10-19", created_at=noon - timedelta(days=1)),
        ]
    )
    db.commit()

    stats = dashboard(db, OWNER, noon)
    assert stats.today_orders == 2
    assert stats.today_revenue == Decimal("11.98")
    # booking creation time decides, not the reservation date
    assert stats.today_bookings == 1


def test_popular_items_ignore_availability(db, utc_day) -> None:
    db.add_all(
        [
            MenuItem(name="Coffee", price=Decimal("2.99"), category="beverages", popular=True),
            MenuItem(name="Pancakes", price=Decimal("5.99"), category="breakfast", popular=True, available=False),
            MenuItem(name="Salad", price=Decimal("6.99"), category="lunch"),
        ]
    )
    db.commit()

    stats = dashboard(db, OWNER)
    assert [item.name for item in stats.popular_items] == ["Coffee", "Pancakes"]


def test_notice_count_and_expiry_filter(db, utc_day, monkeypatch) -> None:
    as_of = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
    db.add_all(
        [
            Notice(title="Welcome", message="Hello"),
            Notice(title="Old offer", message="Gone", expiry=as_of - timedelta(days=1)),
            Notice(title="Closure", message="Friday", type="closure", expiry=as_of + timedelta(days=2)),
        ]
    )
    db.commit()

    assert dashboard(db, OWNER, as_of).active_notices == 3
    monkeypatch.setattr(settings, "filter_expired_notices", True)
    assert dashboard(db, OWNER, as_of).active_notices == 2
