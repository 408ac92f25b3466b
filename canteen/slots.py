"""Time-slot capacity and reservations.

``time_slot.booked`` is the only counter shared between concurrent requests. It is
never read-modified-written in Python: a reservation claims one unit with a single
conditional ``UPDATE ... WHERE booked < total`` and writes the booking row in the same
transaction, so either both land or neither does.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from canteen.db import commit
from canteen.errors import BookingNotFound, CapacityExceeded, Forbidden, PersistenceFailure, SlotNotFound
from canteen.models import Booking, TimeSlot, local_today
from canteen.security import Principal, require_owner

logger = logging.getLogger(__name__)


def booking_code() -> str:
    return "BOOK" + str(int(time.time() * 1000))[-6:]


def list_slots(db: Session) -> list[TimeSlot]:
    return list(db.scalars(select(TimeSlot).order_by(TimeSlot.id)))


def _claim_unit(db: Session, slot_id: int) -> bool:
    result = db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot_id, TimeSlot.booked < TimeSlot.total)
        .values(booked=TimeSlot.booked + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _booking_for_key(db: Session, user_id: int, idempotency_key: str) -> Optional[Booking]:
    return db.scalars(
        select(Booking).where(Booking.user_id == user_id, Booking.idempotency_key == idempotency_key)
    ).first()


def reserve(
    db: Session,
    user_id: int,
    slot_key: str,
    reservation_date: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> Booking:
    if idempotency_key:
        existing = _booking_for_key(db, user_id, idempotency_key)
        if existing is not None:
            return existing

    slot = db.scalars(select(TimeSlot).where(TimeSlot.time == slot_key)).first()
    if slot is None:
        db.rollback()
        raise SlotNotFound()

    if not _claim_unit(db, slot.id):
        db.rollback()
        logger.warning("slot %s is full", slot_key)
        raise CapacityExceeded()

    booking = Booking(
        booking_code=booking_code(),
        user_id=user_id,
        slot_id=slot.id,
        time_slot=slot.label,
        date=reservation_date or local_today().isoformat(),
        status="confirmed",
        idempotency_key=idempotency_key,
    )
    db.add(booking)
    try:
        db.commit()
    except IntegrityError as exc:
        # The increment is rolled back together with the rejected booking row.
        db.rollback()
        if idempotency_key:
            existing = _booking_for_key(db, user_id, idempotency_key)
            if existing is not None:
                return existing
        raise PersistenceFailure() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure() from exc
    db.refresh(booking)
    logger.info("booking %s reserved %s for user %s", booking.booking_code, slot_key, user_id)
    return booking


def cancel_booking(db: Session, principal: Principal, code: str) -> Booking:
    """Cancel a booking and hand its unit of capacity back to the originating slot.

    Allowed for the booking's own user and for owners. Cancelling twice is a no-op.
    """
    booking = db.scalars(
        select(Booking)
        .where(Booking.booking_code == code)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .with_for_update()
    ).first()
    if booking is None:
        db.rollback()
        raise BookingNotFound()
    if booking.user_id != principal.subject_id and not principal.is_owner:
        db.rollback()
        raise Forbidden()
    if booking.status == "cancelled":
        db.rollback()
        return booking

    booking.status = "cancelled"
    db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == booking.slot_id, TimeSlot.booked > 0)
        .values(booked=TimeSlot.booked - 1)
        .execution_options(synchronize_session=False)
    )
    commit(db)
    db.refresh(booking)
    logger.info("booking %s cancelled", code)
    return booking


def set_global_capacity(db: Session, principal: Principal, total: int) -> int:
    """Apply ``total`` to every slot. Existing bookings are kept even if ``booked > total``."""
    require_owner(principal)
    result = db.execute(
        update(TimeSlot).values(total=total).execution_options(synchronize_session=False)
    )
    updated = result.rowcount
    commit(db)
    logger.info("slot capacity set to %s on %s slots", total, updated)
    return updated


def list_bookings_for_user(db: Session, user_id: int) -> list[Booking]:
    return list(
        db.scalars(
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
    )


def list_all_bookings(db: Session, principal: Principal) -> list[Booking]:
    require_owner(principal)
    return list(db.scalars(select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc())))
