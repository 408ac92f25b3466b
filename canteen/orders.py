"""Order creation and the pending -> preparing -> ready -> completed lifecycle."""
from __future__ import annotations

import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from canteen.config import settings
from canteen.db import commit
from canteen.errors import InvalidOrderTotal, InvalidStatusTransition, OrderNotFound, PersistenceFailure
from canteen.models import DEFAULT_EMOJI, ORDER_STATUSES, Order
from canteen.security import Principal, require_owner

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Forward-only moves; used when strict_order_transitions is enabled.
TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"preparing"}),
    "preparing": frozenset({"ready"}),
    "ready": frozenset({"completed"}),
    "completed": frozenset(),
}


def order_code() -> str:
    return "ORD" + str(int(time.time() * 1000))[-6:]


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def items_total(items: list[dict]) -> Decimal:
    subtotal = sum((Decimal(str(item["price"])) * int(item["quantity"]) for item in items), Decimal("0"))
    return _money(subtotal)


def can_transition(current: str, new: str, strict: bool) -> bool:
    if new not in ORDER_STATUSES:
        return False
    if not strict or new == current:
        return True
    return new in TRANSITIONS.get(current, frozenset())


def _order_for_key(db: Session, user_id: int, idempotency_key: str) -> Optional[Order]:
    return db.scalars(
        select(Order).where(Order.user_id == user_id, Order.idempotency_key == idempotency_key)
    ).first()


def create_order(
    db: Session,
    user_id: int,
    items: list[dict],
    total: Any,
    idempotency_key: Optional[str] = None,
) -> Order:
    if idempotency_key:
        existing = _order_for_key(db, user_id, idempotency_key)
        if existing is not None:
            return existing

    amount = _money(total)
    if settings.validate_order_total:
        expected = items_total(items)
        if expected != amount:
            raise InvalidOrderTotal(f"Order total {amount} does not match items total {expected}")

    order = Order(
        order_code=order_code(),
        user_id=user_id,
        items=[
            {
                "name": item["name"],
                "price": float(item["price"]),
                "quantity": int(item["quantity"]),
                "emoji": item.get("emoji") or DEFAULT_EMOJI,
            }
            for item in items
        ],
        total=amount,
        status="pending",
        idempotency_key=idempotency_key,
    )
    db.add(order)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if idempotency_key:
            existing = _order_for_key(db, user_id, idempotency_key)
            if existing is not None:
                return existing
        raise PersistenceFailure() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure() from exc
    db.refresh(order)
    logger.info("order %s created for user %s total=%s", order.order_code, user_id, amount)
    return order


def set_order_status(db: Session, principal: Principal, code: str, status: str) -> Order:
    """Overwrite the status of the newest order carrying ``code``.

    Order codes are display identifiers and may repeat; the most recent match wins.
    With ``strict_order_transitions`` only the forward moves in ``TRANSITIONS`` are accepted.
    """
    require_owner(principal)
    order = db.scalars(
        select(Order)
        .where(Order.order_code == code)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .with_for_update()
    ).first()
    if order is None:
        db.rollback()
        raise OrderNotFound()
    if not can_transition(order.status, status, settings.strict_order_transitions):
        current = order.status
        db.rollback()
        logger.warning("order %s: refused transition %s -> %s", code, current, status)
        raise InvalidStatusTransition(f"Cannot move order from {current} to {status}")

    order.status = status
    commit(db)
    db.refresh(order)
    logger.info("order %s status set to %s", code, status)
    return order


def list_orders_for_user(db: Session, user_id: int) -> list[Order]:
    return list(
        db.scalars(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
    )


def list_all_orders(db: Session, principal: Principal) -> list[Order]:
    require_owner(principal)
    return list(db.scalars(select(Order).order_by(Order.created_at.desc(), Order.id.desc())))
