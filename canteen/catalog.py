"""Plain data access for users, menu items and notices."""
from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from canteen.db import commit
from canteen.errors import DuplicateUser, InvalidCredentials, MenuItemNotFound, UserNotFound
from canteen.models import DEFAULT_EMOJI, MenuItem, Notice, User, localize
from canteen.security import Principal, hash_password, require_owner, verify_password

logger = logging.getLogger(__name__)


def student_id() -> str:
    # collisions are not checked
    return f"STU{random.randint(1000, 9999)}"


def register_user(
    db: Session, name: str, email: str, username: str, password: str, role: str
) -> User:
    username = username.lower()
    existing = db.scalars(
        select(User).where(or_(func.lower(User.email) == email.lower(), User.username == username))
    ).first()
    if existing is not None:
        db.rollback()
        raise DuplicateUser()
    user = User(
        name=name,
        email=email,
        username=username,
        password_hash=hash_password(password),
        role=role,
        student_id=student_id() if role == "student" else None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateUser() from exc
    db.refresh(user)
    logger.info("registered %s user %s", role, username)
    return user


def authenticate(db: Session, username: str, password: str, role: str) -> User:
    user = db.scalars(
        select(User).where(User.username == username.lower(), User.role == role)
    ).first()
    if user is None or not verify_password(password, user.password_hash):
        raise InvalidCredentials()
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFound()
    return user


def update_profile(
    db: Session, user_id: int, name: Optional[str] = None, phone: Optional[str] = None
) -> User:
    user = get_user(db, user_id)
    if name is not None:
        user.name = name
    if phone is not None:
        user.phone = phone
    commit(db)
    db.refresh(user)
    return user


def list_menu(db: Session, category: Optional[str] = None) -> list[MenuItem]:
    query = select(MenuItem).where(MenuItem.available.is_(True))
    if category and category != "all":
        query = query.where(MenuItem.category == category)
    return list(db.scalars(query.order_by(MenuItem.id)))


def list_all_menu(db: Session, principal: Principal) -> list[MenuItem]:
    require_owner(principal)
    return list(db.scalars(select(MenuItem).order_by(MenuItem.id)))


def add_menu_item(
    db: Session,
    principal: Principal,
    name: str,
    price: Decimal,
    category: str,
    description: str,
    emoji: Optional[str] = None,
) -> MenuItem:
    require_owner(principal)
    item = MenuItem(
        name=name,
        price=price,
        category=category,
        description=description,
        emoji=emoji or DEFAULT_EMOJI,
    )
    db.add(item)
    commit(db)
    db.refresh(item)
    return item


def update_menu_item(
    db: Session,
    principal: Principal,
    item_id: int,
    available: Optional[bool] = None,
    popular: Optional[bool] = None,
) -> MenuItem:
    require_owner(principal)
    item = db.get(MenuItem, item_id)
    if item is None:
        raise MenuItemNotFound()
    if available is not None:
        item.available = available
    if popular is not None:
        item.popular = popular
    commit(db)
    db.refresh(item)
    return item


def list_notices(db: Session) -> list[Notice]:
    return list(db.scalars(select(Notice).order_by(Notice.created_at.desc(), Notice.id.desc())))


def create_notice(
    db: Session,
    principal: Principal,
    title: str,
    message: str,
    type: str = "info",
    urgent: bool = False,
    expiry: Optional[datetime] = None,
) -> Notice:
    require_owner(principal)
    if expiry is not None:
        if expiry.tzinfo is None:
            expiry = localize(expiry)
        expiry = expiry.astimezone(timezone.utc)
    notice = Notice(title=title, message=message, type=type, urgent=urgent, expiry=expiry)
    db.add(notice)
    commit(db)
    db.refresh(notice)
    logger.info("notice %s published", notice.id)
    return notice
