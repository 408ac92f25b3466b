from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from canteen.config import settings
from canteen.db import commit
from canteen.models import MenuItem, Notice, TimeSlot

logger = logging.getLogger(__name__)

DEFAULT_MENU = [
    {"name": "Grilled Chicken Sandwich", "price": "8.99", "category": "lunch", "description": "Juicy grilled chicken with fresh vegetables", "emoji": "🥪", "popular": True},
    {"name": "Caesar Salad", "price": "6.99", "category": "lunch", "description": "Fresh romaine lettuce with caesar dressing", "emoji": "🥗"},
    {"name": "Pancakes", "price": "5.99", "category": "breakfast", "description": "Fluffy pancakes with maple syrup", "emoji": "🥞", "popular": True},
    {"name": "Coffee", "price": "2.99", "category": "beverages", "description": "Freshly brewed coffee", "emoji": "☕", "popular": True},
    {"name": "Chocolate Muffin", "price": "3.49", "category": "snacks", "description": "Rich chocolate chip muffin", "emoji": "🧁"},
    {"name": "Fruit Smoothie", "price": "4.99", "category": "beverages", "description": "Mixed fruit smoothie with yogurt", "emoji": "🥤", "popular": True},
]

DEFAULT_SLOTS = [
    ("9:00-10:00", "9:00 - 10:00 AM"),
    ("10:00-11:00", "10:00 - 11:00 AM"),
    ("11:00-12:00", "11:00 - 12:00 PM"),
    ("12:00-13:00", "12:00 - 1:00 PM"),
    ("13:00-14:00", "1:00 - 2:00 PM"),
    ("14:00-15:00", "2:00 - 3:00 PM"),
]

DEFAULT_NOTICES = [
    {"title": "Welcome to Campus Canteen!", "message": "Enjoy our fresh meals and convenient online ordering system.", "type": "info"},
    {"title": "20% Off Lunch Combos", "message": "Get 20% off on all lunch combo meals this week!", "type": "special"},
]


def _is_empty(db: Session, model) -> bool:
    return not db.scalar(select(func.count()).select_from(model))


def seed_defaults(db: Session) -> None:
    """Insert the default menu, time slots and notices into empty tables."""
    if _is_empty(db, MenuItem):
        db.add_all(
            MenuItem(**{**item, "price": Decimal(item["price"])}) for item in DEFAULT_MENU
        )
        logger.info("default menu items created")
    if _is_empty(db, TimeSlot):
        db.add_all(
            TimeSlot(time=key, label=label, booked=0, total=settings.default_slot_capacity)
            for key, label in DEFAULT_SLOTS
        )
        logger.info("default time slots created")
    if _is_empty(db, Notice):
        db.add_all(Notice(**notice) for notice in DEFAULT_NOTICES)
        logger.info("default notices created")
    commit(db)
