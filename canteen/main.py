from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from canteen import catalog, orders, reporting, slots
from canteen.config import settings
from canteen.db import Base, SessionLocal, engine
from canteen.errors import CanteenError, PersistenceFailure
from canteen.models import DEFAULT_EMOJI, Booking, MenuItem, Notice, Order, TimeSlot, User
from canteen.security import Principal, current_principal, issue_token, owner_principal
from canteen.seed import seed_defaults

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.init_on_startup:
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as db:
            seed_defaults(db)
    yield


app = FastAPI(title="Campus Canteen", lifespan=lifespan)


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.exception_handler(CanteenError)
async def handle_canteen_error(request: Request, exc: CanteenError) -> JSONResponse:
    if isinstance(exc, PersistenceFailure):
        logger.error("%s %s: persistence failure", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "code": exc.code})


@app.exception_handler(SQLAlchemyError)
async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s: store error", request.method, request.url.path, exc_info=exc)
    failure = PersistenceFailure()
    return JSONResponse(
        status_code=failure.status_code, content={"detail": failure.detail, "code": failure.code}
    )


def _money(value: Decimal) -> float:
    return float(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _user_data(user: User) -> dict:
    return {
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "username": user.username,
        "user_type": user.role,
        "student_id": user.student_id,
        "phone": user.phone,
        "created_at": _iso(user.created_at),
    }


def _menu_item_data(item: MenuItem) -> dict:
    return {
        "menu_item_id": item.id,
        "name": item.name,
        "price": _money(item.price),
        "category": item.category,
        "description": item.description,
        "emoji": item.emoji,
        "available": item.available,
        "popular": item.popular,
    }


def _slot_data(slot: TimeSlot) -> dict:
    return {
        "time_slot_id": slot.id,
        "time": slot.time,
        "label": slot.label,
        "booked": slot.booked,
        "total": slot.total,
    }


def _booking_data(booking: Booking) -> dict:
    return {
        "booking_id": booking.booking_code,
        "user_id": booking.user_id,
        "time_slot": booking.time_slot,
        "date": booking.date,
        "status": booking.status,
        "created_at": _iso(booking.created_at),
    }


def _order_data(order: Order) -> dict:
    return {
        "order_id": order.order_code,
        "user_id": order.user_id,
        "items": order.items,
        "total": _money(order.total),
        "status": order.status,
        "created_at": _iso(order.created_at),
    }


def _notice_data(notice: Notice) -> dict:
    return {
        "notice_id": notice.id,
        "title": notice.title,
        "message": notice.message,
        "type": notice.type,
        "urgent": notice.urgent,
        "expiry": _iso(notice.expiry),
        "created_at": _iso(notice.created_at),
    }


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok", "message": "Campus Canteen API is running"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


class RegisterRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Ayesha Khan', 'email': 'ayesha@campus.edu', 'username': 'ayesha', 'password': 'secret123', 'user_type': 'student'}}}
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    username: str = Field(min_length=1)
    password: str = Field(min_length=6, max_length=72)
    user_type: Literal["student", "owner"]


class LoginRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {'username': 'ayesha', 'password': 'secret123', 'user_type': 'student'}}}
    username: str
    password: str
    user_type: Literal["student", "owner"]


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


@app.post("/api/register", tags=["Auth"], status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> dict:
    user = catalog.register_user(
        db, payload.name, payload.email, payload.username, payload.password, payload.user_type
    )
    return {"data": {"token": issue_token(user), "user": _user_data(user)}, "meta": _meta()}


@app.post("/api/login", tags=["Auth"])
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> dict:
    user = catalog.authenticate(db, payload.username, payload.password, payload.user_type)
    return {"data": {"token": issue_token(user), "user": _user_data(user)}, "meta": _meta()}


@app.get("/api/profile", tags=["Auth"])
def get_profile(
    principal: Principal = Depends(current_principal), db: Session = Depends(get_db)
) -> dict:
    user = catalog.get_user(db, principal.subject_id)
    return {"data": _user_data(user), "meta": _meta()}


@app.put("/api/profile", tags=["Auth"])
def update_profile(
    payload: ProfileUpdate,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    user = catalog.update_profile(db, principal.subject_id, payload.name, payload.phone)
    return {"data": _user_data(user), "meta": _meta()}


@app.get("/api/menu", tags=["Menu"])
def list_menu(category: Optional[str] = Query(default=None), db: Session = Depends(get_db)) -> dict:
    items = catalog.list_menu(db, category)
    return {"data": [_menu_item_data(item) for item in items], "meta": _meta()}


@app.get("/api/time-slots", tags=["Time Slots"])
def list_time_slots(db: Session = Depends(get_db)) -> dict:
    return {"data": [_slot_data(slot) for slot in slots.list_slots(db)], "meta": _meta()}


@app.get("/api/notices", tags=["Notices"])
def list_notices(db: Session = Depends(get_db)) -> dict:
    return {"data": [_notice_data(n) for n in catalog.list_notices(db)], "meta": _meta()}


class BookingCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'time_slot': '12:00-13:00'}}}
    time_slot: str = Field(min_length=1)
    date: Optional[str] = None


@app.post("/api/bookings", tags=["Bookings"], status_code=201)
def create_booking(
    payload: BookingCreate,
    idempotency_key: Optional[str] = Header(default=None),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    booking = slots.reserve(
        db, principal.subject_id, payload.time_slot, payload.date, idempotency_key
    )
    return {"data": _booking_data(booking), "meta": _meta()}


@app.get("/api/bookings", tags=["Bookings"])
def list_my_bookings(
    principal: Principal = Depends(current_principal), db: Session = Depends(get_db)
) -> dict:
    bookings = slots.list_bookings_for_user(db, principal.subject_id)
    return {"data": [_booking_data(b) for b in bookings], "meta": _meta()}


class OrderItemIn(BaseModel):
    name: str
    price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    emoji: str = DEFAULT_EMOJI


class OrderCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'items': [{'name': 'Grilled Chicken Sandwich', 'price': 8.99, 'quantity': 2, 'emoji': '🥪'}], 'total': 17.98}}}
    items: list[OrderItemIn] = Field(min_length=1)
    total: Decimal = Field(ge=0)


@app.post("/api/orders", tags=["Orders"], status_code=201)
def create_order(
    payload: OrderCreate,
    idempotency_key: Optional[str] = Header(default=None),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    order = orders.create_order(
        db,
        principal.subject_id,
        [item.model_dump() for item in payload.items],
        payload.total,
        idempotency_key,
    )
    return {"data": _order_data(order), "meta": _meta()}


@app.get("/api/orders", tags=["Orders"])
def list_my_orders(
    principal: Principal = Depends(current_principal), db: Session = Depends(get_db)
) -> dict:
    return {
        "data": [_order_data(o) for o in orders.list_orders_for_user(db, principal.subject_id)],
        "meta": _meta(),
    }


@app.get("/api/admin/orders", tags=["Admin"])
def list_all_orders(principal: Principal = Depends(owner_principal), db: Session = Depends(get_db)) -> dict:
    return {"data": [_order_data(o) for o in orders.list_all_orders(db, principal)], "meta": _meta()}


class OrderStatusUpdate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'status': 'preparing'}}}
    status: Literal["pending", "preparing", "ready", "completed"]


@app.patch("/api/admin/orders/{order_code}/status", tags=["Admin"])
def update_order_status(
    order_code: str,
    payload: OrderStatusUpdate,
    principal: Principal = Depends(owner_principal),
    db: Session = Depends(get_db),
) -> dict:
    order = orders.set_order_status(db, principal, order_code, payload.status)
    return {"data": _order_data(order), "meta": _meta()}


@app.get("/api/admin/bookings", tags=["Admin"])
def list_all_bookings(principal: Principal = Depends(owner_principal), db: Session = Depends(get_db)) -> dict:
    return {"data": [_booking_data(b) for b in slots.list_all_bookings(db, principal)], "meta": _meta()}


@app.get("/api/admin/menu", tags=["Admin"])
def list_all_menu(principal: Principal = Depends(owner_principal), db: Session = Depends(get_db)) -> dict:
    return {"data": [_menu_item_data(i) for i in catalog.list_all_menu(db, principal)], "meta": _meta()}


class MenuItemCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Veg Biryani', 'price': 5.5, 'category': 'lunch', 'description': 'Spiced rice with vegetables', 'emoji': '🍛'}}}
    name: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    category: str = Field(min_length=1)
    description: str = ""
    emoji: Optional[str] = None


class MenuItemUpdate(BaseModel):
    available: Optional[bool] = None
    popular: Optional[bool] = None


@app.post("/api/admin/menu", tags=["Admin"], status_code=201)
def add_menu_item(
    payload: MenuItemCreate,
    principal: Principal = Depends(owner_principal),
    db: Session = Depends(get_db),
) -> dict:
    item = catalog.add_menu_item(
        db, principal, payload.name, payload.price, payload.category, payload.description, payload.emoji
    )
    return {"data": _menu_item_data(item), "meta": _meta()}


@app.put("/api/admin/menu/{menu_item_id}", tags=["Admin"])
def update_menu_item(
    menu_item_id: int,
    payload: MenuItemUpdate,
    principal: Principal = Depends(owner_principal),
    db: Session = Depends(get_db),
) -> dict:
    item = catalog.update_menu_item(db, principal, menu_item_id, payload.available, payload.popular)
    return {"data": _menu_item_data(item), "meta": _meta()}


class NoticeCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'title': 'Closed Friday', 'message': 'The canteen is closed for maintenance.', 'type': 'closure', 'urgent': True}}}
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: Literal["info", "warning", "closure", "special"] = "info"
    urgent: bool = False
    expiry: Optional[datetime] = None


@app.post("/api/admin/notices", tags=["Admin"], status_code=201)
def create_notice(
    payload: NoticeCreate,
    principal: Principal = Depends(owner_principal),
    db: Session = Depends(get_db),
) -> dict:
    notice = catalog.create_notice(
        db, principal, payload.title, payload.message, payload.type, payload.urgent, payload.expiry
    )
    return {"data": _notice_data(notice), "meta": _meta()}


class CapacityUpdate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'capacity': 25}}}
    capacity: int = Field(ge=0)


@app.put("/api/admin/time-slots/capacity", tags=["Admin"])
def update_capacity(
    payload: CapacityUpdate,
    principal: Principal = Depends(owner_principal),
    db: Session = Depends(get_db),
) -> dict:
    updated = slots.set_global_capacity(db, principal, payload.capacity)
    return {"data": {"capacity": payload.capacity, "updated_slots": updated}, "meta": _meta()}


@app.get("/api/admin/dashboard", tags=["Admin"])
def get_dashboard(
    as_of: Optional[datetime] = Query(default=None),
    principal: Principal = Depends(owner_principal),
    db: Session = Depends(get_db),
) -> dict:
    stats = reporting.dashboard(db, principal, as_of)
    return {
        "data": {
            "today_revenue": _money(stats.today_revenue),
            "today_orders": stats.today_orders,
            "today_bookings": stats.today_bookings,
            "active_notices": stats.active_notices,
            "popular_items": [_menu_item_data(i) for i in stats.popular_items],
        },
        "meta": _meta(),
    }


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
