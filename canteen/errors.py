"""Domain errors raised by the canteen core.

Each error carries the HTTP status and a stable machine code; the application
registers a single handler that renders them as ``{"detail", "code"}``.
"""
from __future__ import annotations


class CanteenError(Exception):
    status_code = 400
    code = "bad_request"
    default_detail = "Bad request"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(CanteenError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class SlotNotFound(NotFound):
    code = "slot_not_found"
    default_detail = "Time slot not found"


class OrderNotFound(NotFound):
    code = "order_not_found"
    default_detail = "Order not found"


class BookingNotFound(NotFound):
    code = "booking_not_found"
    default_detail = "Booking not found"


class MenuItemNotFound(NotFound):
    code = "menu_item_not_found"
    default_detail = "Menu item not found"


class UserNotFound(NotFound):
    code = "user_not_found"
    default_detail = "User not found"


class Unauthorized(CanteenError):
    status_code = 401
    code = "unauthorized"
    default_detail = "Token is not valid"


class Forbidden(CanteenError):
    status_code = 403
    code = "forbidden"
    default_detail = "Access denied"


class CapacityExceeded(CanteenError):
    status_code = 409
    code = "capacity_exceeded"
    default_detail = "Time slot is fully booked"


class InvalidStatusTransition(CanteenError):
    status_code = 409
    code = "invalid_status_transition"
    default_detail = "Invalid order status transition"


class InvalidOrderTotal(CanteenError):
    code = "invalid_order_total"
    default_detail = "Order total does not match its items"


class DuplicateUser(CanteenError):
    code = "duplicate_user"
    default_detail = "User with this email or username already exists"


class InvalidCredentials(CanteenError):
    code = "invalid_credentials"
    default_detail = "Invalid username or password"


class PersistenceFailure(CanteenError):
    status_code = 500
    code = "persistence_failure"
    default_detail = "Persistence failure"
