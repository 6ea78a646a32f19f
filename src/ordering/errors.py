"""Typed errors raised by the ordering core.

Every error carries a stable ``kind`` and an HTTP-friendly ``status_code`` so
the transport layer can render it without knowing where it came from. Field
level input problems are reported with Protean's ``ValidationError`` instead.
"""

from typing import Any


class OrderingError(Exception):
    """Base class for all business errors of the ordering domain."""

    kind = "internal_error"
    status_code = 500
    default_message = "An internal error occurred"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class EmptyOrder(OrderingError):
    kind = "empty_order"
    status_code = 400
    default_message = "No order items provided"


class ProductNotFound(OrderingError):
    kind = "product_not_found"
    status_code = 404
    default_message = "Product not found"


class InsufficientStock(OrderingError):
    kind = "insufficient_stock"
    status_code = 409
    default_message = "Insufficient stock available"


class StockContention(OrderingError):
    """Stock for a product kept changing underneath a reservation attempt."""

    kind = "stock_contention"
    status_code = 409
    default_message = "Stock is being updated concurrently, please retry"


class OrderNotFound(OrderingError):
    kind = "order_not_found"
    status_code = 404
    default_message = "Order not found"


class AccessDenied(OrderingError):
    kind = "access_denied"
    status_code = 403
    default_message = "Access denied"


class OrderNotCancellable(OrderingError):
    kind = "order_not_cancellable"
    status_code = 409
    default_message = "Order cannot be cancelled"


class IllegalTransition(OrderingError):
    kind = "illegal_transition"
    status_code = 409
    default_message = "Order status transition is not allowed"


class DuplicateOrderNumber(OrderingError):
    kind = "duplicate_order_number"
    status_code = 409
    default_message = "Order number already exists"
