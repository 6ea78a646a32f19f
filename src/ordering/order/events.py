"""Domain events for the Order aggregate.

Events are immutable facts raised alongside state changes and stored in the
event store when the aggregate is persisted.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A new order was placed and its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    item_count = Integer(required=True)
    total_price = Float(required=True)
    payment_method = String(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """The order moved from one status to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor = String()
    note = String()
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled. Its stock is restored once this is committed."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    cancelled_by = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
