"""Order aggregate — the durable record of a placed order and its lifecycle.

An order is created once, from a cart or an explicit item list, and is never
deleted. Its items, addresses and pricing are frozen at placement; only the
status moves afterwards, and every move appends exactly one entry to the
status history through ``transition_to``.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED → RETURNED
    CANCELLED (from PENDING, CONFIRMED, PROCESSING)
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from ordering.domain import ordering
from ordering.errors import EmptyOrder, IllegalTransition, OrderNotCancellable
from ordering.order.events import OrderCancelled, OrderPlaced, OrderStatusChanged
from ordering.order.numbering import parse_order_number
from ordering.order.pricing import expected_total, to_money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentMethod(Enum):
    GATEWAY_CHECKOUT = "gateway-checkout"
    MANUAL = "manual"
    CASH_ON_DELIVERY = "cash-on-delivery"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially-refunded"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.RETURNED: set(),  # Terminal
}

# States from which cancellation is allowed
_CANCELLABLE_STATES = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
}


def coerce_status(value) -> OrderStatus:
    """Return the OrderStatus for ``value``, rejecting unknown statuses."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError({"status": [f"Unknown order status '{value}'. Allowed: {allowed}"]}) from None


def allowed_transitions(status) -> set[OrderStatus]:
    return set(_VALID_TRANSITIONS[coerce_status(status)])


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class PostalAddress:
    """A shipping or billing address captured at checkout time.

    Every part is required. Once recorded on an Order it never changes,
    regardless of later changes to the user's address book.
    """

    street = String(required=True, max_length=200)
    city = String(required=True, max_length=50)
    state = String(required=True, max_length=50)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=50)


@ordering.value_object(part_of="Order")
class PaymentInfo:
    """How the order is paid for. Capture itself happens in the payment gateway."""

    method = String(required=True, choices=PaymentMethod)
    transaction_id = String(max_length=255)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)


@ordering.value_object(part_of="Order")
class OrderPricing:
    """Financial summary of an order, locked at placement.

    The total must equal items + shipping + tax - discount (floored at zero);
    a pricing that does not add up cannot be constructed.
    """

    items_price = Float(required=True, min_value=0.0)
    shipping_price = Float(default=0.0, min_value=0.0)
    tax_price = Float(default=0.0, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    total_price = Float(required=True, min_value=0.0)

    @invariant.post
    def total_must_match_components(self):
        expected = expected_total(
            self.items_price or 0.0,
            self.shipping_price or 0.0,
            self.tax_price or 0.0,
            self.discount_amount or 0.0,
        )
        if to_money(self.total_price or 0.0) != expected:
            raise ValidationError(
                {"total_price": [f"Total price {self.total_price} does not match its components ({expected})"]}
            )


@ordering.value_object(part_of="Order")
class ProductSnapshot:
    """Catalogue data copied at order time, insulating the order from later catalogue edits."""

    title = String(required=True, max_length=255)
    image = String(max_length=1000)
    sku = String(max_length=50)
    price = Float(min_value=0.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line of a placed order. Quantity and unit price never change after placement."""

    position = Integer(required=True, min_value=0)
    product_id = Identifier(required=True)
    product_snapshot = ValueObject(ProductSnapshot)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)

    @property
    def line_total(self):
        return float(to_money(self.unit_price * self.quantity))


@ordering.entity(part_of="Order")
class StatusChange:
    """One entry of the order's append-only status history."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, choices=OrderStatus)
    changed_at = DateTime(required=True)
    actor = String(max_length=255)
    note = String(max_length=500)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, unique=True, max_length=20)
    order_date = String(required=True, max_length=8)  # YYYYMMDD
    order_sequence = Integer(required=True, min_value=1)
    user_id = Identifier(required=True)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(PostalAddress, required=True)
    billing_address = ValueObject(PostalAddress, required=True)
    payment_info = ValueObject(PaymentInfo, required=True)
    pricing = ValueObject(OrderPricing, required=True)
    total_price = Float(default=0.0, min_value=0.0)  # mirrors pricing.total_price for sorting
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusChange)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    coupon_code = String(max_length=50)
    customer_notes = String(max_length=1000)
    created_at = DateTime()
    updated_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        user_id,
        order_number,
        items_data,
        shipping_address,
        payment_info,
        pricing,
        billing_address=None,
        coupon_code=None,
        customer_notes=None,
    ):
        """Create a pending order with its first history entry.

        Args:
            user_id: The user placing the order.
            order_number: A freshly generated ``ORD-YYYYMMDD-NNNN`` number.
            items_data: List of dicts with product_id, quantity, unit_price
                        and a product_snapshot dict (title, image, sku, price).
            shipping_address: PostalAddress or dict of its fields.
            payment_info: PaymentInfo or dict with method and transaction_id.
            pricing: OrderPricing, or a dict / PriceBreakdown of its fields.
            billing_address: Defaults to the shipping address.
        """
        if not items_data:
            raise EmptyOrder()

        day, sequence = parse_order_number(order_number)
        now = datetime.now(UTC)

        shipping = _as_value(PostalAddress, shipping_address)
        billing = _as_value(PostalAddress, billing_address) if billing_address else shipping
        pricing_vo = pricing if isinstance(pricing, OrderPricing) else OrderPricing(**_as_dict(pricing))

        items = [
            OrderItem(
                position=position,
                product_id=str(item["product_id"]),
                product_snapshot=_as_value(ProductSnapshot, item.get("product_snapshot")),
                quantity=item["quantity"],
                unit_price=item["unit_price"],
            )
            for position, item in enumerate(items_data)
        ]

        order = cls(
            user_id=str(user_id),
            order_number=order_number,
            order_date=day,
            order_sequence=sequence,
            items=items,
            shipping_address=shipping,
            billing_address=billing,
            payment_info=_as_value(PaymentInfo, payment_info),
            pricing=pricing_vo,
            total_price=pricing_vo.total_price,
            status=OrderStatus.PENDING.value,
            status_history=[
                StatusChange(
                    sequence=1,
                    status=OrderStatus.PENDING.value,
                    changed_at=now,
                    actor=str(user_id),
                    note="Order placed",
                )
            ],
            coupon_code=coupon_code.strip().upper() if coupon_code else None,
            customer_notes=customer_notes,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=str(order.user_id),
                item_count=len(items),
                total_price=order.total_price,
                payment_method=order.payment_info.method,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def history(self):
        """Status history in the order it was written."""
        return sorted(self.status_history or [], key=lambda entry: entry.sequence)

    @property
    def ordered_items(self):
        return sorted(self.items or [], key=lambda item: item.position)

    @property
    def is_cancellable(self):
        return OrderStatus(self.status) in _CANCELLABLE_STATES

    @property
    def is_delivered(self):
        return self.status == OrderStatus.DELIVERED.value

    def can_transition_to(self, new_status):
        return coerce_status(new_status) in _VALID_TRANSITIONS[OrderStatus(self.status)]

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def transition_to(self, new_status, actor, note=None, carrier=None, tracking_number=None):
        """Move to ``new_status`` and append the matching history entry.

        The status write and the history append happen in one atomic change;
        an illegal move raises IllegalTransition and leaves the order untouched.
        """
        target = coerce_status(new_status)
        current = OrderStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise IllegalTransition(
                f"Cannot transition from {current.value} to {target.value}",
                order_id=str(self.id),
                from_status=current.value,
                to_status=target.value,
            )

        now = datetime.now(UTC)
        next_sequence = max((entry.sequence for entry in self.status_history or []), default=0) + 1

        with atomic_change(self):
            self.status = target.value
            self.updated_at = now
            if target == OrderStatus.SHIPPED:
                self.shipped_at = now
                if carrier:
                    self.carrier = carrier
                if tracking_number:
                    self.tracking_number = tracking_number
            if target == OrderStatus.DELIVERED:
                self.delivered_at = now

            self.add_status_history(
                StatusChange(
                    sequence=next_sequence,
                    status=target.value,
                    changed_at=now,
                    actor=str(actor) if actor is not None else None,
                    note=note,
                )
            )

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_status=current.value,
                new_status=target.value,
                actor=str(actor) if actor is not None else None,
                note=note,
                changed_at=now,
            )
        )
        if target == OrderStatus.CANCELLED:
            self.raise_(
                OrderCancelled(
                    order_id=str(self.id),
                    order_number=self.order_number,
                    cancelled_by=str(actor),
                    reason=note,
                    cancelled_at=now,
                    items=json.dumps(
                        [{"product_id": str(item.product_id), "quantity": item.quantity} for item in self.ordered_items]
                    ),
                )
            )

    def cancel(self, actor, note="Cancelled by user"):
        """Cancel the order. Only allowed before it ships."""
        current = OrderStatus(self.status)
        if current not in _CANCELLABLE_STATES:
            raise OrderNotCancellable(
                f"Order in {current.value} state cannot be cancelled",
                order_id=str(self.id),
                status=current.value,
            )

        self.transition_to(OrderStatus.CANCELLED, actor=actor, note=note)


def _as_dict(value):
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if hasattr(value, "as_dict"):
        return value.as_dict()
    return value.to_dict()


def _as_value(vo_cls, value):
    if value is None or isinstance(value, vo_cls):
        return value
    return vo_cls(**_as_dict(value))
