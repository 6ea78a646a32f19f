"""Order lifecycle manager: coordinates placement, cancellation and status updates.

The manager is where the order aggregate meets inventory: placing an order
reserves stock before anything is persisted. Cancelling one raises
``OrderCancelled``, and ``OrderRestockingHandler`` puts the stock back into
the active catalogue once the cancellation is committed. Writes to one
order's status are serialised with a per-order lock within the process;
across transactions the aggregate version check rejects the stale writer.

Placement never leaves stock reserved for an order that was not saved: any
failure after reservation restores what was taken before re-raising.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.catalogue import get_catalogue
from ordering.catalogue.port import ProductCatalogue
from ordering.errors import AccessDenied, DuplicateOrderNumber, EmptyOrder
from ordering.inventory.ledger import InventoryLedger, StockLine
from ordering.order.numbering import OrderNumberGenerator
from ordering.order.order import Order, PaymentInfo, PostalAddress, coerce_status
from ordering.order.pricing import calculate_pricing
from ordering.utils.locks import KeyedLocks

logger = structlog.get_logger(__name__)

MAX_ORDER_NUMBER_ATTEMPTS = 5

# Shared by every manager instance in the process
_order_locks = KeyedLocks()


@dataclass(frozen=True)
class Actor:
    """Who is asking: the authenticated user and whether they are an admin."""

    user_id: str
    is_admin: bool = False


@dataclass(frozen=True)
class _PricedLine:
    product_id: str
    quantity: int
    unit_price: float


class OrderLifecycleManager:
    def __init__(
        self,
        catalogue: ProductCatalogue | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.catalogue = catalogue or get_catalogue()
        self.ledger = InventoryLedger(self.catalogue)
        self.clock = clock

    @property
    def orders(self):
        return current_domain.repository_for(Order)

    @property
    def carts(self):
        return current_domain.repository_for(ShoppingCart)

    # -------------------------------------------------------------------
    # Placement
    # -------------------------------------------------------------------
    def place_order(
        self,
        user_id,
        shipping_address,
        payment_method,
        items=None,
        billing_address=None,
        shipping_price=0.0,
        tax_price=0.0,
        discount_amount=0.0,
        transaction_id=None,
        coupon_code=None,
        customer_notes=None,
    ) -> Order:
        """Turn explicit items, or the user's active cart, into a pending order.

        Explicit items are ``[{"product_id", "quantity"}]`` and are priced at
        the live catalogue price; an empty list is rejected. When ``items`` is
        omitted the active cart is used and each line keeps the price it was
        added at; the cart is emptied once the order is saved.
        """
        shipping = PostalAddress(**_address_fields(shipping_address, "shipping_address"))
        billing = PostalAddress(**_address_fields(billing_address, "billing_address")) if billing_address else shipping
        payment = PaymentInfo(method=payment_method, transaction_id=transaction_id)

        cart = None
        from_items = items is not None
        if from_items:
            lines = self._lines_from_items(items)
        else:
            cart = self.carts.find_active_for(user_id)
            lines = self._lines_from_cart(cart)

        if not lines:
            raise EmptyOrder()

        stock_lines = [StockLine(line.product_id, line.quantity) for line in lines]
        products = self.ledger.check_available(stock_lines)
        if from_items:
            lines = [
                _PricedLine(line.product_id, line.quantity, products[line.product_id].price) for line in lines
            ]

        pricing = calculate_pricing(
            [(line.unit_price, line.quantity) for line in lines],
            shipping_price=shipping_price,
            tax_price=tax_price,
            discount_amount=discount_amount,
        )

        reserved = self.ledger.reserve_all(stock_lines)
        try:
            items_data = [
                {
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "product_snapshot": _snapshot(products[line.product_id]),
                }
                for line in lines
            ]
            order = self._persist_with_fresh_number(
                user_id=user_id,
                items_data=items_data,
                shipping_address=shipping,
                billing_address=billing,
                payment_info=payment,
                pricing=pricing,
                coupon_code=coupon_code,
                customer_notes=customer_notes,
            )
        except Exception:
            logger.warning(
                "Order placement failed after stock reservation, restoring stock",
                user_id=str(user_id),
                lines=[(line.product_id, line.quantity) for line in reserved],
            )
            self.ledger.restore_all(reserved)
            raise

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=str(user_id),
            total_price=order.total_price,
        )

        if cart is not None:
            self._clear_cart(cart, order)

        return order

    def _persist_with_fresh_number(self, **order_kwargs) -> Order:
        generator = OrderNumberGenerator(self.orders, clock=self.clock)

        for attempt in range(1, MAX_ORDER_NUMBER_ATTEMPTS + 1):
            order = Order.place(order_number=generator.next_number(), **order_kwargs)
            try:
                return self.orders.add_new(order)
            except DuplicateOrderNumber:
                logger.info(
                    "Order number collision, regenerating",
                    order_number=order.order_number,
                    attempt=attempt,
                )

        raise DuplicateOrderNumber(
            f"Could not assign a unique order number after {MAX_ORDER_NUMBER_ATTEMPTS} attempts"
        )

    def _lines_from_items(self, items) -> list[_PricedLine]:
        lines = []
        for index, item in enumerate(items):
            quantity = item.get("quantity")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                message = f"Item {index + 1}: quantity must be a whole number of at least 1"
                raise ValidationError({"quantity": [message]})
            if not item.get("product_id"):
                raise ValidationError({"product_id": [f"Item {index + 1}: product is required"]})
            # Priced once the catalogue has been read
            lines.append(_PricedLine(str(item["product_id"]), quantity, 0.0))
        return lines

    def _lines_from_cart(self, cart) -> list[_PricedLine]:
        if cart is None:
            return []
        return [_PricedLine(str(item.product_id), item.quantity, item.price_at_add) for item in cart.items]

    def _clear_cart(self, cart, order) -> None:
        try:
            cart.clear()
            self.carts.add(cart)
        except Exception:
            # The order is already saved; a stale cart is not worth failing it for
            logger.exception("Failed to clear cart after order placement", cart_id=str(cart.id), order_id=str(order.id))

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel_order(self, order_id, requesting_user_id) -> Order:
        """Cancel an order on behalf of its owner."""
        with _order_locks.hold(order_id):
            order = self.orders.find_by_id(order_id)
            if str(order.user_id) != str(requesting_user_id):
                raise AccessDenied("Not authorized to cancel this order", order_id=str(order_id))

            order.cancel(actor=str(requesting_user_id), note="Cancelled by user")
            self.orders.add(order)

        logger.info("Order cancelled", order_id=str(order.id), order_number=order.order_number)
        return order

    # -------------------------------------------------------------------
    # Status updates
    # -------------------------------------------------------------------
    def update_order_status(
        self,
        order_id,
        new_status,
        actor: Actor,
        note=None,
        carrier=None,
        tracking_number=None,
    ) -> Order:
        """Move an order along the state machine. Admins only."""
        if not actor.is_admin:
            raise AccessDenied("Only admins can update order status", order_id=str(order_id))

        target = coerce_status(new_status)

        with _order_locks.hold(order_id):
            order = self.orders.update_status(
                order_id,
                target,
                actor=actor.user_id,
                note=note,
                carrier=carrier,
                tracking_number=tracking_number,
            )

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            actor=actor.user_id,
        )
        return order


def _address_fields(address, field_name):
    if address is None:
        raise ValidationError({field_name: ["is required"]})
    if isinstance(address, PostalAddress):
        return address.to_dict()
    if not isinstance(address, dict):
        raise ValidationError({field_name: ["must be an address"]})
    return {
        key: address.get(key)
        for key in ("street", "city", "state", "postal_code", "country")
        if address.get(key) is not None
    }


def _snapshot(product):
    return {
        "title": product.title,
        "image": product.image,
        "sku": product.sku,
        "price": product.price,
    }
