"""Order placement — command and handler."""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text

from ordering.domain import ordering
from ordering.order.lifecycle import OrderLifecycleManager
from ordering.order.order import Order


@ordering.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text()  # JSON: address dict, defaults to shipping
    payment_method = String(required=True, max_length=50)
    transaction_id = String(max_length=255)
    items = Text()  # JSON: list of {product_id, quantity}; omitted means "use the cart"
    shipping_price = Float(default=0.0)
    tax_price = Float(default=0.0)
    discount_amount = Float(default=0.0)
    coupon_code = String(max_length=50)
    customer_notes = Text()


def _loads(value):
    return json.loads(value) if isinstance(value, str) else value


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = OrderLifecycleManager().place_order(
            user_id=command.user_id,
            shipping_address=_loads(command.shipping_address),
            billing_address=_loads(command.billing_address) if command.billing_address else None,
            payment_method=command.payment_method,
            transaction_id=command.transaction_id,
            items=_loads(command.items) if command.items is not None else None,
            shipping_price=command.shipping_price,
            tax_price=command.tax_price,
            discount_amount=command.discount_amount,
            coupon_code=command.coupon_code,
            customer_notes=command.customer_notes,
        )
        return str(order.id)
