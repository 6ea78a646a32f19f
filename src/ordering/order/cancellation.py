"""Order cancellation — command and handler."""

from protean import handle
from protean.fields import Identifier

from ordering.domain import ordering
from ordering.order.lifecycle import OrderLifecycleManager
from ordering.order.order import Order


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    requested_by = Identifier(required=True)


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = OrderLifecycleManager().cancel_order(command.order_id, command.requested_by)
        return str(order.id)
