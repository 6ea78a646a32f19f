"""Administrative status updates — command and handler."""

from protean import handle
from protean.fields import Boolean, Identifier, String

from ordering.domain import ordering
from ordering.order.lifecycle import Actor, OrderLifecycleManager
from ordering.order.order import Order


@ordering.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    actor_id = Identifier(required=True)
    actor_is_admin = Boolean(default=False)
    note = String(max_length=500)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)


@ordering.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        order = OrderLifecycleManager().update_order_status(
            command.order_id,
            command.status,
            actor=Actor(user_id=str(command.actor_id), is_admin=bool(command.actor_is_admin)),
            note=command.note,
            carrier=command.carrier,
            tracking_number=command.tracking_number,
        )
        return str(order.id)
