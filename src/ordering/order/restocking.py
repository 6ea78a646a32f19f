"""Stock restoration for cancelled orders.

Runs when an ``OrderCancelled`` event is dispatched, which happens only after
the cancellation has been committed. A concurrent cancellation of the same
order fails its commit on the aggregate version check and raises no event,
so an order's stock is put back exactly once.
"""

import json

import structlog
from protean.utils.mixins import handle

from ordering.catalogue import get_catalogue
from ordering.domain import ordering
from ordering.inventory.ledger import InventoryLedger, StockLine
from ordering.order.events import OrderCancelled
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.event_handler(part_of=Order)
class OrderRestockingHandler:
    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        lines = [StockLine(str(line["product_id"]), int(line["quantity"])) for line in json.loads(event.items)]
        try:
            InventoryLedger(get_catalogue()).restore_all(lines)
        except Exception:
            logger.exception("Stock restoration failed for cancelled order", order_id=str(event.order_id))
            raise

        logger.info(
            "Stock restored for cancelled order",
            order_id=str(event.order_id),
            order_number=event.order_number,
            lines=[(line.product_id, line.quantity) for line in lines],
        )
