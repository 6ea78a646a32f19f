"""Read side of the ordering core: order lookup, listings and statistics."""

from dataclasses import dataclass, field
from decimal import Decimal

from protean.utils.globals import current_domain

from ordering.errors import AccessDenied
from ordering.order.lifecycle import Actor
from ordering.order.order import Order, OrderStatus, coerce_status
from ordering.order.pricing import to_money
from ordering.order.repository import OrderPage


@dataclass
class OrderStatistics:
    counts: dict[str, int] = field(default_factory=dict)
    total_orders: int = 0
    total_revenue: float = 0.0
    recent_orders: list = field(default_factory=list)


class OrderQueryService:
    @property
    def orders(self):
        return current_domain.repository_for(Order)

    def get_order(self, order_id, actor: Actor) -> Order:
        """Fetch an order its owner or an admin is allowed to see."""
        order = self.orders.find_by_id(order_id)
        if not actor.is_admin and str(order.user_id) != str(actor.user_id):
            raise AccessDenied("Not authorized to view this order", order_id=str(order_id))
        return order

    def list_orders(self, actor: Actor, status=None, page=1, per_page=10, sort=None, direction="desc") -> OrderPage:
        """Admins see every order; everyone else sees their own."""
        if status:
            status = coerce_status(status).value
        if actor.is_admin:
            return self.orders.find_all(status=status, page=page, per_page=per_page, sort=sort, direction=direction)
        return self.list_user_orders(
            actor.user_id, status=status, page=page, per_page=per_page, sort=sort, direction=direction
        )

    def list_user_orders(self, user_id, status=None, page=1, per_page=10, sort=None, direction="desc") -> OrderPage:
        return self.orders.find_by_user(
            user_id,
            status=status,
            page=page,
            per_page=per_page,
            sort=sort,
            direction=direction,
        )

    def statistics(self, actor: Actor, recent=5) -> OrderStatistics:
        """Counts per status, revenue over non-cancelled orders and the latest orders."""
        if not actor.is_admin:
            raise AccessDenied("Only admins can view order statistics")

        repo = self.orders
        counts = {status.value: repo.count(status=status.value) for status in OrderStatus}

        revenue = Decimal("0.00")
        for order in repo.iter_all():
            if order.status != OrderStatus.CANCELLED.value:
                revenue += to_money(order.total_price)

        return OrderStatistics(
            counts=counts,
            total_orders=sum(counts.values()),
            total_revenue=float(revenue),
            recent_orders=repo.recent(limit=recent),
        )
