"""Application tests for the ordering commands processed through the domain."""

import json
import threading

import pytest
from ordering.cart.cart import ShoppingCart
from ordering.errors import AccessDenied, EmptyOrder, OrderNotCancellable
from ordering.order.cancellation import CancelOrder
from ordering.order.order import Order, OrderStatus
from ordering.order.placement import PlaceOrder
from ordering.order.status import UpdateOrderStatus
from protean import current_domain


@pytest.fixture()
def stocked(catalogue):
    catalogue.add_product("prod-001", "Widget", 10.0, stock=5)
    return catalogue


def _place_order(address, **overrides):
    data = {
        "user_id": "user-001",
        "shipping_address": json.dumps(address),
        "payment_method": "cash-on-delivery",
        "items": json.dumps([{"product_id": "prod-001", "quantity": 2}]),
        "shipping_price": 5.0,
    }
    data.update(overrides)
    return current_domain.process(PlaceOrder(**data), asynchronous=False)


def _update(order_id, status, **overrides):
    data = {"order_id": order_id, "status": status, "actor_id": "admin-001", "actor_is_admin": True}
    data.update(overrides)
    return current_domain.process(UpdateOrderStatus(**data), asynchronous=False)


class TestPlaceOrderCommand:
    def test_returns_order_id(self, stocked, address):
        order_id = _place_order(address)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.PENDING.value
        assert order.pricing.total_price == 25.0
        assert stocked.get("prod-001").stock == 3

    def test_separate_billing_address(self, stocked, address):
        billing = dict(address, street="2 Side St")
        order_id = _place_order(address, billing_address=json.dumps(billing))

        order = current_domain.repository_for(Order).get(order_id)
        assert order.billing_address.street == "2 Side St"

    def test_from_cart(self, stocked, address):
        cart = ShoppingCart.create(user_id="user-001")
        cart.add_item("prod-001", 1, 9.0)
        current_domain.repository_for(ShoppingCart).add(cart)

        order_id = _place_order(address, items=None)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.pricing.items_price == 9.0

    def test_empty(self, stocked, address):
        with pytest.raises(EmptyOrder):
            _place_order(address, items=None)

    def test_explicit_empty_items_with_a_cart(self, stocked, address):
        cart = ShoppingCart.create(user_id="user-001")
        cart.add_item("prod-001", 1, 9.0)
        current_domain.repository_for(ShoppingCart).add(cart)

        with pytest.raises(EmptyOrder):
            _place_order(address, items="[]")

        assert stocked.get("prod-001").stock == 5
        assert current_domain.repository_for(Order).count() == 0


class TestCancelOrderCommand:
    def test_cancels_and_restores(self, stocked, address):
        order_id = _place_order(address)

        current_domain.process(CancelOrder(order_id=order_id, requested_by="user-001"), asynchronous=False)

        assert current_domain.repository_for(Order).get(order_id).status == "cancelled"
        assert stocked.get("prod-001").stock == 5

    def test_other_user(self, stocked, address):
        order_id = _place_order(address)
        with pytest.raises(AccessDenied):
            current_domain.process(CancelOrder(order_id=order_id, requested_by="user-002"), asynchronous=False)


class TestUpdateOrderStatusCommand:
    def test_admin_update(self, stocked, address):
        order_id = _place_order(address)
        _update(order_id, "confirmed", note="ok")

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == "confirmed"
        assert order.history[-1].actor == "admin-001"

    def test_non_admin(self, stocked, address):
        order_id = _place_order(address)
        with pytest.raises(AccessDenied):
            _update(order_id, "confirmed", actor_id="user-001", actor_is_admin=False)

    def test_cannot_cancel_after_delivery(self, stocked, address):
        order_id = _place_order(address)
        for status in ["confirmed", "processing", "shipped", "delivered"]:
            _update(order_id, status)

        with pytest.raises(OrderNotCancellable):
            current_domain.process(CancelOrder(order_id=order_id, requested_by="user-001"), asynchronous=False)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == "delivered"
        assert len(order.history) == 5


def _run_together(ordering_bed, count, work):
    """Run ``work(n)`` in ``count`` threads released at the same moment."""
    barrier = threading.Barrier(count)
    outcomes = []
    lock = threading.Lock()

    def _worker(n):
        with ordering_bed.domain.domain_context():
            barrier.wait()
            try:
                result = ("ok", work(n))
            except Exception as exc:
                result = ("error", exc)
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=_worker, args=(n,)) for n in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


class TestConcurrentCommands:
    def test_competing_cancellations_restore_stock_once(self, ordering_bed, catalogue, address):
        catalogue.add_product("prod-001", "Widget", 10.0, stock=50)

        for _ in range(10):
            order_id = _place_order(address)
            assert catalogue.get("prod-001").stock == 48

            outcomes = _run_together(
                ordering_bed,
                2,
                lambda n: current_domain.process(
                    CancelOrder(order_id=order_id, requested_by="user-001"), asynchronous=False
                ),
            )

            assert [kind for kind, _ in outcomes].count("ok") == 1
            assert catalogue.get("prod-001").stock == 50
            order = current_domain.repository_for(Order).get(order_id)
            assert [entry.status for entry in order.history] == ["pending", "cancelled"]

    def test_competing_admin_cancellations_restore_stock_once(self, ordering_bed, catalogue, address):
        catalogue.add_product("prod-001", "Widget", 10.0, stock=50)
        order_id = _place_order(address)

        outcomes = _run_together(ordering_bed, 2, lambda n: _update(order_id, "cancelled"))

        assert [kind for kind, _ in outcomes].count("ok") == 1
        assert catalogue.get("prod-001").stock == 50

    def test_concurrent_placements_get_distinct_numbers(self, ordering_bed, catalogue, address):
        catalogue.add_product("prod-001", "Widget", 10.0, stock=50)

        outcomes = _run_together(
            ordering_bed,
            6,
            lambda n: _place_order(
                address,
                user_id=f"user-{n}",
                items=json.dumps([{"product_id": "prod-001", "quantity": 1}]),
            ),
        )

        assert [kind for kind, _ in outcomes] == ["ok"] * 6
        orders = [current_domain.repository_for(Order).get(order_id) for _, order_id in outcomes]
        assert len({order.order_number for order in orders}) == 6
        assert catalogue.get("prod-001").stock == 44
