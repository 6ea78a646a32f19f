"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.errors import OrderingError
from ordering.order.lifecycle import Actor, OrderLifecycleManager
from ordering.order.order import Order
from protean import current_domain
from pytest_bdd import given, parsers, then

ADMIN = Actor(user_id="admin-001", is_admin=True)

_PATH_TO = {
    "confirmed": ["confirmed"],
    "processing": ["confirmed", "processing"],
    "shipped": ["confirmed", "processing", "shipped"],
    "delivered": ["confirmed", "processing", "shipped", "delivered"],
}


@pytest.fixture()
def state():
    """Mutable scenario state shared between steps."""
    return {"orders": [], "error": None, "outcomes": []}


@pytest.fixture()
def manager(catalogue):
    return OrderLifecycleManager(catalogue)


@pytest.fixture()
def place(manager, address):
    """Place an order for one product on behalf of a user."""

    def _place(user_id, product_id, quantity):
        return manager.place_order(
            user_id=user_id,
            shipping_address=address,
            payment_method="cash-on-delivery",
            items=[{"product_id": product_id, "quantity": quantity}],
        )

    return _place


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.parse('a product "{product_id}" priced at {price:f} with {stock:d} units in stock'))
def _(catalogue, product_id, price, stock):
    catalogue.add_product(product_id, f"Product {product_id}", price, stock=stock)


@given(parsers.parse('"{user_id}" has an order for {quantity:d} units of "{product_id}"'))
def _(place, state, user_id, quantity, product_id):
    state["orders"].append(place(user_id, product_id, quantity))


@given(parsers.parse('an admin has moved the order to "{status}"'))
def _(manager, state, status):
    order = state["orders"][-1]
    for step in _PATH_TO[status]:
        manager.update_order_status(order.id, step, actor=ADMIN)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.parse('the product "{product_id}" has {stock:d} units in stock'))
def _(catalogue, product_id, stock):
    assert catalogue.get(product_id).stock == stock


@then(parsers.parse('the order status is "{status}"'))
def _(state, status):
    stored = current_domain.repository_for(Order).get(state["orders"][-1].id)
    assert stored.status == status


@then(parsers.parse("the order history has {count:d} entries"))
def _(state, count):
    stored = current_domain.repository_for(Order).get(state["orders"][-1].id)
    assert len(stored.history) == count


@then(parsers.parse('the request fails with "{kind}"'))
def _(state, kind):
    assert isinstance(state["error"], OrderingError)
    assert state["error"].kind == kind
