"""FastAPI routes for the Ordering domain.

Identity comes from headers set by the trusted upstream gateway:
``X-User-Id`` names the caller and ``X-User-Role: admin`` grants admin rights.
"""

import json

from fastapi import APIRouter, Depends, Header
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    PlaceOrderRequest,
    UpdateStatusRequest,
    order_to_response,
    order_to_summary,
    page_to_response,
)
from ordering.errors import AccessDenied
from ordering.order.cancellation import CancelOrder
from ordering.order.lifecycle import Actor
from ordering.order.placement import PlaceOrder
from ordering.order.queries import OrderQueryService
from ordering.order.status import UpdateOrderStatus

ADMIN_ROLE = "admin"


def current_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Actor:
    if not x_user_id:
        raise AccessDenied("Authentication required")
    return Actor(user_id=x_user_id, is_admin=(x_user_role or "").lower() == ADMIN_ROLE)


order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def place_order(body: PlaceOrderRequest, actor: Actor = Depends(current_actor)) -> OrderResponse:
    command = PlaceOrder(
        user_id=actor.user_id,
        shipping_address=json.dumps(body.shipping_address.model_dump()),
        billing_address=json.dumps(body.billing_address.model_dump()) if body.billing_address else None,
        payment_method=body.payment_method,
        transaction_id=body.transaction_id,
        items=json.dumps([line.model_dump() for line in body.items]) if body.items is not None else None,
        shipping_price=body.shipping_price,
        tax_price=body.tax_price,
        discount_amount=body.discount_amount,
        coupon_code=body.coupon_code,
        customer_notes=body.customer_notes,
    )
    order_id = current_domain.process(command, asynchronous=False)
    return order_to_response(OrderQueryService().get_order(order_id, actor))


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    status: str | None = None,
    page: int = 1,
    per_page: int = 10,
    sort: str = "created_at",
    direction: str = "desc",
    actor: Actor = Depends(current_actor),
) -> OrderListResponse:
    result = OrderQueryService().list_orders(
        actor,
        status=status,
        page=page,
        per_page=per_page,
        sort=sort,
        direction=direction,
    )
    return page_to_response(result)


@order_router.get("/stats", response_model=OrderStatsResponse)
async def order_stats(actor: Actor = Depends(current_actor)) -> OrderStatsResponse:
    stats = OrderQueryService().statistics(actor)
    return OrderStatsResponse(
        counts=stats.counts,
        total_orders=stats.total_orders,
        total_revenue=stats.total_revenue,
        recent_orders=[order_to_summary(order) for order in stats.recent_orders],
    )


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    return order_to_response(OrderQueryService().get_order(order_id, actor))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    body: UpdateStatusRequest,
    actor: Actor = Depends(current_actor),
) -> OrderResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        actor_id=actor.user_id,
        actor_is_admin=actor.is_admin,
        note=body.note,
        carrier=body.carrier,
        tracking_number=body.tracking_number,
    )
    current_domain.process(command, asynchronous=False)
    return order_to_response(OrderQueryService().get_order(order_id, actor))


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    command = CancelOrder(order_id=order_id, requested_by=actor.user_id)
    current_domain.process(command, asynchronous=False)
    return order_to_response(OrderQueryService().get_order(order_id, actor))
