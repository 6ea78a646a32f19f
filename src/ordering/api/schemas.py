"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands and the Order aggregate.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str
    city: str
    state: str
    postal_code: str
    country: str


class OrderLineSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    payment_method: str
    transaction_id: str | None = None
    items: list[OrderLineSchema] | None = None
    shipping_price: float = Field(ge=0, default=0.0)
    tax_price: float = Field(ge=0, default=0.0)
    discount_amount: float = Field(ge=0, default=0.0)
    coupon_code: str | None = None
    customer_notes: str | None = Field(default=None, max_length=1000)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "street": "1 Market St",
                        "city": "Springfield",
                        "state": "IL",
                        "postal_code": "62701",
                        "country": "US",
                    },
                    "payment_method": "cash-on-delivery",
                    "items": [{"product_id": "prod-001", "quantity": 2}],
                    "shipping_price": 5.0,
                }
            ]
        }
    }


class UpdateStatusRequest(BaseModel):
    status: str
    note: str | None = Field(default=None, max_length=500)
    carrier: str | None = None
    tracking_number: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class ProductSnapshotResponse(BaseModel):
    title: str
    image: str | None = None
    sku: str | None = None
    price: float | None = None


class OrderItemResponse(BaseModel):
    product_id: str
    product: ProductSnapshotResponse | None = None
    quantity: int
    unit_price: float
    line_total: float


class PaymentInfoResponse(BaseModel):
    method: str
    transaction_id: str | None = None
    status: str


class PricingResponse(BaseModel):
    items_price: float
    shipping_price: float
    tax_price: float
    discount_amount: float
    total_price: float


class StatusChangeResponse(BaseModel):
    status: str
    changed_at: datetime
    actor: str | None = None
    note: str | None = None


class ShippingInfoResponse(BaseModel):
    carrier: str | None = None
    tracking_number: str | None = None
    shipped_at: datetime | None = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    user_id: str
    status: str
    items: list[OrderItemResponse]
    shipping_address: AddressSchema
    billing_address: AddressSchema
    payment_info: PaymentInfoResponse
    pricing: PricingResponse
    status_history: list[StatusChangeResponse]
    shipping_info: ShippingInfoResponse
    coupon_code: str | None = None
    customer_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    delivered_at: datetime | None = None


class PaginationResponse(BaseModel):
    current_page: int
    per_page: int
    total_pages: int
    total_items: int
    has_next_page: bool
    has_prev_page: bool


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: PaginationResponse


class OrderSummaryResponse(BaseModel):
    id: str
    order_number: str
    user_id: str
    status: str
    total_price: float
    created_at: datetime | None = None


class OrderStatsResponse(BaseModel):
    counts: dict[str, int]
    total_orders: int
    total_revenue: float
    recent_orders: list[OrderSummaryResponse]


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------
def order_to_response(order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        order_number=order.order_number,
        user_id=str(order.user_id),
        status=order.status,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                product=(
                    ProductSnapshotResponse(**item.product_snapshot.to_dict())
                    if item.product_snapshot
                    else None
                ),
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            )
            for item in order.ordered_items
        ],
        shipping_address=AddressSchema(**order.shipping_address.to_dict()),
        billing_address=AddressSchema(**order.billing_address.to_dict()),
        payment_info=PaymentInfoResponse(**order.payment_info.to_dict()),
        pricing=PricingResponse(**order.pricing.to_dict()),
        status_history=[
            StatusChangeResponse(
                status=entry.status,
                changed_at=entry.changed_at,
                actor=entry.actor,
                note=entry.note,
            )
            for entry in order.history
        ],
        shipping_info=ShippingInfoResponse(
            carrier=order.carrier,
            tracking_number=order.tracking_number,
            shipped_at=order.shipped_at,
        ),
        coupon_code=order.coupon_code,
        customer_notes=order.customer_notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
        delivered_at=order.delivered_at,
    )


def order_to_summary(order) -> OrderSummaryResponse:
    return OrderSummaryResponse(
        id=str(order.id),
        order_number=order.order_number,
        user_id=str(order.user_id),
        status=order.status,
        total_price=order.total_price,
        created_at=order.created_at,
    )


def page_to_response(page) -> OrderListResponse:
    return OrderListResponse(
        orders=[order_to_response(order) for order in page.items],
        pagination=PaginationResponse(
            current_page=page.page,
            per_page=page.per_page,
            total_pages=page.total_pages,
            total_items=page.total,
            has_next_page=page.has_next,
            has_prev_page=page.has_prev,
        ),
    )
