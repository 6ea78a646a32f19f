"""Shopping Cart aggregate — the items a user has selected before checkout.

Each line remembers the price the product had when it was added; an order
placed from the cart is priced with those remembered prices, not the live
catalogue price. The cart is cleared once an order has been placed from it.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from ordering.cart.events import CartCleared, CartItemAdded, CartItemRemoved
from ordering.domain import ordering


class CartStatus(Enum):
    ACTIVE = "Active"


@ordering.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    price_at_add = Float(required=True, min_value=0.0)
    added_at = DateTime()


@ordering.aggregate
class ShoppingCart:
    user_id = Identifier(required=True)
    items = HasMany(CartItem)
    status = String(choices=CartStatus, default=CartStatus.ACTIVE.value)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(
            user_id=str(user_id),
            status=CartStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_empty(self):
        return not self.items

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, quantity, price_at_add):
        """Add an item to the cart (or increase quantity if already present).

        A product already in the cart keeps the price it was first added at.
        """
        existing = next((i for i in self.items if str(i.product_id) == str(product_id)), None)
        now = datetime.now(UTC)

        if existing:
            existing.quantity += quantity
            item = existing
        else:
            item = CartItem(
                product_id=str(product_id),
                quantity=quantity,
                price_at_add=price_at_add,
                added_at=now,
            )
            self.add_items(item)

        self.updated_at = now

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=str(item.id),
                product_id=str(product_id),
                quantity=quantity,
                price_at_add=item.price_at_add,
            )
        )

    def remove_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})

        self.remove_items(item)
        self.updated_at = datetime.now(UTC)

        self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item_id)))

    def clear(self):
        """Empty the cart."""
        removed = list(self.items)
        for item in removed:
            self.remove_items(item)

        now = datetime.now(UTC)
        self.updated_at = now

        self.raise_(
            CartCleared(
                cart_id=str(self.id),
                items_removed=len(removed),
                cleared_at=now,
            )
        )


@ordering.repository(part_of=ShoppingCart)
class CartRepository:
    def find_active_for(self, user_id) -> ShoppingCart | None:
        """The user's active cart, if they have one."""
        return self._dao.query.filter(user_id=str(user_id), status=CartStatus.ACTIVE.value).limit(1).all().first
