"""Pricing calculator — turns priced line items into an order's price breakdown.

Pure and deterministic: no repository access, no clock. All arithmetic is
done in ``Decimal`` and rounded half-up to the currency's minor unit.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from protean.exceptions import ValidationError

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert a float/int/str amount to a Decimal rounded to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceBreakdown:
    """The computed pricing of an order."""

    items_price: float
    shipping_price: float
    tax_price: float
    discount_amount: float
    total_price: float

    def as_dict(self) -> dict[str, float]:
        return {
            "items_price": self.items_price,
            "shipping_price": self.shipping_price,
            "tax_price": self.tax_price,
            "discount_amount": self.discount_amount,
            "total_price": self.total_price,
        }


def expected_total(items_price, shipping_price=0, tax_price=0, discount_amount=0) -> Decimal:
    """Total implied by the components, floored at zero."""
    total = to_money(items_price) + to_money(shipping_price) + to_money(tax_price) - to_money(discount_amount)
    return max(total, Decimal("0.00"))


def _validate(lines, adjustments):
    errors: dict[str, list[str]] = {}

    for index, (unit_price, quantity) in enumerate(lines):
        if unit_price is None or unit_price < 0:
            errors.setdefault("unit_price", []).append(f"Line {index + 1}: price cannot be negative")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            errors.setdefault("quantity", []).append(f"Line {index + 1}: quantity must be a whole number")
        elif quantity < 0:
            errors.setdefault("quantity", []).append(f"Line {index + 1}: quantity cannot be negative")

    for name, amount in adjustments.items():
        if amount < 0:
            errors.setdefault(name, []).append(f"{name.replace('_', ' ').capitalize()} cannot be negative")

    if errors:
        raise ValidationError(errors)


def calculate_pricing(
    lines: Iterable[tuple[float, int]],
    shipping_price: float | None = 0.0,
    tax_price: float | None = 0.0,
    discount_amount: float | None = 0.0,
) -> PriceBreakdown:
    """Compute items subtotal and grand total for ``(unit_price, quantity)`` lines.

    Missing adjustments count as zero. The grand total never goes below zero,
    even when the discount exceeds everything else.
    """
    lines = list(lines)
    adjustments = {
        "shipping_price": shipping_price or 0.0,
        "tax_price": tax_price or 0.0,
        "discount_amount": discount_amount or 0.0,
    }
    _validate(lines, adjustments)

    items_price = sum((Decimal(str(price)) * quantity for price, quantity in lines), Decimal("0"))
    items_price = items_price.quantize(CENT, rounding=ROUND_HALF_UP)
    total = expected_total(items_price, **adjustments)

    return PriceBreakdown(
        items_price=float(items_price),
        shipping_price=float(to_money(adjustments["shipping_price"])),
        tax_price=float(to_money(adjustments["tax_price"])),
        discount_amount=float(to_money(adjustments["discount_amount"])),
        total_price=float(total),
    )
