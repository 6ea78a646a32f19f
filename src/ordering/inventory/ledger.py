"""Inventory ledger — the only code path that changes product stock.

Reservations are atomic conditional decrements: the ledger reads the current
level and writes the new one with compare-and-set, retrying when another
writer got there first. A decrement therefore either lands on exactly the
level it was checked against or does not land at all, and stock never goes
below zero.

The ledger cannot tell whether a restoration was already applied; callers
restore a line at most once per cancellation.
"""

from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError

from ordering.catalogue.port import ProductCatalogue, ProductRecord
from ordering.errors import InsufficientStock, ProductNotFound, StockContention

logger = structlog.get_logger(__name__)

MAX_CAS_ATTEMPTS = 100


@dataclass(frozen=True)
class StockLine:
    """A quantity of one product to reserve or restore."""

    product_id: str
    quantity: int


class InventoryLedger:
    def __init__(self, catalogue: ProductCatalogue) -> None:
        self.catalogue = catalogue

    # -------------------------------------------------------------------
    # Single product
    # -------------------------------------------------------------------
    def reserve(self, product_id: str, quantity: int) -> int:
        """Take ``quantity`` units out of stock. Returns the new stock level."""
        _check_quantity(quantity)

        for _ in range(MAX_CAS_ATTEMPTS):
            product = self._require(product_id)
            if product.stock < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for product: {product.title}",
                    product_id=str(product_id),
                    available=product.stock,
                    requested=quantity,
                )

            new_stock = product.stock - quantity
            if self.catalogue.set_stock(product.product_id, new_stock, in_stock=new_stock > 0, expected=product.stock):
                logger.info(
                    "Stock reserved",
                    product_id=product.product_id,
                    quantity=quantity,
                    remaining=new_stock,
                )
                return new_stock

        logger.warning("Stock reservation kept colliding", product_id=str(product_id), quantity=quantity)
        raise StockContention(product_id=str(product_id))

    def restore(self, product_id: str, quantity: int) -> int | None:
        """Put ``quantity`` units back into stock. Returns the new level.

        A product that has since disappeared from the catalogue is skipped
        and None is returned.
        """
        _check_quantity(quantity)

        for _ in range(MAX_CAS_ATTEMPTS):
            product = self.catalogue.get(product_id)
            if product is None:
                logger.warning("Cannot restore stock of missing product", product_id=str(product_id), quantity=quantity)
                return None

            new_stock = product.stock + quantity
            if self.catalogue.set_stock(product.product_id, new_stock, in_stock=True, expected=product.stock):
                logger.info(
                    "Stock restored",
                    product_id=product.product_id,
                    quantity=quantity,
                    remaining=new_stock,
                )
                return new_stock

        logger.warning("Stock restoration kept colliding", product_id=str(product_id), quantity=quantity)
        raise StockContention(product_id=str(product_id))

    # -------------------------------------------------------------------
    # Whole orders
    # -------------------------------------------------------------------
    def check_available(self, lines: Iterable[StockLine]) -> dict[str, ProductRecord]:
        """Verify every product exists and can cover its total demand, without writing.

        Returns the products that were looked up, keyed by id.
        """
        demand: OrderedDict[str, int] = OrderedDict()
        for line in lines:
            _check_quantity(line.quantity)
            demand[str(line.product_id)] = demand.get(str(line.product_id), 0) + line.quantity

        products = {}
        for product_id, quantity in demand.items():
            product = self._require(product_id)
            if product.stock < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for product: {product.title}",
                    product_id=product_id,
                    available=product.stock,
                    requested=quantity,
                )
            products[product_id] = product
        return products

    def reserve_all(self, lines: Iterable[StockLine]) -> list[StockLine]:
        """Reserve every line or none of them.

        Runs a read-only availability pass first, then reserves line by line.
        If a reservation fails anyway (a concurrent order took the stock in
        between), everything reserved so far is put back before re-raising.
        """
        lines = list(lines)
        self.check_available(lines)

        reserved: list[StockLine] = []
        try:
            for line in lines:
                self.reserve(line.product_id, line.quantity)
                reserved.append(line)
        except Exception:
            logger.warning(
                "Rolling back partial reservation",
                reserved=[(line.product_id, line.quantity) for line in reserved],
            )
            self.restore_all(reversed(reserved))
            raise

        return reserved

    def restore_all(self, lines: Iterable[StockLine]) -> None:
        for line in lines:
            self.restore(line.product_id, line.quantity)

    def _require(self, product_id: str) -> ProductRecord:
        product = self.catalogue.get(product_id)
        if product is None:
            raise ProductNotFound(f"Product not found: {product_id}", product_id=str(product_id))
        return product


def _check_quantity(quantity):
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be a whole number of at least 1"]})
