"""Product catalogue port (abstract interface).

The catalogue owns product records; the ordering core only reads the fields
it snapshots into an order and changes stock through ``set_stock``. Stock
writes are compare-and-set so the inventory ledger can build an atomic
conditional decrement on top of any adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ProductRecord:
    """A read-only view of a catalogue product."""

    product_id: str
    title: str
    price: float
    stock: int
    in_stock: bool
    image: str | None = None
    sku: str | None = None


class ProductCatalogue(ABC):
    """Abstract product catalogue interface."""

    @abstractmethod
    def get(self, product_id: str) -> ProductRecord | None:
        """Return the product, or None when it does not exist."""
        ...

    @abstractmethod
    def set_stock(self, product_id: str, stock: int, in_stock: bool, expected: int) -> bool:
        """Write a new stock level only if the current level equals ``expected``.

        Returns False, without writing, when the stock changed in between or
        the product no longer exists.
        """
        ...
