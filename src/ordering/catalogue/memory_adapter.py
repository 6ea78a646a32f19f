"""In-memory product catalogue for development and testing.

Holds product records in a dict guarded by a single lock, so compare-and-set
stock writes are atomic across threads. Products are seeded with
``add_product``; the ordering core never creates or deletes them.
"""

import json
import threading
from dataclasses import replace
from pathlib import Path

from ordering.catalogue.port import ProductCatalogue, ProductRecord


class InMemoryCatalogue(ProductCatalogue):
    """Thread-safe in-memory catalogue."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._products: dict[str, ProductRecord] = {}

    def add_product(
        self,
        product_id: str,
        title: str,
        price: float,
        stock: int,
        image: str | None = None,
        sku: str | None = None,
    ) -> ProductRecord:
        record = ProductRecord(
            product_id=str(product_id),
            title=title,
            price=price,
            stock=stock,
            in_stock=stock > 0,
            image=image,
            sku=sku,
        )
        with self._lock:
            self._products[record.product_id] = record
        return record

    def load_seed(self, path) -> int:
        """Add every product listed in a JSON file. Returns how many were loaded."""
        records = json.loads(Path(path).read_text())
        for record in records:
            self.add_product(**record)
        return len(records)

    def remove_product(self, product_id: str) -> None:
        with self._lock:
            self._products.pop(str(product_id), None)

    def update_price(self, product_id: str, price: float) -> None:
        with self._lock:
            current = self._products[str(product_id)]
            self._products[current.product_id] = replace(current, price=price)

    def get(self, product_id: str) -> ProductRecord | None:
        with self._lock:
            return self._products.get(str(product_id))

    def set_stock(self, product_id: str, stock: int, in_stock: bool, expected: int) -> bool:
        with self._lock:
            current = self._products.get(str(product_id))
            if current is None or current.stock != expected:
                return False
            self._products[current.product_id] = replace(current, stock=stock, in_stock=in_stock)
            return True
