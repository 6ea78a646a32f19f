"""Tests for the inventory ledger — reservations, restorations and contention."""

import threading

import pytest
from ordering.catalogue.memory_adapter import InMemoryCatalogue
from ordering.errors import InsufficientStock, ProductNotFound, StockContention
from ordering.inventory.ledger import InventoryLedger, StockLine
from protean.exceptions import ValidationError


@pytest.fixture()
def catalogue():
    catalogue = _RecordingCatalogue()
    catalogue.add_product("prod-001", "Widget", 10.0, stock=5)
    catalogue.add_product("prod-002", "Gadget", 4.5, stock=1)
    return catalogue


@pytest.fixture()
def ledger(catalogue):
    return InventoryLedger(catalogue)


class _RecordingCatalogue(InMemoryCatalogue):
    """Keeps a log of every stock write that went through."""

    def __init__(self):
        super().__init__()
        self.writes = []

    def set_stock(self, product_id, stock, in_stock, expected):
        applied = super().set_stock(product_id, stock, in_stock, expected)
        if applied:
            self.writes.append({"product_id": product_id, "from": expected, "to": stock})
        return applied


class _AlwaysLosingCatalogue(InMemoryCatalogue):
    """A catalogue where every compare-and-set loses to another writer."""

    def set_stock(self, product_id, stock, in_stock, expected):
        return False


class TestReserve:
    def test_decrements_stock(self, ledger, catalogue):
        assert ledger.reserve("prod-001", 2) == 3
        assert catalogue.get("prod-001").stock == 3
        assert catalogue.get("prod-001").in_stock is True

    def test_last_unit_clears_in_stock(self, ledger, catalogue):
        ledger.reserve("prod-002", 1)
        product = catalogue.get("prod-002")
        assert product.stock == 0
        assert product.in_stock is False

    def test_insufficient_stock(self, ledger, catalogue):
        with pytest.raises(InsufficientStock) as exc:
            ledger.reserve("prod-001", 6)
        assert exc.value.context == {"product_id": "prod-001", "available": 5, "requested": 6}
        assert catalogue.get("prod-001").stock == 5

    def test_unknown_product(self, ledger):
        with pytest.raises(ProductNotFound):
            ledger.reserve("nope", 1)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_quantity_must_be_positive_whole_number(self, ledger, quantity):
        with pytest.raises(ValidationError):
            ledger.reserve("prod-001", quantity)

    def test_writes_are_conditional(self, ledger, catalogue):
        ledger.reserve("prod-001", 2)
        assert catalogue.writes == [{"product_id": "prod-001", "from": 5, "to": 3}]

    def test_gives_up_under_endless_contention(self):
        catalogue = _AlwaysLosingCatalogue()
        catalogue.add_product("prod-001", "Widget", 10.0, stock=5)
        with pytest.raises(StockContention):
            InventoryLedger(catalogue).reserve("prod-001", 1)


class TestRestore:
    def test_increments_stock(self, ledger, catalogue):
        ledger.reserve("prod-002", 1)
        assert ledger.restore("prod-002", 1) == 1
        product = catalogue.get("prod-002")
        assert product.stock == 1
        assert product.in_stock is True

    def test_missing_product_is_skipped(self, ledger, catalogue):
        catalogue.remove_product("prod-001")
        assert ledger.restore("prod-001", 2) is None


class TestReserveAll:
    def test_reserves_every_line(self, ledger, catalogue):
        ledger.reserve_all([StockLine("prod-001", 2), StockLine("prod-002", 1)])
        assert catalogue.get("prod-001").stock == 3
        assert catalogue.get("prod-002").stock == 0

    def test_precheck_failure_writes_nothing(self, ledger, catalogue):
        with pytest.raises(InsufficientStock):
            ledger.reserve_all([StockLine("prod-001", 2), StockLine("prod-002", 2)])
        assert catalogue.writes == []
        assert catalogue.get("prod-001").stock == 5

    def test_demand_is_aggregated_per_product(self, ledger, catalogue):
        with pytest.raises(InsufficientStock) as exc:
            ledger.reserve_all([StockLine("prod-001", 3), StockLine("prod-001", 3)])
        assert exc.value.context["requested"] == 6
        assert catalogue.get("prod-001").stock == 5

    def test_unknown_product_writes_nothing(self, ledger, catalogue):
        with pytest.raises(ProductNotFound):
            ledger.reserve_all([StockLine("prod-001", 1), StockLine("ghost", 1)])
        assert catalogue.writes == []

    def test_failure_midway_rolls_back(self, catalogue):
        class _RacedCatalogue(InMemoryCatalogue):
            """Another order takes the gadget between the check and the reservation."""

            def __init__(self):
                super().__init__()
                self.raced = False

            def set_stock(self, product_id, stock, in_stock, expected):
                if product_id == "prod-002" and not self.raced:
                    self.raced = True
                    super().set_stock(product_id, 0, False, expected)
                    return False
                return super().set_stock(product_id, stock, in_stock, expected)

        raced = _RacedCatalogue()
        raced.add_product("prod-001", "Widget", 10.0, stock=5)
        raced.add_product("prod-002", "Gadget", 4.5, stock=1)

        with pytest.raises(InsufficientStock):
            InventoryLedger(raced).reserve_all([StockLine("prod-001", 2), StockLine("prod-002", 1)])

        assert raced.get("prod-001").stock == 5
        assert raced.get("prod-002").stock == 0


class TestConcurrentReservations:
    def test_two_orders_of_three_against_five(self, ledger, catalogue):
        barrier = threading.Barrier(2)
        outcomes = []

        def _order():
            barrier.wait()
            try:
                ledger.reserve_all([StockLine("prod-001", 3)])
                outcomes.append("ok")
            except InsufficientStock:
                outcomes.append("insufficient")

        threads = [threading.Thread(target=_order) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["insufficient", "ok"]
        assert catalogue.get("prod-001").stock == 2

    def test_many_single_units_never_oversell(self, ledger, catalogue):
        successes = []
        failures = []
        lock = threading.Lock()

        def _take_one():
            try:
                ledger.reserve("prod-001", 1)
                with lock:
                    successes.append(1)
            except InsufficientStock:
                with lock:
                    failures.append(1)

        threads = [threading.Thread(target=_take_one) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(successes) == 5
        assert len(failures) == 15
        product = catalogue.get("prod-001")
        assert product.stock == 0
        assert product.in_stock is False
