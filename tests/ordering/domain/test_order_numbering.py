"""Tests for order number formatting, parsing and generation."""

import threading
from datetime import UTC, date, datetime

import pytest
from ordering.order.numbering import (
    IssuedSequences,
    OrderNumberGenerator,
    format_order_number,
    parse_order_number,
)


class _FakeRepository:
    def __init__(self, latest=None):
        self.latest = latest or {}
        self.asked = []

    def latest_sequence_for(self, day):
        self.asked.append(day)
        return self.latest.get(day, 0)


def _clock(year=2026, month=10, day=19):
    return lambda: datetime(year, month, day, 23, 59, tzinfo=UTC)


class TestFormatting:
    def test_format(self):
        assert format_order_number(date(2026, 3, 7), 12) == "ORD-20260307-0012"

    def test_sequence_wider_than_padding(self):
        assert format_order_number(date(2026, 3, 7), 12345) == "ORD-20260307-12345"

    def test_parse(self):
        assert parse_order_number("ORD-20260307-0012") == ("20260307", 12)

    @pytest.mark.parametrize("value", ["", "ORD-2026037-0001", "XYZ-20260307-0001", "ORD-20260307-1"])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_order_number(value)


class TestGenerator:
    def test_first_number_of_the_day(self):
        generator = OrderNumberGenerator(_FakeRepository(), clock=_clock(), sequences=IssuedSequences())
        assert generator.next_number() == "ORD-20261019-0001"

    def test_continues_from_latest_sequence(self):
        repository = _FakeRepository({"20261019": 41})
        generator = OrderNumberGenerator(repository, clock=_clock(), sequences=IssuedSequences())
        assert generator.next_number() == "ORD-20261019-0042"
        assert repository.asked == ["20261019"]

    def test_sequence_restarts_on_a_new_day(self):
        repository = _FakeRepository({"20261019": 41})
        generator = OrderNumberGenerator(repository, clock=_clock(day=20), sequences=IssuedSequences())
        assert generator.next_number() == "ORD-20261020-0001"

    def test_uncommitted_numbers_are_not_reissued(self):
        # Nothing is stored yet, as when earlier orders sit in open transactions
        generator = OrderNumberGenerator(_FakeRepository(), clock=_clock(), sequences=IssuedSequences())
        assert [generator.next_number() for _ in range(3)] == [
            "ORD-20261019-0001",
            "ORD-20261019-0002",
            "ORD-20261019-0003",
        ]

    def test_stored_sequence_ahead_of_this_process_wins(self):
        repository = _FakeRepository()
        generator = OrderNumberGenerator(repository, clock=_clock(), sequences=IssuedSequences())
        generator.next_number()
        repository.latest["20261019"] = 10
        assert generator.next_number() == "ORD-20261019-0011"

    def test_generators_share_the_process_sequences(self):
        sequences = IssuedSequences()
        first = OrderNumberGenerator(_FakeRepository(), clock=_clock(), sequences=sequences)
        second = OrderNumberGenerator(_FakeRepository(), clock=_clock(), sequences=sequences)
        assert first.next_number() != second.next_number()


class TestIssuedSequences:
    def test_concurrent_claims_are_distinct(self):
        sequences = IssuedSequences()
        claimed = []
        barrier = threading.Barrier(20)

        def _claim():
            barrier.wait()
            claimed.append(sequences.claim("20261019", 0))

        threads = [threading.Thread(target=_claim) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(claimed) == list(range(1, 21))

    def test_older_days_are_forgotten(self):
        sequences = IssuedSequences()
        sequences.claim("20261019", 0)
        sequences.claim("20261020", 0)
        assert sequences.claim("20261019", 0) == 1

    def test_reset(self):
        sequences = IssuedSequences()
        sequences.claim("20261019", 0)
        sequences.reset()
        assert sequences.claim("20261019", 0) == 1
