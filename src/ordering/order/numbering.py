"""Order number generator.

Order numbers look like ``ORD-20261019-0007``: a fixed prefix, the calendar
day (UTC) the order was placed, and a per-day sequence zero-padded to four
digits. The next sequence is one past the highest sequence already stored
for the day or already handed out by this process, whichever is larger.
Another process can still pick the same number; the repository rejects the
second one as a duplicate and the caller asks for a new number.
"""

import re
import threading
from collections.abc import Callable
from datetime import UTC, date, datetime

ORDER_NUMBER_PREFIX = "ORD"
SEQUENCE_WIDTH = 4

_ORDER_NUMBER_PATTERN = re.compile(rf"^{ORDER_NUMBER_PREFIX}-(\d{{8}})-(\d{{{SEQUENCE_WIDTH},}})$")


def day_key(day: date) -> str:
    return day.strftime("%Y%m%d")


def format_order_number(day: date, sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{day_key(day)}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_order_number(order_number: str) -> tuple[str, int]:
    """Split an order number into its day key and sequence."""
    match = _ORDER_NUMBER_PATTERN.match(order_number or "")
    if match is None:
        raise ValueError(f"Malformed order number: {order_number!r}")
    return match.group(1), int(match.group(2))


class IssuedSequences:
    """Highest sequence this process has handed out per day.

    Covers orders whose numbers are issued but not yet committed, which a
    storage lookup cannot see. Claims are serialised, so two placements in one
    process never receive the same sequence. Days older than the one being
    claimed are forgotten.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: dict[str, int] = {}

    def claim(self, day: str, committed: int) -> int:
        with self._lock:
            sequence = max(committed, self._latest.get(day, 0)) + 1
            self._latest = {key: value for key, value in self._latest.items() if key > day}
            self._latest[day] = sequence
            return sequence

    def reset(self) -> None:
        with self._lock:
            self._latest = {}


# Shared by every generator in the process
issued_sequences = IssuedSequences()


class OrderNumberGenerator:
    """Issues the next order number for the current day.

    ``repository`` must provide ``latest_sequence_for(day_key) -> int``
    (0 when nothing was issued that day). ``clock`` returns an aware datetime
    and defaults to the current UTC time.
    """

    def __init__(
        self,
        repository,
        clock: Callable[[], datetime] | None = None,
        sequences: IssuedSequences | None = None,
    ) -> None:
        self.repository = repository
        self.clock = clock or (lambda: datetime.now(UTC))
        self.sequences = sequences or issued_sequences

    def next_number(self) -> str:
        today = self.clock().date()
        key = day_key(today)
        committed = self.repository.latest_sequence_for(key)
        return format_order_number(today, self.sequences.claim(key, committed))
