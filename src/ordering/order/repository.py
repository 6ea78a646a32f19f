"""Repository for the Order aggregate.

Adds the lookups the ordering core needs on top of Protean's standard
``add`` / ``get``: creation with duplicate-number detection, the day's
highest issued sequence, and paginated listings.
"""

import math
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from ordering.domain import ordering
from ordering.errors import DuplicateOrderNumber, OrderNotFound
from ordering.order.order import Order

logger = structlog.get_logger(__name__)

SORTABLE_FIELDS = ("status", "created_at", "updated_at", "total_price")
DEFAULT_SORT = "created_at"
MAX_PER_PAGE = 100
_SCAN_BATCH = 100

# Serialises the duplicate check and the insert of new orders within a process
_creation_lock = threading.Lock()


@dataclass
class OrderPage:
    """One page of a sorted order listing."""

    items: list = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def normalize_paging(page=1, per_page=10, sort=None, direction="desc"):
    """Clamp paging input and fall back to ``created_at`` for unknown sort fields."""
    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or 10), 1), MAX_PER_PAGE)
    sort = sort if sort in SORTABLE_FIELDS else DEFAULT_SORT
    direction = "asc" if str(direction).lower() == "asc" else "desc"
    return page, per_page, sort, direction


@ordering.repository(part_of=Order)
class OrderRepository:
    def add_new(self, order: Order) -> Order:
        """Persist a freshly placed order.

        Raises DuplicateOrderNumber when another order already carries the
        same number, whether found up front or reported by the storage's
        unique constraint.
        """
        with _creation_lock:
            if self.find_by_number(order.order_number) is not None:
                logger.info("Order number already taken", order_number=order.order_number)
                raise DuplicateOrderNumber(order_number=order.order_number)

            try:
                self.add(order)
            except ValidationError as exc:
                if "order_number" in exc.messages:
                    raise DuplicateOrderNumber(order_number=order.order_number) from exc
                raise

        return order

    def find_by_id(self, order_id) -> Order:
        try:
            return self.get(str(order_id))
        except ObjectNotFoundError:
            raise OrderNotFound(f"Order not found: {order_id}", order_id=str(order_id)) from None

    def find_by_number(self, order_number: str) -> Order | None:
        return self._dao.query.filter(order_number=order_number).limit(1).all().first

    def latest_sequence_for(self, day: str) -> int:
        """Highest sequence issued on ``day`` (YYYYMMDD), or 0."""
        latest = self._dao.query.filter(order_date=day).order_by("-order_sequence").limit(1).all().first
        return latest.order_sequence if latest else 0

    def find_by_user(self, user_id, status=None, page=1, per_page=10, sort=None, direction="desc") -> OrderPage:
        return self.find_all(
            status=status,
            user_id=user_id,
            page=page,
            per_page=per_page,
            sort=sort,
            direction=direction,
        )

    def find_all(self, status=None, user_id=None, page=1, per_page=10, sort=None, direction="desc") -> OrderPage:
        page, per_page, sort, direction = normalize_paging(page, per_page, sort, direction)

        filters = {}
        if status:
            filters["status"] = status
        if user_id:
            filters["user_id"] = str(user_id)

        query = self._dao.query
        if filters:
            query = query.filter(**filters)

        order_by = sort if direction == "asc" else f"-{sort}"
        results = query.order_by(order_by).offset((page - 1) * per_page).limit(per_page).all()

        return OrderPage(items=list(results.items), total=results.total, page=page, per_page=per_page)

    def count(self, status=None) -> int:
        query = self._dao.query
        if status:
            query = query.filter(status=status)
        return query.limit(1).all().total

    def recent(self, limit=5) -> list[Order]:
        return list(self._dao.query.order_by("-created_at").limit(limit).all().items)

    def iter_all(self) -> Iterator[Order]:
        """Walk every order in creation order, one batch at a time."""
        offset = 0
        while True:
            results = self._dao.query.order_by("created_at").offset(offset).limit(_SCAN_BATCH).all()
            yield from results.items
            offset += _SCAN_BATCH
            if offset >= results.total:
                break

    def update_status(
        self,
        order_id,
        new_status,
        actor,
        note=None,
        carrier=None,
        tracking_number=None,
    ) -> Order:
        """Apply one status transition and save it with its history entry."""
        order = self.find_by_id(order_id)
        order.transition_to(
            new_status,
            actor=actor,
            note=note,
            carrier=carrier,
            tracking_number=tracking_number,
        )
        self.add(order)
        return order
