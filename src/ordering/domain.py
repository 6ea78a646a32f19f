"""Ordering bounded context — order lifecycle and inventory consistency.

Turns carts (or explicit item lists) into durable orders, reserves stock
through the inventory ledger, and governs every status transition of an
order afterwards.
"""

from protean.domain import Domain

from ordering.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
ordering = Domain(name="ordering")
