"""Time-bounded memoization of resolved token quotes."""

import time
from collections.abc import Callable

import structlog

from ..core.types import TokenQuote, normalize_address

logger = structlog.get_logger(__name__)


class QuoteCache:
    """In-memory quote cache with lazy TTL expiry.

    Expired entries are reported as absent but left in place until the
    next ``put`` for the same address overwrites them.
    """

    def __init__(
        self, ttl: float = 60.0, now_fn: Callable[[], float] | None = None
    ) -> None:
        """Initialize quote cache.

        Args:
            ttl: Time to live in seconds
            now_fn: Optional function to get current timestamp (for testing)
        """
        self.ttl = ttl
        self._now_fn = now_fn or time.time
        self._entries: dict[str, tuple[TokenQuote, float]] = {}

    def get(self, address: str) -> TokenQuote | None:
        """Get a quote if one was stored less than ``ttl`` seconds ago."""
        entry = self._entries.get(normalize_address(address))
        if entry is None:
            return None

        quote, timestamp = entry
        if self._now_fn() - timestamp >= self.ttl:
            return None
        return quote

    def put(self, address: str, quote: TokenQuote) -> None:
        """Store a quote, replacing any previous entry for the address."""
        self._entries[normalize_address(address)] = (quote, self._now_fn())

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("Quote cache cleared")

    def __len__(self) -> int:
        return len(self._entries)
