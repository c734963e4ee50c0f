"""Core interfaces for the trading simulator."""

from typing import Protocol, runtime_checkable

from .types import PriceSample, TokenQuote


@runtime_checkable
class QuoteSource(Protocol):
    """Market data provider that can resolve full token info."""

    name: str

    async def fetch(self, address: str) -> TokenQuote | None:
        """Fetch token info, or None when the provider has no data."""
        ...


@runtime_checkable
class PriceSource(Protocol):
    """Market data provider that can return a current price sample."""

    name: str

    async def fetch_price(self, address: str) -> PriceSample | None:
        """Fetch the current price, or None when the provider has no data."""
        ...
