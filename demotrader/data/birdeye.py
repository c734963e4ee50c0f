"""Birdeye data source for Solana token info and prices."""

from typing import Any

import httpx
import structlog

from ..core.types import PriceSample, TokenQuote, normalize_address
from .base import HttpSource, as_dict, text_or, to_float, to_price

logger = structlog.get_logger(__name__)


def map_birdeye_token_to_quote(
    data: dict[str, Any], mint: str, source: str = "birdeye"
) -> TokenQuote:
    """Map a Birdeye token payload to TokenQuote.

    Args:
        data: The ``data`` object of a Birdeye token response
        mint: Token address as queried
        source: Data source identifier

    Returns:
        TokenQuote with normalized data
    """
    extras: dict[str, Any] = {}
    decimals = data.get("decimals")
    extras["decimals"] = decimals if isinstance(decimals, int) else 9

    return TokenQuote(
        address=normalize_address(mint),
        mint=mint.strip(),
        name=text_or(data.get("name"), "Unknown"),
        symbol=text_or(data.get("symbol"), "UNKNOWN"),
        price=to_price(data.get("price")),
        market_cap=to_float(data.get("market_cap")),
        volume_24h=to_float(data.get("volume24h")),
        liquidity=to_float(data.get("liquidity")),
        price_change_24h=to_float(data.get("priceChange24h")),
        source=source,
        extras=extras,
    )


class BirdeyeSource(HttpSource):
    """Birdeye public API source; also serves current price samples."""

    name = "birdeye"

    def __init__(
        self,
        base_url: str = "https://public-api.birdeye.so",
        api_key: str | None = None,
        session: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        super().__init__(
            base_url,
            api_key=api_key,
            session=session,
            timeout=timeout,
            requests_per_minute=60,
        )

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers

    async def _get_data(self, endpoint: str, mint: str) -> dict[str, Any] | None:
        body = await self._get_json(endpoint, {"address": mint.strip()})
        body = as_dict(body)
        if not body.get("success"):
            return None
        data = as_dict(body.get("data"))
        return data or None

    async def fetch(self, address: str) -> TokenQuote | None:
        """Look up token info by mint address.

        Returns:
            TokenQuote, or None when Birdeye has no data for the token
        """
        data = await self._get_data("public/token", address)
        if data is None:
            logger.debug("Token not found", source=self.name, mint=address)
            return None
        return map_birdeye_token_to_quote(data, address, source=self.name)

    async def fetch_price(self, address: str) -> PriceSample | None:
        data = await self._get_data("public/price", address)
        if data is None or data.get("value") is None:
            return None
        # The price endpoint carries no market cap or volume
        return PriceSample(price=to_price(data.get("value")), source=self.name)
