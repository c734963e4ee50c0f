"""DexScreener data source for token lookups by mint address."""

from typing import Any

import httpx
import structlog

from ..core.types import PriceSample, TokenQuote, normalize_address
from .base import HttpSource, as_dict, text_or, to_float, to_price

logger = structlog.get_logger(__name__)


def map_dexscreener_pair_to_quote(
    pair: dict[str, Any], mint: str, source: str = "dexscreener"
) -> TokenQuote:
    """Map a DexScreener pair to TokenQuote.

    Args:
        pair: One entry of the ``pairs`` array
        mint: Token address as queried
        source: Data source identifier

    Returns:
        TokenQuote with normalized data
    """
    base_token = as_dict(pair.get("baseToken"))

    extras: dict[str, Any] = {}
    if pair.get("dexId"):
        extras["dex"] = pair["dexId"]
    if pair.get("pairAddress"):
        extras["pair_address"] = pair["pairAddress"]

    return TokenQuote(
        address=normalize_address(mint),
        mint=mint.strip(),
        name=text_or(base_token.get("name"), "Unknown"),
        symbol=text_or(base_token.get("symbol"), "UNKNOWN"),
        price=to_price(pair.get("priceUsd")),
        market_cap=to_float(pair.get("marketCap")),
        volume_24h=to_float(as_dict(pair.get("volume")).get("h24")),
        liquidity=to_float(as_dict(pair.get("liquidity")).get("usd")),
        price_change_24h=to_float(as_dict(pair.get("priceChange")).get("h24")),
        source=source,
        extras=extras,
    )


class DexScreenerSource(HttpSource):
    """DexScreener API source; also serves current price samples."""

    name = "dexscreener"

    def __init__(
        self,
        base_url: str = "https://api.dexscreener.com/latest/dex",
        session: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        super().__init__(
            base_url, session=session, timeout=timeout, requests_per_minute=30
        )

    async def _first_pair(self, mint: str) -> dict[str, Any] | None:
        body = as_dict(await self._get_json(f"tokens/{mint.strip()}"))
        pairs = body.get("pairs")
        if not isinstance(pairs, list) or not pairs:
            return None
        # First pair is the most liquid one
        pair = as_dict(pairs[0])
        return pair or None

    async def fetch(self, address: str) -> TokenQuote | None:
        pair = await self._first_pair(address)
        if pair is None:
            logger.debug("Token not found", source=self.name, mint=address)
            return None
        return map_dexscreener_pair_to_quote(pair, address, source=self.name)

    async def fetch_price(self, address: str) -> PriceSample | None:
        pair = await self._first_pair(address)
        if pair is None:
            return None
        return PriceSample(
            price=to_price(pair.get("priceUsd")),
            market_cap=to_float(pair.get("marketCap")),
            volume_24h=to_float(as_dict(pair.get("volume")).get("h24")),
            source=self.name,
        )
