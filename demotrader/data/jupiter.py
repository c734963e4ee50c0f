"""Jupiter data source for token info (Token API V2 + optional Price V3)."""

import math
from typing import Any

import httpx
import structlog

from ..core.errors import SourceError
from ..core.types import TokenQuote, normalize_address
from .base import HttpSource, as_dict, text_or, to_float, to_price

logger = structlog.get_logger(__name__)


def map_jupiter_token_to_quote(
    item: dict[str, Any],
    mint: str,
    source: str = "jupiter",
    price_overlay: dict[str, Any] | None = None,
) -> TokenQuote:
    """Map a Token API V2 item to TokenQuote.

    Args:
        item: One entry of a Token API V2 search response
        mint: Token address as queried
        source: Data source identifier
        price_overlay: Optional Price API V3 response keyed by mint

    Returns:
        TokenQuote with normalized data
    """
    price = to_price(item.get("usdPrice"))
    if price_overlay:
        overlay = as_dict(price_overlay.get(item.get("id")))
        oup = overlay.get("usdPrice")
        if isinstance(oup, (int, float)) and not math.isnan(float(oup)):
            price = to_price(oup)

    stats = as_dict(item.get("stats24h"))
    volume = to_float(stats.get("buyVolume")) + to_float(stats.get("sellVolume"))

    decimals = item.get("decimals")

    return TokenQuote(
        address=normalize_address(mint),
        mint=mint.strip(),
        name=text_or(item.get("name"), "Unknown"),
        symbol=text_or(item.get("symbol"), "UNKNOWN"),
        price=price,
        market_cap=to_float(item.get("mcap")),
        volume_24h=volume,
        liquidity=to_float(item.get("liquidity")),
        price_change_24h=to_float(stats.get("priceChange")),
        source=source,
        extras={"decimals": decimals if isinstance(decimals, int) else 9},
    )


class JupiterSource(HttpSource):
    """
    Resolve tokens through Jupiter Token API V2 search, optionally
    overlaying the price with Price API V3.

    Docs:
      - Token API V2 search (lite): https://lite-api.jup.ag/tokens/v2/search?query=...
      - Price API V3 (lite): https://lite-api.jup.ag/price/v3?ids=...
    """

    name = "jupiter"

    def __init__(
        self,
        base_url: str = "https://lite-api.jup.ag",
        use_price_v3: bool = False,
        session: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        super().__init__(
            base_url, session=session, timeout=timeout, requests_per_minute=60
        )
        self.use_price_v3 = use_price_v3

    async def _price_v3(self, mint: str) -> dict[str, Any]:
        data = await self._get_json("price/v3", {"ids": mint})
        # Response is a dict keyed by mint -> {usdPrice, blockId, decimals, priceChange24h}
        return as_dict(data)

    async def fetch(self, address: str) -> TokenQuote | None:
        """Find the exact mint via search, then map fields.

        Search results are fuzzy, so only an item whose id matches the
        address (case-insensitive) counts as a hit.
        """
        mint = address.strip()
        data = await self._get_json("tokens/v2/search", {"query": mint})
        if not isinstance(data, list):
            return None

        wanted = normalize_address(mint)
        item = next(
            (
                x
                for x in data
                if isinstance(x, dict)
                and isinstance(x.get("id"), str)
                and normalize_address(x["id"]) == wanted
            ),
            None,
        )
        if item is None:
            logger.debug("Token not found", source=self.name, mint=mint)
            return None

        overlay: dict[str, Any] = {}
        if self.use_price_v3:
            try:
                overlay = await self._price_v3(item["id"])
            except SourceError as e:
                logger.warning("Price V3 overlay failed", mint=mint, error=str(e))

        return map_jupiter_token_to_quote(
            item, mint, source=self.name, price_overlay=overlay
        )
