"""Pump.fun data source for fresh launch-platform tokens."""

from typing import Any

import httpx
import structlog

from ..core.types import TokenQuote, normalize_address
from .base import HttpSource, as_dict, text_or, to_float, to_price

logger = structlog.get_logger(__name__)


def map_pumpfun_token_to_quote(
    data: dict[str, Any], mint: str, source: str = "pump.fun"
) -> TokenQuote:
    """Map a Pump.fun token payload to TokenQuote.

    Pump.fun reports no 24h change; the bonding-curve price is kept in
    ``extras`` alongside the ``is_pump_fun`` marker.
    """
    return TokenQuote(
        address=normalize_address(mint),
        mint=mint.strip(),
        name=text_or(data.get("name"), "Unknown"),
        symbol=text_or(data.get("symbol"), "UNKNOWN"),
        price=to_price(data.get("price")),
        market_cap=to_float(data.get("marketCap")),
        volume_24h=to_float(data.get("volume")),
        liquidity=to_float(data.get("liquidity")),
        price_change_24h=0.0,
        source=source,
        extras={
            "is_pump_fun": True,
            "bond_curve_price": to_float(data.get("bondingCurvePrice")),
        },
    )


class PumpFunSource(HttpSource):
    """Pump.fun token API source.

    The API frequently rejects non-browser clients; those rejections surface
    as ``SourceError`` and the resolver moves on.
    """

    name = "pump.fun"

    def __init__(
        self,
        base_url: str = "https://api.pump.fun",
        session: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        super().__init__(
            base_url, session=session, timeout=timeout, requests_per_minute=30
        )

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Origin"] = "https://pump.fun"
        headers["Referer"] = "https://pump.fun/"
        return headers

    async def fetch(self, address: str) -> TokenQuote | None:
        data = as_dict(await self._get_json(f"token/{address.strip()}"))
        if not data:
            logger.debug("Token not found", source=self.name, mint=address)
            return None
        return map_pumpfun_token_to_quote(data, address, source=self.name)
