"""Multi-source token resolution with quote caching."""

import asyncio
from collections.abc import Sequence

import structlog

from ..core.errors import TokenNotFoundError
from ..core.interfaces import PriceSource, QuoteSource
from ..core.types import PriceSample, TokenQuote, normalize_address
from .cache import QuoteCache

logger = structlog.get_logger(__name__)

NOT_FOUND_MESSAGE = (
    "Token not found on any supported platform. "
    "The token may be too new or have no liquidity."
)


class QuoteResolver:
    """Resolve token quotes by walking sources in a fixed priority order.

    The first source to return a quote with a positive price wins and its
    quote is cached. Source failures of any kind, including exceeding the
    per-source deadline, are treated as "no data" and the walk continues.
    """

    def __init__(
        self,
        sources: Sequence[QuoteSource],
        price_sources: Sequence[PriceSource] = (),
        cache: QuoteCache | None = None,
        source_timeout: float = 5.0,
    ) -> None:
        """Initialize resolver.

        Args:
            sources: Full-info sources, most reliable first
            price_sources: Current-price sources, most reliable first
            cache: Quote cache (a fresh 60s cache if omitted)
            source_timeout: Deadline in seconds for each source call
        """
        self.sources = list(sources)
        self.price_sources = list(price_sources)
        self.cache = cache if cache is not None else QuoteCache()
        self.source_timeout = source_timeout

    async def resolve(self, address: str) -> TokenQuote:
        """Resolve full token info for an address.

        Raises:
            TokenNotFoundError: If no source had data for the token
        """
        mint = address.strip()
        key = normalize_address(mint)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Quote cache hit", token_address=key, source=cached.source)
            return cached

        logger.info("Resolving token", token_address=key[:8])

        for source in self.sources:
            try:
                quote = await asyncio.wait_for(
                    source.fetch(mint), timeout=self.source_timeout
                )
            except TimeoutError:
                logger.warning(
                    "Source timed out", source=source.name, timeout=self.source_timeout
                )
                continue
            except Exception as e:
                logger.warning("Source failed", source=source.name, error=str(e))
                continue

            if quote is None:
                continue
            if quote.price <= 0:
                logger.info("Source returned no usable price", source=source.name)
                continue

            self.cache.put(key, quote)
            logger.info(
                "Token resolved",
                token_address=key,
                source=quote.source,
                symbol=quote.symbol,
                price=quote.price,
            )
            return quote

        logger.info("Token not found on any source", token_address=key)
        raise TokenNotFoundError(NOT_FOUND_MESSAGE)

    async def resolve_current(self, address: str) -> PriceSample:
        """Fetch a current price sample, bypassing the quote cache.

        Raises:
            TokenNotFoundError: If no price source answered
        """
        mint = address.strip()

        for source in self.price_sources:
            try:
                sample = await asyncio.wait_for(
                    source.fetch_price(mint), timeout=self.source_timeout
                )
            except TimeoutError:
                logger.warning(
                    "Price source timed out",
                    source=source.name,
                    timeout=self.source_timeout,
                )
                continue
            except Exception as e:
                logger.warning("Price source failed", source=source.name, error=str(e))
                continue

            if sample is not None and sample.price > 0:
                return sample

        raise TokenNotFoundError("Could not fetch current price")

    def clear_cache(self) -> None:
        self.cache.clear()
