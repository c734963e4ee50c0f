"""Shared HTTP plumbing for market data source adapters."""

import asyncio
import math
import time
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.errors import SourceError

logger = structlog.get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce a provider field to float, falling back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def to_price(value: Any) -> float:
    """Coerce a provider price field; negative prices read as unknown."""
    return max(0.0, to_float(value))


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def text_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


class TokenBucket:
    """Simple in-memory token bucket rate limiter."""

    def __init__(self, capacity: int, refill_rate: float) -> None:
        """Initialize token bucket.

        Args:
            capacity: Maximum tokens in bucket
            refill_rate: Tokens per second refill rate
        """
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = capacity
        self.last_refill = time.monotonic()

    async def acquire(self) -> bool:
        """Try to acquire a token, return True if successful."""
        now = time.monotonic()
        time_passed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + time_passed * self.refill_rate)
        self.last_refill = now

        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False


class HttpSource:
    """Base class for JSON-over-HTTPS market data adapters.

    Subclasses set ``name`` and implement the mapping from the provider's
    response shape. ``_get_json`` returns ``None`` on HTTP 404 and raises
    ``SourceError`` on any other transport, status or decoding failure.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        session: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
        requests_per_minute: int = 60,
        max_attempts: int = 2,
    ) -> None:
        """Initialize HTTP source.

        Args:
            base_url: Provider API base URL
            api_key: Optional API key
            session: Optional httpx client session
            timeout: Per-request timeout in seconds
            requests_per_minute: Local rate limit
            max_attempts: Attempts for requests that fail to connect
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max_attempts

        self._session = session or httpx.AsyncClient(timeout=timeout)
        self._owns_session = session is None

        self.rate_limiter = TokenBucket(
            capacity=requests_per_minute, refill_rate=requests_per_minute / 60
        )

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": USER_AGENT, "Accept": "application/json"}

    def _retrying(self) -> AsyncRetrying:
        # Only connection failures are retried; timeouts count against the
        # per-source deadline and fall through to the next provider.
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.2, min=0.2, max=1),
            retry=retry_if_exception_type(httpx.ConnectError),
            reraise=True,
        )

    async def _wait_for_rate_limit(self) -> None:
        deadline = time.monotonic() + self.timeout
        while not await self.rate_limiter.acquire():
            if time.monotonic() >= deadline:
                raise SourceError(self.name, "local rate limit exhausted")
            await asyncio.sleep(0.1)

    async def _get_json(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Any | None:
        """Make a GET request with rate limiting and connection retries.

        Args:
            path: Endpoint path relative to the base URL
            params: Query parameters

        Returns:
            Decoded JSON body, or None if the provider answered 404

        Raises:
            SourceError: On transport, HTTP status or JSON decoding errors
        """
        await self._wait_for_rate_limit()

        url = f"{self.base_url}/{path.lstrip('/')}"

        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._session.get(
                        url, params=params, headers=self._headers(), timeout=self.timeout
                    )
        except httpx.HTTPError as e:
            logger.warning(
                "Network error in source request",
                source=self.name,
                path=path,
                error=str(e) or type(e).__name__,
            )
            raise SourceError(self.name, f"request failed: {e!r}") from e

        if response.status_code == 404:
            return None

        if not response.is_success:
            logger.warning(
                "HTTP error in source request",
                source=self.name,
                path=path,
                status_code=response.status_code,
            )
            raise SourceError(self.name, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise SourceError(self.name, "invalid JSON response") from e
