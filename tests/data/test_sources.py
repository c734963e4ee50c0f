"""Tests for market data source adapters."""

import httpx
import pytest
import respx

from demotrader.core.errors import SourceError
from demotrader.core.interfaces import PriceSource, QuoteSource
from demotrader.data.base import TokenBucket, to_float, to_price
from demotrader.data.birdeye import BirdeyeSource, map_birdeye_token_to_quote
from demotrader.data.dexscreener import (
    DexScreenerSource,
    map_dexscreener_pair_to_quote,
)
from demotrader.data.jupiter import JupiterSource, map_jupiter_token_to_quote
from demotrader.data.pumpfun import PumpFunSource, map_pumpfun_token_to_quote

MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
KEY = MINT.lower()

BIRDEYE_TOKEN_URL = "https://public-api.birdeye.so/public/token"
BIRDEYE_PRICE_URL = "https://public-api.birdeye.so/public/price"
DEXSCREENER_URL = f"https://api.dexscreener.com/latest/dex/tokens/{MINT}"
JUPITER_SEARCH_URL = "https://lite-api.jup.ag/tokens/v2/search"
JUPITER_PRICE_URL = "https://lite-api.jup.ag/price/v3"
PUMPFUN_URL = f"https://api.pump.fun/token/{MINT}"


@pytest.fixture
def birdeye_token_data():
    """Sample Birdeye token payload."""
    return {
        "address": MINT,
        "name": "USD Coin",
        "symbol": "USDC",
        "price": 1.0001,
        "market_cap": 32000000000,
        "volume24h": "1500000.5",
        "liquidity": 500000.0,
        "priceChange24h": -0.02,
        "decimals": 6,
    }


@pytest.fixture
def dexscreener_pair():
    """Sample DexScreener pair."""
    return {
        "dexId": "raydium",
        "pairAddress": "HJPjoWUrhoZzkNfRpHuieeFk9WcZWjwy6PBjZ81ngndJ",
        "baseToken": {"address": MINT, "name": "USD Coin", "symbol": "USDC"},
        "priceUsd": "0.9998",
        "marketCap": 31000000000,
        "volume": {"h24": 2500000.0, "h6": 600000.0},
        "liquidity": {"usd": 750000.0},
        "priceChange": {"h24": 0.15},
    }


@pytest.fixture
def jupiter_item():
    """Sample Jupiter Token API V2 search item."""
    return {
        "id": MINT,
        "name": "USD Coin",
        "symbol": "USDC",
        "decimals": 6,
        "usdPrice": 0.9999,
        "mcap": 30000000000,
        "liquidity": 800000.0,
        "stats24h": {"priceChange": 0.01, "buyVolume": 1000.0, "sellVolume": 500.0},
    }


@pytest.fixture
def pumpfun_data():
    """Sample Pump.fun token payload."""
    return {
        "mint": MINT,
        "name": "Frog Coin",
        "symbol": "FROG",
        "price": "0.0000123",
        "marketCap": 12345.0,
        "volume": 999.0,
        "liquidity": 4000.0,
        "bondingCurvePrice": "0.0000120",
    }


class TestHelpers:
    """Test field coercion helpers."""

    def test_to_float(self):
        assert to_float("1.5") == 1.5
        assert to_float(2) == 2.0
        assert to_float(None) == 0.0
        assert to_float("abc") == 0.0
        assert to_float({"usd": 1}) == 0.0
        assert to_float(True) == 0.0
        assert to_float(float("nan")) == 0.0
        assert to_float(float("inf")) == 0.0
        assert to_float(None, default=-1.0) == -1.0

    def test_to_price_clamps_negative(self):
        assert to_price("-3") == 0.0
        assert to_price("3") == 3.0

    @pytest.mark.asyncio
    async def test_token_bucket(self):
        bucket = TokenBucket(capacity=2, refill_rate=0)

        assert await bucket.acquire() is True
        assert await bucket.acquire() is True
        assert await bucket.acquire() is False


class TestMappingFunctions:
    """Test provider payload mapping."""

    def test_map_birdeye(self, birdeye_token_data):
        quote = map_birdeye_token_to_quote(birdeye_token_data, f" {MINT} ")

        assert quote.address == KEY
        assert quote.mint == MINT
        assert quote.name == "USD Coin"
        assert quote.symbol == "USDC"
        assert quote.price == 1.0001
        assert quote.market_cap == 32000000000
        assert quote.volume_24h == 1500000.5
        assert quote.liquidity == 500000.0
        assert quote.price_change_24h == -0.02
        assert quote.source == "birdeye"
        assert quote.extras == {"decimals": 6}

    def test_map_birdeye_missing_fields(self):
        quote = map_birdeye_token_to_quote({"price": None}, MINT)

        assert quote.name == "Unknown"
        assert quote.symbol == "UNKNOWN"
        assert quote.price == 0.0
        assert quote.market_cap == 0.0
        assert quote.extras["decimals"] == 9

    def test_map_dexscreener(self, dexscreener_pair):
        quote = map_dexscreener_pair_to_quote(dexscreener_pair, MINT)

        assert quote.address == KEY
        assert quote.name == "USD Coin"
        assert quote.price == 0.9998
        assert quote.market_cap == 31000000000
        assert quote.volume_24h == 2500000.0
        assert quote.liquidity == 750000.0
        assert quote.price_change_24h == 0.15
        assert quote.source == "dexscreener"
        assert quote.extras["dex"] == "raydium"

    def test_map_dexscreener_malformed_nested_fields(self):
        pair = {"priceUsd": "1.0", "volume": "lots", "liquidity": None}
        quote = map_dexscreener_pair_to_quote(pair, MINT)

        assert quote.price == 1.0
        assert quote.volume_24h == 0.0
        assert quote.liquidity == 0.0
        assert quote.name == "Unknown"

    def test_map_jupiter(self, jupiter_item):
        quote = map_jupiter_token_to_quote(jupiter_item, MINT)

        assert quote.price == 0.9999
        assert quote.market_cap == 30000000000
        assert quote.volume_24h == 1500.0
        assert quote.price_change_24h == 0.01
        assert quote.source == "jupiter"
        assert quote.extras["decimals"] == 6

    def test_map_jupiter_price_overlay(self, jupiter_item):
        overlay = {MINT: {"usdPrice": 1.0002}}
        quote = map_jupiter_token_to_quote(jupiter_item, MINT, price_overlay=overlay)

        assert quote.price == 1.0002

    def test_map_pumpfun(self, pumpfun_data):
        quote = map_pumpfun_token_to_quote(pumpfun_data, MINT)

        assert quote.name == "Frog Coin"
        assert quote.price == pytest.approx(0.0000123)
        assert quote.price_change_24h == 0.0
        assert quote.source == "pump.fun"
        assert quote.is_pump_fun is True
        assert quote.extras["bond_curve_price"] == pytest.approx(0.0000120)


class TestProtocols:
    """Test that adapters implement the source capabilities."""

    def test_capabilities(self):
        session = httpx.AsyncClient()
        birdeye = BirdeyeSource(session=session)
        dexscreener = DexScreenerSource(session=session)
        jupiter = JupiterSource(session=session)
        pumpfun = PumpFunSource(session=session)

        for source in (birdeye, dexscreener, jupiter, pumpfun):
            assert isinstance(source, QuoteSource)

        assert isinstance(birdeye, PriceSource)
        assert isinstance(dexscreener, PriceSource)
        assert not isinstance(jupiter, PriceSource)
        assert not isinstance(pumpfun, PriceSource)


class TestBirdeyeSource:
    """Test Birdeye source."""

    def test_init(self):
        ds = BirdeyeSource(
            base_url="https://public-api.birdeye.so/", api_key="test_key"
        )

        assert ds.base_url == "https://public-api.birdeye.so"
        assert ds.api_key == "test_key"
        assert ds.timeout == 5.0
        assert ds.rate_limiter.capacity == 60

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch(self, birdeye_token_data):
        route = respx.get(BIRDEYE_TOKEN_URL, params={"address": MINT}).mock(
            return_value=httpx.Response(
                200, json={"success": True, "data": birdeye_token_data}
            )
        )
        ds = BirdeyeSource(api_key="secret", session=httpx.AsyncClient())

        quote = await ds.fetch(MINT)

        assert quote is not None
        assert quote.symbol == "USDC"
        assert quote.source == "birdeye"
        assert route.call_count == 1
        request = route.calls[0].request
        assert request.headers["X-API-KEY"] == "secret"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_unsuccessful_is_absent(self):
        respx.get(BIRDEYE_TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"success": False, "data": None})
        )
        ds = BirdeyeSource(session=httpx.AsyncClient())

        assert await ds.fetch(MINT) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_404_is_absent(self):
        respx.get(BIRDEYE_TOKEN_URL).mock(return_value=httpx.Response(404))
        ds = BirdeyeSource(session=httpx.AsyncClient())

        assert await ds.fetch(MINT) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_server_error_raises(self):
        respx.get(BIRDEYE_TOKEN_URL).mock(return_value=httpx.Response(503))
        ds = BirdeyeSource(session=httpx.AsyncClient())

        with pytest.raises(SourceError, match="HTTP 503"):
            await ds.fetch(MINT)

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_invalid_json_raises(self):
        respx.get(BIRDEYE_TOKEN_URL).mock(
            return_value=httpx.Response(200, content=b"<html>blocked</html>")
        )
        ds = BirdeyeSource(session=httpx.AsyncClient())

        with pytest.raises(SourceError, match="invalid JSON"):
            await ds.fetch(MINT)

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_price(self):
        respx.get(BIRDEYE_PRICE_URL, params={"address": MINT}).mock(
            return_value=httpx.Response(
                200, json={"success": True, "data": {"value": "1.25"}}
            )
        )
        ds = BirdeyeSource(session=httpx.AsyncClient())

        sample = await ds.fetch_price(MINT)

        assert sample is not None
        assert sample.price == 1.25
        assert sample.market_cap == 0.0
        assert sample.volume_24h == 0.0
        assert sample.source == "birdeye"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_price_missing_value(self):
        respx.get(BIRDEYE_PRICE_URL).mock(
            return_value=httpx.Response(200, json={"success": True, "data": {}})
        )
        ds = BirdeyeSource(session=httpx.AsyncClient())

        assert await ds.fetch_price(MINT) is None


class TestDexScreenerSource:
    """Test DexScreener source."""

    def test_init(self):
        ds = DexScreenerSource(base_url="https://api.dexscreener.com/latest/dex")

        assert ds.base_url == "https://api.dexscreener.com/latest/dex"
        assert ds.rate_limiter.capacity == 30

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_uses_first_pair(self, dexscreener_pair):
        second = dict(dexscreener_pair, priceUsd="5.0", dexId="orca")
        respx.get(DEXSCREENER_URL).mock(
            return_value=httpx.Response(
                200, json={"pairs": [dexscreener_pair, second]}
            )
        )
        ds = DexScreenerSource(session=httpx.AsyncClient())

        quote = await ds.fetch(MINT)

        assert quote is not None
        assert quote.price == 0.9998
        assert quote.extras["dex"] == "raydium"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_no_pairs(self):
        respx.get(DEXSCREENER_URL).mock(
            return_value=httpx.Response(200, json={"schemaVersion": "1.0.0", "pairs": None})
        )
        ds = DexScreenerSource(session=httpx.AsyncClient())

        assert await ds.fetch(MINT) is None
        assert await ds.fetch_price(MINT) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_price(self, dexscreener_pair):
        respx.get(DEXSCREENER_URL).mock(
            return_value=httpx.Response(200, json={"pairs": [dexscreener_pair]})
        )
        ds = DexScreenerSource(session=httpx.AsyncClient())

        sample = await ds.fetch_price(MINT)

        assert sample is not None
        assert sample.price == 0.9998
        assert sample.market_cap == 31000000000
        assert sample.volume_24h == 2500000.0
        assert sample.source == "dexscreener"

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_error_is_retried(self, dexscreener_pair):
        route = respx.get(DEXSCREENER_URL).mock(
            side_effect=[
                httpx.ConnectError("connection refused"),
                httpx.Response(200, json={"pairs": [dexscreener_pair]}),
            ]
        )
        ds = DexScreenerSource(session=httpx.AsyncClient())

        quote = await ds.fetch(MINT)

        assert quote is not None
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_is_not_retried(self):
        route = respx.get(DEXSCREENER_URL).mock(
            side_effect=httpx.ReadTimeout("timed out")
        )
        ds = DexScreenerSource(session=httpx.AsyncClient())

        with pytest.raises(SourceError, match="request failed"):
            await ds.fetch(MINT)
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_local_rate_limit_exhausted(self):
        ds = DexScreenerSource(session=httpx.AsyncClient(), timeout=0.2)
        ds.rate_limiter.tokens = 0
        ds.rate_limiter.refill_rate = 0

        with pytest.raises(SourceError, match="rate limit"):
            await ds.fetch(MINT)


class TestJupiterSource:
    """Test Jupiter source."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_exact_match(self, jupiter_item):
        other = dict(jupiter_item, id="So11111111111111111111111111111111111111112")
        respx.get(JUPITER_SEARCH_URL, params={"query": MINT}).mock(
            return_value=httpx.Response(200, json=[other, jupiter_item])
        )
        ds = JupiterSource(session=httpx.AsyncClient())

        quote = await ds.fetch(MINT)

        assert quote is not None
        assert quote.address == KEY
        assert quote.price == 0.9999

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_no_exact_match(self, jupiter_item):
        other = dict(jupiter_item, id="So11111111111111111111111111111111111111112")
        respx.get(JUPITER_SEARCH_URL).mock(
            return_value=httpx.Response(200, json=[other])
        )
        ds = JupiterSource(session=httpx.AsyncClient())

        assert await ds.fetch(MINT) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_with_price_v3(self, jupiter_item):
        respx.get(JUPITER_SEARCH_URL).mock(
            return_value=httpx.Response(200, json=[jupiter_item])
        )
        price_route = respx.get(JUPITER_PRICE_URL, params={"ids": MINT}).mock(
            return_value=httpx.Response(200, json={MINT: {"usdPrice": 1.01}})
        )
        ds = JupiterSource(use_price_v3=True, session=httpx.AsyncClient())

        quote = await ds.fetch(MINT)

        assert price_route.call_count == 1
        assert quote is not None
        assert quote.price == 1.01

    @pytest.mark.asyncio
    @respx.mock
    async def test_price_v3_failure_keeps_search_price(self, jupiter_item):
        respx.get(JUPITER_SEARCH_URL).mock(
            return_value=httpx.Response(200, json=[jupiter_item])
        )
        respx.get(JUPITER_PRICE_URL).mock(return_value=httpx.Response(500))
        ds = JupiterSource(use_price_v3=True, session=httpx.AsyncClient())

        quote = await ds.fetch(MINT)

        assert quote is not None
        assert quote.price == 0.9999


class TestPumpFunSource:
    """Test Pump.fun source."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch(self, pumpfun_data):
        route = respx.get(PUMPFUN_URL).mock(
            return_value=httpx.Response(200, json=pumpfun_data)
        )
        ds = PumpFunSource(session=httpx.AsyncClient())

        quote = await ds.fetch(MINT)

        assert quote is not None
        assert quote.is_pump_fun is True
        assert route.calls[0].request.headers["Origin"] == "https://pump.fun"

    @pytest.mark.asyncio
    @respx.mock
    async def test_blocked_raises(self):
        respx.get(PUMPFUN_URL).mock(return_value=httpx.Response(403))
        ds = PumpFunSource(session=httpx.AsyncClient())

        with pytest.raises(SourceError, match="HTTP 403"):
            await ds.fetch(MINT)

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_body_is_absent(self):
        respx.get(PUMPFUN_URL).mock(return_value=httpx.Response(200, json={}))
        ds = PumpFunSource(session=httpx.AsyncClient())

        assert await ds.fetch(MINT) is None
