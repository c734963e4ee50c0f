"""Component assembly and command line entry point."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from ..config.settings import PROFILES, AppSettings, load_settings
from ..core.errors import TradingError
from ..core.interfaces import PriceSource
from ..data.base import HttpSource
from ..data.birdeye import BirdeyeSource
from ..data.cache import QuoteCache
from ..data.dexscreener import DexScreenerSource
from ..data.jupiter import JupiterSource
from ..data.pumpfun import PumpFunSource
from ..data.resolver import QuoteResolver
from ..engine.trading import TradingEngine
from ..ledger.account import AccountStore

logger = structlog.get_logger(__name__)

SourceFactory = Callable[[AppSettings, httpx.AsyncClient], HttpSource]

SOURCE_FACTORIES: dict[str, SourceFactory] = {
    "birdeye": lambda s, session: BirdeyeSource(
        base_url=s.birdeye_base,
        api_key=s.birdeye_api_key,
        session=session,
        timeout=s.request_timeout_seconds,
    ),
    "dexscreener": lambda s, session: DexScreenerSource(
        base_url=s.dexscreener_base,
        session=session,
        timeout=s.request_timeout_seconds,
    ),
    "jupiter": lambda s, session: JupiterSource(
        base_url=s.jupiter_base,
        use_price_v3=s.jupiter_use_price_v3,
        session=session,
        timeout=s.request_timeout_seconds,
    ),
    "pumpfun": lambda s, session: PumpFunSource(
        base_url=s.pumpfun_base,
        session=session,
        timeout=s.request_timeout_seconds,
    ),
}


def build_resolver(settings: AppSettings, session: httpx.AsyncClient) -> QuoteResolver:
    """Assemble the resolver from settings.

    One adapter instance is created per provider and shared between the
    full-info and price chains.

    Raises:
        ValueError: If an unknown source name is configured
    """
    instances: dict[str, Any] = {}

    def source(name: str) -> Any:
        if name not in SOURCE_FACTORIES:
            raise ValueError(
                f"Unknown source: {name}. Must be one of: {', '.join(SOURCE_FACTORIES)}"
            )
        if name not in instances:
            instances[name] = SOURCE_FACTORIES[name](settings, session)
        return instances[name]

    sources = [source(name) for name in settings.source_order]
    price_sources = [source(name) for name in settings.price_source_order]

    for name in settings.price_source_order:
        if not isinstance(instances[name], PriceSource):
            raise ValueError(f"Source {name} cannot serve current prices")

    logger.info(
        "Resolver assembled",
        sources=settings.source_order,
        price_sources=settings.price_source_order,
    )

    return QuoteResolver(
        sources,
        price_sources,
        cache=QuoteCache(ttl=settings.quote_cache_ttl_seconds),
        source_timeout=settings.request_timeout_seconds,
    )


def build_engine(settings: AppSettings, session: httpx.AsyncClient) -> TradingEngine:
    """Assemble a trading engine with a fresh account store."""
    return TradingEngine(
        build_resolver(settings, session),
        AccountStore(starting_balance=settings.starting_balance_sol),
    )


def configure_logging(level: str = "INFO") -> None:
    """Send structured logs to stderr so stdout carries only command output."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Demo token trading simulator")
    parser.add_argument(
        "--config", default="configs/paper.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--profile", default="paper", choices=PROFILES, help="Configuration profile"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    quote = commands.add_parser("quote", help="Resolve full token info")
    quote.add_argument("address", help="Token contract address")

    price = commands.add_parser("price", help="Fetch a current price sample")
    price.add_argument("address", help="Token contract address")

    analyze = commands.add_parser("analyze", help="Classify a token's pump.fun stage")
    analyze.add_argument("address", help="Token contract address")

    return parser


async def run(args: argparse.Namespace) -> str:
    """Execute one CLI command and return its JSON output."""
    settings = load_settings(args.profile, args.config)

    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as session:
        engine = build_engine(settings, session)
        if args.command == "quote":
            result = await engine.resolver.resolve(args.address)
        elif args.command == "analyze":
            result = await engine.analyze_token(args.address)
        else:
            result = await engine.resolver.resolve_current(args.address)

    return result.model_dump_json(indent=2)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the command line tool."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        output = await run(args)
    except TradingError as e:
        logger.error("Request failed", command=args.command, error=e.message)
        print(e.message, file=sys.stderr)
        return 1
    except (FileNotFoundError, ValueError) as e:
        logger.error("Fatal error", error=str(e))
        return 2

    print(output)
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
