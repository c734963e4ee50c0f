"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)

PROFILES = ("dev", "paper")


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment
    env: Literal["dev", "paper"] = Field(
        default="paper", description="Environment: dev, paper"
    )

    # Market data endpoints
    birdeye_base: str = Field(
        default="https://public-api.birdeye.so", description="Birdeye API base URL"
    )
    birdeye_api_key: str | None = Field(default=None, description="Birdeye API key")
    dexscreener_base: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        description="DexScreener API base URL",
    )
    jupiter_base: str = Field(
        default="https://lite-api.jup.ag", description="Jupiter API base URL"
    )
    jupiter_use_price_v3: bool = Field(
        default=False, description="Overlay Jupiter search prices with Price API V3"
    )
    pumpfun_base: str = Field(
        default="https://api.pump.fun", description="Pump.fun API base URL"
    )

    # Resolution
    request_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Per-request and per-source timeout"
    )
    source_order: list[str] = Field(
        default_factory=lambda: ["birdeye", "dexscreener", "jupiter", "pumpfun"],
        description="Priority order for full token lookups",
    )
    price_source_order: list[str] = Field(
        default_factory=lambda: ["birdeye", "dexscreener"],
        description="Priority order for current price refreshes",
    )
    quote_cache_ttl_seconds: float = Field(
        default=60.0, gt=0, description="Quote cache time to live"
    )

    # Ledger
    starting_balance_sol: float = Field(
        default=1000.0, ge=0, description="Simulated SOL balance for new accounts"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Args:
        profile: Configuration profile name (dev, paper)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If profile is invalid
    """
    if profile not in PROFILES:
        raise ValueError(
            f"Invalid profile: {profile}. Must be one of: {', '.join(PROFILES)}"
        )

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError("Invalid YAML configuration: expected a mapping")

        yaml_config["env"] = profile

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            source_order=settings.source_order,
            cache_ttl=settings.quote_cache_ttl_seconds,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
