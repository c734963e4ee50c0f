"""Core data types for the demo trading simulator."""

import re
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def normalize_address(address: str) -> str:
    """Normalize a token address for use as a lookup key."""
    return address.strip().lower()


def is_valid_solana_address(address: str) -> bool:
    """Check that an address looks like a base-58 Solana mint."""
    return bool(SOLANA_ADDRESS_RE.match(address.strip()))


def utcnow() -> datetime:
    return datetime.now(UTC)


class TokenQuote(BaseModel):
    """Canonical token market data resolved from one source."""

    address: str = Field(description="Normalized (lowercase) token address")
    mint: str = Field(description="Token address as queried from the provider")
    name: str = Field(default="Unknown", description="Token display name")
    symbol: str = Field(default="UNKNOWN", description="Token symbol")
    price: float = Field(ge=0, description="Unit price in quote currency")
    market_cap: float = Field(default=0.0, description="Market capitalization")
    volume_24h: float = Field(default=0.0, description="24h volume")
    liquidity: float = Field(default=0.0, description="Liquidity")
    price_change_24h: float = Field(
        default=0.0, description="24h price change percentage"
    )
    source: str = Field(description="Data source identifier")
    extras: dict[str, Any] = Field(
        default_factory=dict, description="Source-specific fields"
    )
    ts: datetime = Field(default_factory=utcnow, description="Fetch timestamp")

    @property
    def is_pump_fun(self) -> bool:
        return bool(self.extras.get("is_pump_fun", False))


class PriceSample(BaseModel):
    """Current price data used to refresh an open position."""

    price: float = Field(ge=0, description="Unit price in quote currency")
    market_cap: float = Field(default=0.0, description="Market capitalization")
    volume_24h: float = Field(default=0.0, description="24h volume")
    source: str = Field(description="Data source identifier")
    ts: datetime = Field(default_factory=utcnow, description="Sample timestamp")


class Position(BaseModel):
    """Open holding of one token with cost basis and live valuation."""

    token_address: str = Field(description="Normalized token address")
    mint: str = Field(description="Token address as queried from the provider")
    token_name: str = Field(default="Unknown")
    amount: float = Field(ge=0, description="Held token amount")
    buy_price: float = Field(ge=0, description="Average buy price")
    current_price: float = Field(ge=0)
    market_cap: float = 0.0
    volume_24h: float = 0.0
    invested: float = 0.0
    current_value: float = 0.0
    pnl: float = 0.0
    pnl_percent: float = 0.0
    source: str = "unknown"
    extras: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)

    def recompute(self) -> None:
        """Recompute the derived valuation fields from amount and prices."""
        self.invested = self.amount * self.buy_price
        self.current_value = self.amount * self.current_price
        self.pnl = self.current_value - self.invested
        # Zero cost basis has no meaningful percentage
        if self.invested == 0:
            self.pnl_percent = 0.0
        else:
            self.pnl_percent = self.pnl / self.invested * 100


TradeType = Literal["DEPOSIT", "WITHDRAWAL", "BUY", "SELL"]


class TradeRecord(BaseModel):
    """Entry in an account's append-only trade history."""

    type: TradeType
    ts: datetime = Field(default_factory=utcnow)

    # Deposits and withdrawals
    amount: float | None = None
    new_balance: float | None = None

    # Buys and sells
    token_address: str | None = None
    token_name: str | None = None
    token_amount: float | None = None
    sol_amount: float | None = None
    price: float | None = None
    source: str | None = None
    pnl: float | None = None


class PendingBuy(BaseModel):
    """Resolved quote waiting for the user to confirm a SOL amount."""

    user_id: str
    quote: TokenQuote
    created_at: datetime = Field(default_factory=utcnow)


class BuyResult(BaseModel):
    """Outcome of a committed buy."""

    position: Position
    token_amount: float
    sol_amount: float
    price: float
    source: str
    is_pump_fun: bool = False
    new_balance: float


class SellResult(BaseModel):
    """Outcome of a sell."""

    token_address: str
    sold_amount: float
    sol_received: float
    price: float
    pnl: float
    percent: float
    price_source: str
    new_balance: float
    position_closed: bool


class PortfolioSnapshot(BaseModel):
    """Balance plus valued positions after a refresh."""

    balance: float
    positions: list[Position] = Field(default_factory=list)
    total_value: float
    refreshed: int = 0
    failed: int = 0


PumpFunStage = Literal["early", "growing", "established"]


class TokenAnalysis(BaseModel):
    """Market-stage read of a resolved token."""

    quote: TokenQuote
    is_pump_fun: bool = Field(description="Quote came from the pump.fun curve")
    stage: PumpFunStage | None = Field(
        default=None, description="Market cap tier, pump.fun tokens only"
    )
    liquidity: float = Field(default=0.0, description="Liquidity at resolve time")
    bond_curve_price: float | None = Field(
        default=None, description="Bonding-curve price reported by pump.fun"
    )
