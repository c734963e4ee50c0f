"""Trading engine: two-phase buys, sells, portfolio refresh and token analysis."""

import asyncio
import math

import structlog

from ..core.errors import (
    AnalysisFailedError,
    InsufficientFundsError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidQuoteError,
    NoPendingBuyError,
    PositionNotFoundError,
    TokenNotFoundError,
    TokenVerificationFailedError,
)
from ..core.types import (
    BuyResult,
    PendingBuy,
    PortfolioSnapshot,
    PumpFunStage,
    SellResult,
    TokenAnalysis,
    TokenQuote,
    TradeRecord,
    is_valid_solana_address,
    normalize_address,
)
from ..data.resolver import QuoteResolver
from ..ledger.account import Account, AccountStore

logger = structlog.get_logger(__name__)

EARLY_STAGE_MAX_MARKET_CAP = 10_000.0
GROWING_STAGE_MAX_MARKET_CAP = 50_000.0


def pump_fun_stage(market_cap: float) -> PumpFunStage:
    """Bucket a pump.fun token by market cap."""
    if market_cap < EARLY_STAGE_MAX_MARKET_CAP:
        return "early"
    if market_cap < GROWING_STAGE_MAX_MARKET_CAP:
        return "growing"
    return "established"


class TradingEngine:
    """Compose the resolver and the account ledger into trading operations.

    Every operation that touches an account runs under that account's
    lock, so concurrent requests for one user are applied one at a time.
    """

    def __init__(self, resolver: QuoteResolver, accounts: AccountStore) -> None:
        self.resolver = resolver
        self.accounts = accounts
        self._pending_buys: dict[str, PendingBuy] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def get_pending_buy(self, user_id: str | int) -> PendingBuy | None:
        return self._pending_buys.get(str(user_id))

    def cancel_buy(self, user_id: str | int) -> bool:
        """Drop the pending buy for a user, if any."""
        return self._pending_buys.pop(str(user_id), None) is not None

    async def start_buy(self, user_id: str | int, address: str) -> TokenQuote:
        """Resolve a token and hold the quote until the amount is confirmed.

        Raises:
            InvalidAddressError: If the address is not a Solana mint address
            TokenVerificationFailedError: If no source could resolve the token
        """
        uid = str(user_id)
        if not is_valid_solana_address(address):
            raise InvalidAddressError("Invalid token address format")

        async with self._lock(uid):
            try:
                quote = await self.resolver.resolve(address)
            except TokenNotFoundError as e:
                raise TokenVerificationFailedError(
                    f"Token verification failed: {e.message}"
                ) from e

            self._pending_buys[uid] = PendingBuy(user_id=uid, quote=quote)

        logger.info(
            "Buy started",
            user_id=uid,
            token_address=quote.address,
            source=quote.source,
            price=quote.price,
        )
        return quote

    async def complete_buy(self, user_id: str | int, sol_amount: float) -> BuyResult:
        """Commit the pending buy for ``sol_amount`` SOL.

        The account is left untouched on any rejection. The pending buy
        survives an insufficient balance so the user can retry with a
        smaller amount, and is discarded if its quote cannot be traded.

        Raises:
            InvalidAmountError: If sol_amount is not a positive number
            NoPendingBuyError: If start_buy was not called first
            InsufficientFundsError: If the balance is below sol_amount
            InvalidQuoteError: If the pending quote has a zero price
        """
        uid = str(user_id)
        if not math.isfinite(sol_amount) or sol_amount <= 0:
            raise InvalidAmountError("SOL amount must be greater than 0")

        async with self._lock(uid):
            pending = self._pending_buys.get(uid)
            if pending is None:
                raise NoPendingBuyError(
                    "No pending buy operation. Please start with /buy first."
                )

            account = self.accounts.get_or_create(uid)
            if account.balance < sol_amount:
                raise InsufficientFundsError(
                    f"Insufficient SOL balance. You have: {account.balance} SOL"
                )

            quote = pending.quote
            if quote.price <= 0:
                del self._pending_buys[uid]
                raise InvalidQuoteError("Token price is zero, cannot buy")

            token_amount = sol_amount / quote.price

            position = account.add_position(
                quote.address,
                quote.name,
                token_amount,
                quote.price,
                quote.market_cap,
                quote.volume_24h,
                mint=quote.mint,
                source=quote.source,
                extras=quote.extras,
            )
            account.balance -= sol_amount
            account.trade_history.append(
                TradeRecord(
                    type="BUY",
                    token_address=quote.address,
                    token_name=quote.name,
                    token_amount=token_amount,
                    sol_amount=sol_amount,
                    price=quote.price,
                    source=quote.source,
                )
            )
            del self._pending_buys[uid]

        logger.info(
            "Buy executed",
            user_id=uid,
            token_address=quote.address,
            token_amount=token_amount,
            sol_amount=sol_amount,
            price=quote.price,
            source=quote.source,
        )

        return BuyResult(
            position=position.model_copy(deep=True),
            token_amount=token_amount,
            sol_amount=sol_amount,
            price=quote.price,
            source=quote.source,
            is_pump_fun=quote.is_pump_fun,
            new_balance=account.balance,
        )

    async def sell_position(
        self, user_id: str | int, address: str, percent: float = 100.0
    ) -> SellResult:
        """Sell ``percent`` of a position at a freshly fetched price.

        If no price source answers, the sell goes through at the position's
        last known price and ``price_source`` is reported as ``"stale"``.

        Raises:
            InvalidAmountError: If percent is outside (0, 100]
            PositionNotFoundError: If the user holds no such position
        """
        uid = str(user_id)
        if not 0 < percent <= 100:
            raise InvalidAmountError("Sell percentage must be between 0 and 100")

        async with self._lock(uid):
            account = self.accounts.get(uid)
            position = account.get_position(address) if account else None
            if account is None or position is None:
                raise PositionNotFoundError("No position found for this token")

            price_source = await self._revalue(account, position.token_address)

            sell_amount = position.amount * (percent / 100)
            sol_received = sell_amount * position.current_price
            pnl = position.pnl * (percent / 100)
            price = position.current_price

            account.balance += sol_received
            sold_amount = account.remove_position(position.token_address, sell_amount)
            closed = account.get_position(position.token_address) is None

            account.trade_history.append(
                TradeRecord(
                    type="SELL",
                    token_address=position.token_address,
                    token_name=position.token_name,
                    token_amount=sold_amount,
                    sol_amount=sol_received,
                    price=price,
                    pnl=pnl,
                    source=price_source,
                )
            )

        logger.info(
            "Sell executed",
            user_id=uid,
            token_address=position.token_address,
            sold_amount=sold_amount,
            sol_received=sol_received,
            pnl=pnl,
            price_source=price_source,
        )

        return SellResult(
            token_address=position.token_address,
            sold_amount=sold_amount,
            sol_received=sol_received,
            price=price,
            pnl=pnl,
            percent=percent,
            price_source=price_source,
            new_balance=account.balance,
            position_closed=closed,
        )

    async def refresh_portfolio(self, user_id: str | int) -> PortfolioSnapshot:
        """Revalue every open position; positions whose price cannot be
        fetched keep their last known values."""
        uid = str(user_id)

        async with self._lock(uid):
            account = self.accounts.get_or_create(uid)
            refreshed = 0
            failed = 0

            for position in list(account.positions):
                if await self._revalue(account, position.token_address) == "stale":
                    failed += 1
                else:
                    refreshed += 1

            snapshot = PortfolioSnapshot(
                balance=account.balance,
                positions=[p.model_copy(deep=True) for p in account.positions],
                total_value=account.portfolio_value(),
                refreshed=refreshed,
                failed=failed,
            )

        logger.info(
            "Portfolio refreshed",
            user_id=uid,
            positions=len(snapshot.positions),
            refreshed=refreshed,
            failed=failed,
            total_value=snapshot.total_value,
        )
        return snapshot

    async def analyze_token(self, address: str) -> TokenAnalysis:
        """Resolve a token and classify its pump.fun market stage.

        Tokens that did not come from pump.fun get no stage.

        Raises:
            AnalysisFailedError: If no source could resolve the token
        """
        try:
            quote = await self.resolver.resolve(address)
        except TokenNotFoundError as e:
            raise AnalysisFailedError(f"Pump.fun analysis failed: {e.message}") from e

        is_pump_fun = quote.is_pump_fun or quote.source == "pump.fun"
        analysis = TokenAnalysis(
            quote=quote,
            is_pump_fun=is_pump_fun,
            stage=pump_fun_stage(quote.market_cap) if is_pump_fun else None,
            liquidity=quote.liquidity,
            bond_curve_price=quote.extras.get("bond_curve_price"),
        )

        logger.info(
            "Token analyzed",
            token_address=quote.address,
            source=quote.source,
            stage=analysis.stage,
            market_cap=quote.market_cap,
        )
        return analysis

    async def _revalue(self, account: Account, address: str) -> str:
        """Apply a fresh price sample to a position.

        Returns:
            The source of the sample, or ``"stale"`` if none was available
        """
        position = account.get_position(address)
        if position is None:
            raise PositionNotFoundError("No position found for this token")

        try:
            sample = await self.resolver.resolve_current(position.mint)
        except TokenNotFoundError as e:
            logger.warning(
                "Could not update position price",
                user_id=account.user_id,
                token_address=normalize_address(address),
                error=e.message,
            )
            return "stale"

        account.update_position_price(
            address, sample.price, sample.market_cap, sample.volume_24h
        )
        return sample.source
