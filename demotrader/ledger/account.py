"""In-memory user accounts: balance, positions and trade history."""

import math
from typing import Any

import structlog

from ..core.errors import InvalidAmountError, PositionNotFoundError
from ..core.types import Position, TradeRecord, normalize_address, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_STARTING_BALANCE = 1000.0

DEFAULT_ACCOUNT_SETTINGS = {
    "auto_refresh": True,
    "notifications": True,
}


class Account:
    """Simulated trading account for one user.

    Positions are kept in creation order with at most one open position
    per token address; buying a held token merges into its position.
    """

    def __init__(
        self, user_id: str, starting_balance: float = DEFAULT_STARTING_BALANCE
    ) -> None:
        """Initialize account.

        Args:
            user_id: Opaque user identifier from the chat platform
            starting_balance: Initial simulated SOL balance
        """
        self.user_id = user_id
        self.balance = starting_balance
        self.positions: list[Position] = []
        self.trade_history: list[TradeRecord] = []
        self.settings: dict[str, bool] = dict(DEFAULT_ACCOUNT_SETTINGS)
        self.created_at = utcnow()

    def deposit(self, amount: float) -> None:
        """Credit simulated SOL to the balance.

        Raises:
            InvalidAmountError: If amount is not a positive number
        """
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidAmountError("Deposit amount must be greater than 0")

        self.balance += amount
        self.trade_history.append(
            TradeRecord(type="DEPOSIT", amount=amount, new_balance=self.balance)
        )
        logger.info(
            "Deposit recorded",
            user_id=self.user_id,
            amount=amount,
            new_balance=self.balance,
        )

    def withdraw(self, amount: float) -> bool:
        """Debit simulated SOL from the balance.

        Returns:
            False without touching the account if the balance is too low

        Raises:
            InvalidAmountError: If amount is not a positive number
        """
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidAmountError("Withdrawal amount must be greater than 0")

        if self.balance < amount:
            logger.info(
                "Withdrawal rejected, insufficient balance",
                user_id=self.user_id,
                amount=amount,
                balance=self.balance,
            )
            return False

        self.balance -= amount
        self.trade_history.append(
            TradeRecord(type="WITHDRAWAL", amount=amount, new_balance=self.balance)
        )
        logger.info(
            "Withdrawal recorded",
            user_id=self.user_id,
            amount=amount,
            new_balance=self.balance,
        )
        return True

    def get_position(self, address: str) -> Position | None:
        key = normalize_address(address)
        return next((p for p in self.positions if p.token_address == key), None)

    def add_position(
        self,
        address: str,
        name: str,
        amount: float,
        price: float,
        market_cap: float = 0.0,
        volume: float = 0.0,
        *,
        mint: str | None = None,
        source: str = "unknown",
        extras: dict[str, Any] | None = None,
    ) -> Position:
        """Open a position, or add to the open position for the same token.

        Adding to an existing position accumulates the invested amount and
        moves ``buy_price`` to the weighted average cost.

        Args:
            address: Token address
            name: Token display name
            amount: Token amount bought
            price: Fill price per token
            market_cap: Market cap at fill
            volume: 24h volume at fill
            mint: Token address as queried (defaults to ``address``)
            source: Data source the fill price came from
            extras: Source-specific fields to keep on the position

        Returns:
            The created or updated Position
        """
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidAmountError("Position amount must be greater than 0")

        existing = self.get_position(address)
        if existing is not None:
            total_invested = existing.invested + amount * price
            existing.amount += amount
            existing.buy_price = total_invested / existing.amount
            existing.current_price = price
            existing.market_cap = market_cap
            existing.volume_24h = volume
            existing.source = source
            existing.extras.update(extras or {})
            existing.last_updated = utcnow()
            existing.recompute()

            logger.info(
                "Added to position",
                user_id=self.user_id,
                token_address=existing.token_address,
                added_amount=amount,
                total_amount=existing.amount,
                avg_buy_price=existing.buy_price,
            )
            return existing

        position = Position(
            token_address=normalize_address(address),
            mint=(mint or address).strip(),
            token_name=name,
            amount=amount,
            buy_price=price,
            current_price=price,
            market_cap=market_cap,
            volume_24h=volume,
            source=source,
            extras=dict(extras or {}),
        )
        position.recompute()
        self.positions.append(position)

        logger.info(
            "Position opened",
            user_id=self.user_id,
            token_address=position.token_address,
            amount=amount,
            buy_price=price,
        )
        return position

    def remove_position(self, address: str, amount: float) -> float:
        """Reduce or close the position for a token.

        Returns:
            The token amount actually removed

        Raises:
            PositionNotFoundError: If no position is open for the token
        """
        position = self.get_position(address)
        if position is None:
            raise PositionNotFoundError("No position found for this token")

        if amount >= position.amount:
            self.positions.remove(position)
            logger.info(
                "Position closed",
                user_id=self.user_id,
                token_address=position.token_address,
                amount=position.amount,
            )
            return position.amount

        position.amount -= amount
        position.recompute()
        position.last_updated = utcnow()

        logger.info(
            "Position reduced",
            user_id=self.user_id,
            token_address=position.token_address,
            sold_amount=amount,
            remaining_amount=position.amount,
        )
        return amount

    def update_position_price(
        self, address: str, price: float, market_cap: float, volume: float
    ) -> None:
        """Revalue a position at a fresh price. No-op if not held."""
        position = self.get_position(address)
        if position is None:
            return

        position.current_price = price
        position.market_cap = market_cap
        position.volume_24h = volume
        position.recompute()
        position.last_updated = utcnow()

    def update_settings(self, **toggles: bool) -> dict[str, bool]:
        unknown = set(toggles) - set(DEFAULT_ACCOUNT_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        self.settings.update(toggles)
        return dict(self.settings)

    def portfolio_value(self) -> float:
        return self.balance + sum(p.current_value for p in self.positions)


class AccountStore:
    """Owns every account for the lifetime of the process."""

    def __init__(self, starting_balance: float = DEFAULT_STARTING_BALANCE) -> None:
        self.starting_balance = starting_balance
        self._accounts: dict[str, Account] = {}

    def get(self, user_id: str | int) -> Account | None:
        return self._accounts.get(str(user_id))

    def get_or_create(self, user_id: str | int) -> Account:
        key = str(user_id)
        account = self._accounts.get(key)
        if account is None:
            account = Account(key, starting_balance=self.starting_balance)
            self._accounts[key] = account
            logger.info(
                "Account created", user_id=key, starting_balance=self.starting_balance
            )
        return account

    def all(self) -> list[Account]:
        return list(self._accounts.values())

    def __len__(self) -> int:
        return len(self._accounts)
