# app/logic.py

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Tuple

from app.errors import PersistenceError, StoreUnavailable, ValidationError
from app.schemas import Position, Side, Trade, TradeRequest
from app.store import PositionStore, TradeLedger
from logger import logger


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_trade_id() -> str:
    return uuid.uuid4().hex


def apply_buy(position: Optional[Position], symbol: str, quantity: int, price: float) -> Position:
    """
    Folds a BUY fill into a position using volume-weighted average cost.

    Args:
        position (Optional[Position]): Current position, None if absent.
        symbol (str): Symbol being bought.
        quantity (int): Shares bought.
        price (float): Fill price.

    Returns:
        Position: The updated position.

    Raises:
        ValidationError: The new average cost is not a finite number.
    """
    old_quantity = position.quantity if position else 0
    old_cost = position.avg_cost if position and old_quantity > 0 else 0.0

    new_quantity = old_quantity + quantity
    new_avg_cost = (old_quantity * old_cost + quantity * price) / new_quantity
    if not math.isfinite(new_avg_cost):
        raise ValidationError(f"Position value for {symbol} would overflow")
    return Position(symbol=symbol, quantity=new_quantity, avg_cost=new_avg_cost)


def sort_trades(trades: List[Trade]) -> List[Trade]:
    """
    Orders trades by date, newest first; same-date trades newest-recorded first.

    `trades` must be in insertion order. Python's sort is stable, so reversing
    first keeps later insertions ahead of earlier ones on equal dates.
    """
    return sorted(reversed(trades), key=lambda t: t.date, reverse=True)


class PortfolioService:
    """
    Records trades and keeps positions in step with the ledger.

    A trade is appended to the ledger before its position update is attempted.
    If the position update fails the trade stays recorded and a
    PersistenceError with stage "position" is raised.
    """

    def __init__(
        self,
        ledger: TradeLedger,
        positions: PositionStore,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_trade_id,
    ):
        self.ledger = ledger
        self.positions = positions
        self.clock = clock
        self.id_factory = id_factory

    def list_portfolio(self) -> Tuple[List[Position], float]:
        positions = [p for p in self.positions.list_positions() if p.quantity > 0]
        total_value = sum(p.market_value for p in positions)
        return positions, total_value

    def list_trades(self) -> List[Trade]:
        return sort_trades(self.ledger.list_trades())

    def record_trade(self, symbol: Any, side: Any, quantity: Any, price: Any) -> Trade:
        """
        Validates, records and applies a trade.

        Args:
            symbol: Ticker, any case.
            side: "BUY" or "SELL", any case.
            quantity: Positive integer, or its string form.
            price: Positive finite number, or its string form.

        Returns:
            Trade: The recorded trade.

        Raises:
            ValidationError: Input rejected; nothing was written.
            PersistenceError: The ledger append failed (stage "ledger"), or the
                trade was recorded but the position update failed
                (stage "position").
        """
        request = TradeRequest.parse(symbol, side, quantity, price)

        trade = Trade(
            id=self.id_factory(),
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            price=request.price,
            date=self.clock().astimezone(timezone.utc).date().isoformat(),
        )

        try:
            self.ledger.append(trade)
        except (StoreUnavailable, PersistenceError) as e:
            logger.error(f"Failed to append trade {trade.id} to the ledger: {e}")
            raise PersistenceError("Failed to record trade", stage="ledger") from e
        logger.info(f"Recorded trade {trade.id}: {trade.side.value} {trade.quantity} {trade.symbol} @ {trade.price}")

        if trade.side is Side.SELL:
            logger.info(f"SELL trade {trade.id} recorded; positions are not reduced by sells.")
            return trade

        try:
            position = self.positions.apply(
                trade.symbol,
                lambda current: self._log_update(current, apply_buy(current, trade.symbol, trade.quantity, trade.price)),
            )
        except (StoreUnavailable, PersistenceError, ValidationError) as e:
            logger.error(f"Trade {trade.id} recorded but position update for {trade.symbol} failed: {e}")
            raise PersistenceError("Failed to update position", stage="position", trade=trade) from e

        logger.debug(f"Position {position.symbol} now {position.quantity} @ {position.avg_cost}")
        return trade

    @staticmethod
    def _log_update(current: Optional[Position], new: Position) -> Position:
        if current is None:
            logger.info(f"Adding new position for {new.symbol}: {new.quantity} @ {new.avg_cost}")
        else:
            logger.info(
                f"Updating {new.symbol}: {current.quantity} @ {current.avg_cost} -> "
                f"{new.quantity} @ {new.avg_cost}"
            )
        return new
