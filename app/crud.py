# app/crud.py

from contextlib import contextmanager, nullcontext
from typing import Iterator, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from app.database import SESSION_LOCK
from app.errors import PersistenceError, StoreUnavailable
from app.models import PositionRecord, TradeRecord
from app.schemas import Position, Trade
from app.store import PositionStore, PositionUpdate, TradeLedger
from logger import logger


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Yields a session and maps database failures onto store errors.

    Connectivity problems and pool timeouts become StoreUnavailable; any other
    SQLAlchemy error becomes PersistenceError. The session is rolled back on
    failure and always closed. When the factory carries a session lock (one
    shared in-memory SQLite connection) it is held until the session closes.
    """
    session_lock = session_factory.kw.get("info", {}).get(SESSION_LOCK)
    with session_lock.hold("session") if session_lock else nullcontext():
        db = session_factory()
        try:
            yield db
        except (OperationalError, PoolTimeoutError) as e:
            db.rollback()
            logger.error(f"Database unavailable: {e}")
            raise StoreUnavailable("Database unavailable") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error: {e}", exc_info=True)
            raise PersistenceError("Database write failed") from e
        finally:
            db.close()


def to_trade(record: TradeRecord) -> Trade:
    return Trade(
        id=record.id,
        symbol=record.symbol,
        side=record.side,
        quantity=record.quantity,
        price=record.price,
        date=record.date,
    )


def to_position(record: PositionRecord) -> Position:
    return Position(symbol=record.symbol, quantity=record.quantity, avg_cost=record.avg_cost)


class SqlTradeLedger(TradeLedger):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append(self, trade: Trade) -> Trade:
        """
        Inserts a trade record.

        Args:
            trade (Trade): Trade to record.

        Returns:
            Trade: The recorded trade.
        """
        with session_scope(self.session_factory) as db:
            db.add(TradeRecord(
                id=trade.id,
                symbol=trade.symbol,
                side=trade.side.value,
                quantity=trade.quantity,
                price=trade.price,
                date=trade.date
            ))
            db.commit()
        return trade

    def list_trades(self) -> List[Trade]:
        """
        Retrieves all trade records in insertion order.

        Returns:
            List[Trade]: Recorded trades.
        """
        with session_scope(self.session_factory) as db:
            return [to_trade(r) for r in db.query(TradeRecord).order_by(TradeRecord.seq).all()]

    def ping(self) -> bool:
        try:
            with session_scope(self.session_factory) as db:
                db.execute(text("SELECT 1"))
            return True
        except (StoreUnavailable, PersistenceError):
            return False

    def close(self) -> None:
        self.session_factory.kw["bind"].dispose()


class SqlPositionStore(PositionStore):
    def __init__(self, session_factory: sessionmaker, timeout: float = 5.0):
        super().__init__(timeout)
        self.session_factory = session_factory

    def get(self, symbol: str) -> Optional[Position]:
        with session_scope(self.session_factory) as db:
            record = db.get(PositionRecord, symbol)
            return to_position(record) if record else None

    def upsert(self, symbol: str, quantity: int, avg_cost: float) -> Position:
        with session_scope(self.session_factory) as db:
            db.merge(PositionRecord(symbol=symbol, quantity=quantity, avg_cost=avg_cost))
            db.commit()
        return Position(symbol=symbol, quantity=quantity, avg_cost=avg_cost)

    def list_positions(self) -> List[Position]:
        with session_scope(self.session_factory) as db:
            records = db.query(PositionRecord).order_by(PositionRecord.symbol).all()
            return [to_position(r) for r in records]

    def apply(self, symbol: str, update: PositionUpdate) -> Position:
        """
        Read-modify-write of one position inside a single transaction.

        The row is read FOR UPDATE so other processes sharing the database
        wait for this transaction. A concurrent first insert of the same
        symbol surfaces as an IntegrityError; the update is retried once, by
        which point the row exists and can be locked.
        """
        with self.locks.hold(symbol):
            for attempt in range(2):
                try:
                    return self._apply_once(symbol, update)
                except PersistenceError as e:
                    if attempt == 0 and isinstance(e.__cause__, IntegrityError):
                        logger.warning(f"Concurrent insert of position {symbol}, retrying.")
                        continue
                    raise

    def _apply_once(self, symbol: str, update: PositionUpdate) -> Position:
        with session_scope(self.session_factory) as db:
            record = (
                db.query(PositionRecord)
                .filter(PositionRecord.symbol == symbol)
                .with_for_update()
                .one_or_none()
            )
            new = update(to_position(record) if record else None)
            if record is None:
                db.add(PositionRecord(symbol=symbol, quantity=new.quantity, avg_cost=new.avg_cost))
            else:
                record.quantity = new.quantity
                record.avg_cost = new.avg_cost
            db.commit()
            return new
