# app/store.py

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from app.errors import StoreUnavailable
from app.schemas import Position, Side, Trade
from logger import logger

# Receives the current position (None when absent) and returns the new one.
PositionUpdate = Callable[[Optional[Position]], Position]


class KeyedLock:
    """
    One mutex per key, created on demand.

    Acquisition is bounded by `timeout`; running out of time raises
    StoreUnavailable instead of blocking the caller forever.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self.timeout):
            raise StoreUnavailable(f"Timed out waiting for lock on {key}")
        try:
            yield
        finally:
            lock.release()


class TradeLedger(ABC):
    """Append-only log of trades. list_trades() returns insertion order."""

    @abstractmethod
    def append(self, trade: Trade) -> Trade:
        ...

    @abstractmethod
    def list_trades(self) -> List[Trade]:
        ...

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class PositionStore(ABC):
    """
    Positions keyed by symbol.

    `apply` is the only safe way to read-modify-write a position: it holds the
    symbol's lock across get, compute and upsert so concurrent updates on the
    same symbol are serialized.
    """

    def __init__(self, timeout: float = 5.0):
        self.locks = KeyedLock(timeout)

    @abstractmethod
    def get(self, symbol: str) -> Optional[Position]:
        ...

    @abstractmethod
    def upsert(self, symbol: str, quantity: int, avg_cost: float) -> Position:
        ...

    @abstractmethod
    def list_positions(self) -> List[Position]:
        ...

    def apply(self, symbol: str, update: PositionUpdate) -> Position:
        with self.locks.hold(symbol):
            new = update(self.get(symbol))
            return self.upsert(symbol, new.quantity, new.avg_cost)

    def close(self) -> None:
        pass


class MemoryTradeLedger(TradeLedger):
    def __init__(self):
        self._lock = threading.Lock()
        self._trades: List[Trade] = []

    def append(self, trade: Trade) -> Trade:
        with self._lock:
            self._trades.append(trade)
        return trade

    def list_trades(self) -> List[Trade]:
        with self._lock:
            return list(self._trades)


class MemoryPositionStore(PositionStore):
    def __init__(self, timeout: float = 5.0):
        super().__init__(timeout)
        self._lock = threading.Lock()
        self._positions: Dict[str, Position] = {}

    def get(self, symbol: str) -> Optional[Position]:
        with self._lock:
            return self._positions.get(symbol)

    def upsert(self, symbol: str, quantity: int, avg_cost: float) -> Position:
        position = Position(symbol=symbol, quantity=quantity, avg_cost=avg_cost)
        with self._lock:
            self._positions[symbol] = position
        return position

    def list_positions(self) -> List[Position]:
        with self._lock:
            positions = list(self._positions.values())
        return sorted(positions, key=lambda p: p.symbol)


SAMPLE_POSITIONS = [
    ("AAPL", 10, 150.00),
    ("TSLA", 5, 250.00),
    ("MSFT", 8, 300.00),
]

SAMPLE_TRADES = [
    Trade(id="1", symbol="AAPL", side=Side.BUY, quantity=10, price=150.00, date="2025-07-20"),
    Trade(id="2", symbol="TSLA", side=Side.BUY, quantity=5, price=250.00, date="2025-07-21"),
]


def seed_sample_data(ledger: TradeLedger, positions: PositionStore) -> None:
    """Loads the demo portfolio and its two demo trades."""
    for trade in SAMPLE_TRADES:
        ledger.append(trade)
    for symbol, quantity, avg_cost in SAMPLE_POSITIONS:
        positions.upsert(symbol, quantity, avg_cost)
    logger.info(f"Seeded {len(SAMPLE_POSITIONS)} sample positions and {len(SAMPLE_TRADES)} sample trades.")


def create_stores(settings):
    """
    Builds the ledger and position store for the configured backend.

    Args:
        settings (Settings): Application settings.

    Returns:
        Tuple[TradeLedger, PositionStore]: The backing stores.
    """
    backend = settings.store_backend
    logger.info(f"Using {backend} store backend.")

    if backend == "sql":
        from app.crud import SqlPositionStore, SqlTradeLedger
        from app.database import init_database

        session_factory = init_database(settings)
        return (
            SqlTradeLedger(session_factory),
            SqlPositionStore(session_factory, timeout=settings.store_timeout),
        )

    if backend == "harperdb":
        from app.harperdb import HarperDBClient, HarperDBPositionStore, HarperDBTradeLedger

        client = HarperDBClient.from_settings(settings)
        return (
            HarperDBTradeLedger(client),
            HarperDBPositionStore(client, timeout=settings.store_timeout),
        )

    ledger, positions = MemoryTradeLedger(), MemoryPositionStore(timeout=settings.store_timeout)
    if settings.seed_sample_data:
        seed_sample_data(ledger, positions)
    return ledger, positions
