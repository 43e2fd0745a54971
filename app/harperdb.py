# app/harperdb.py

import time
from typing import Any, Dict, List, Optional

import httpx

from app.errors import PersistenceError, StoreUnavailable
from app.schemas import Position, Trade
from app.store import PositionStore, TradeLedger
from logger import logger

TRADES_TABLE = "trades"
PORTFOLIO_TABLE = "portfolio"


def malformed_row(table: str, error: Exception) -> PersistenceError:
    # pydantic's ValidationError is a ValueError, so bad values land here too
    logger.error(f"Malformed {table} row from HarperDB: {error!r}")
    return PersistenceError(f"HarperDB returned a malformed {table} row")


class HarperDBClient:
    """
    Thin client for the HarperDB operations API.

    Every call is a JSON POST to the instance root. Transport failures and
    timeouts raise StoreUnavailable; non-2xx answers raise PersistenceError.
    """

    def __init__(self, http: httpx.Client, schema: str = "trading"):
        self.http = http
        self.schema = schema

    @classmethod
    def from_settings(cls, settings) -> "HarperDBClient":
        if not settings.harperdb_url:
            raise RuntimeError("HARPERDB_URL is not set. Please set it in your environment.")
        auth = None
        if settings.harperdb_username:
            auth = (settings.harperdb_username, settings.harperdb_password or "")
        http = httpx.Client(
            base_url=settings.harperdb_url,
            auth=auth,
            timeout=settings.store_timeout,
            headers={"Content-Type": "application/json"},
        )
        return cls(http, schema=settings.harperdb_schema)

    def request(self, operation: Dict[str, Any]) -> Any:
        name = operation.get("operation")
        try:
            response = self.http.post("/", json=operation)
            response.raise_for_status()
        except httpx.TransportError as e:
            logger.error(f"HarperDB {name} failed: {e}")
            raise StoreUnavailable(f"HarperDB unreachable during {name}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"HarperDB {name} returned {e.response.status_code}: {e.response.text}")
            raise PersistenceError(f"HarperDB rejected {name}") from e
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"HarperDB {name} returned a non-JSON body: {response.text[:200]!r}")
            raise PersistenceError(f"HarperDB sent an unreadable answer to {name}") from e

    def rows(self, operation: Dict[str, Any]) -> List[Dict[str, Any]]:
        result = self.request(operation)
        if not isinstance(result, list) or not all(isinstance(row, dict) for row in result):
            logger.error(f"HarperDB {operation['operation']} on {operation.get('table')} did not return rows: {result!r}")
            raise PersistenceError(f"HarperDB returned malformed rows for {operation.get('table')}")
        return result

    def insert(self, table: str, records: List[Dict[str, Any]]) -> Any:
        return self.request({
            "operation": "insert",
            "schema": self.schema,
            "table": table,
            "records": records,
        })

    def upsert(self, table: str, records: List[Dict[str, Any]]) -> Any:
        return self.request({
            "operation": "upsert",
            "schema": self.schema,
            "table": table,
            "records": records,
        })

    def search_by_hash(self, table: str, hash_values: List[str]) -> List[Dict[str, Any]]:
        return self.rows({
            "operation": "search_by_hash",
            "schema": self.schema,
            "table": table,
            "hash_values": hash_values,
            "get_attributes": ["*"],
        })

    def scan(self, table: str, attribute: str) -> List[Dict[str, Any]]:
        return self.rows({
            "operation": "search_by_value",
            "schema": self.schema,
            "table": table,
            "search_attribute": attribute,
            "search_value": "*",
            "get_attributes": ["*"],
        })

    def close(self) -> None:
        self.http.close()


class HarperDBTradeLedger(TradeLedger):
    def __init__(self, client: HarperDBClient):
        self.client = client

    def append(self, trade: Trade) -> Trade:
        record = trade.model_dump(mode="json")
        # Nanosecond stamp orders trades recorded on the same date
        record["seq"] = time.time_ns()
        self.client.insert(TRADES_TABLE, [record])
        return trade

    def list_trades(self) -> List[Trade]:
        rows = self.client.scan(TRADES_TABLE, "id")
        try:
            rows = sorted(rows, key=lambda row: row.get("seq") or 0)
            return [
                Trade(
                    id=str(row["id"]),
                    symbol=row["symbol"],
                    side=row.get("side") or row["type"],
                    quantity=row["quantity"],
                    price=row["price"],
                    date=row["date"],
                )
                for row in rows
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise malformed_row(TRADES_TABLE, e) from e

    def ping(self) -> bool:
        try:
            self.client.request({"operation": "describe_all"})
            return True
        except (StoreUnavailable, PersistenceError):
            return False

    def close(self) -> None:
        self.client.close()


class HarperDBPositionStore(PositionStore):
    """
    Positions in the remote `portfolio` table (hash attribute `symbol`).

    HarperDB has no row locks, so `apply` is serialized per symbol within this
    process only.
    """

    def __init__(self, client: HarperDBClient, timeout: float = 5.0):
        super().__init__(timeout)
        self.client = client

    @staticmethod
    def _to_position(row: Dict[str, Any]) -> Position:
        try:
            return Position(symbol=row["symbol"], quantity=row["quantity"], avg_cost=row["avg_price"])
        except (KeyError, TypeError, ValueError) as e:
            raise malformed_row(PORTFOLIO_TABLE, e) from e

    def get(self, symbol: str) -> Optional[Position]:
        rows = self.client.search_by_hash(PORTFOLIO_TABLE, [symbol])
        rows = [row for row in rows if row.get("symbol") == symbol]
        return self._to_position(rows[0]) if rows else None

    def upsert(self, symbol: str, quantity: int, avg_cost: float) -> Position:
        self.client.upsert(PORTFOLIO_TABLE, [{
            "symbol": symbol,
            "quantity": quantity,
            "avg_price": avg_cost,
        }])
        return Position(symbol=symbol, quantity=quantity, avg_cost=avg_cost)

    def list_positions(self) -> List[Position]:
        rows = self.client.scan(PORTFOLIO_TABLE, "symbol")
        return sorted((self._to_position(row) for row in rows), key=lambda p: p.symbol)

    def close(self) -> None:
        self.client.close()
