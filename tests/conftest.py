# tests/conftest.py

import json
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.errors import PersistenceError, StoreUnavailable
from app.harperdb import HarperDBClient
from app.logic import PortfolioService
from app.main import create_app
from app.store import MemoryPositionStore, MemoryTradeLedger


class FixedClock:
    def __init__(self, now=None):
        self.now = now or datetime(2025, 7, 20, 15, 30, tzinfo=timezone.utc)

    def set_date(self, year, month, day):
        self.now = datetime(year, month, day, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class UnavailableLedger(MemoryTradeLedger):
    def append(self, trade):
        raise StoreUnavailable("ledger offline")

    def list_trades(self):
        raise StoreUnavailable("ledger offline")

    def ping(self):
        return False


class BrokenPositionStore(MemoryPositionStore):
    def upsert(self, symbol, quantity, avg_cost):
        raise PersistenceError("write rejected")

    def list_positions(self):
        raise StoreUnavailable("positions offline")


class FakeHarperDB:
    """In-process stand-in for the HarperDB operations endpoint."""

    HASH_ATTRIBUTES = {"trades": "id", "portfolio": "symbol"}

    def __init__(self):
        self.tables = {"trades": {}, "portfolio": {}}
        self.operations = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        op = json.loads(request.content)
        self.operations.append(op)
        name = op["operation"]
        if name == "describe_all":
            return httpx.Response(200, json={"trading": {}})

        table = self.tables[op["table"]]
        key = self.HASH_ATTRIBUTES[op["table"]]
        if name == "insert":
            for record in op["records"]:
                if record[key] in table:
                    return httpx.Response(400, json={"error": "duplicate hash"})
                table[record[key]] = dict(record)
            return httpx.Response(200, json={"inserted_hashes": [r[key] for r in op["records"]]})
        if name == "upsert":
            for record in op["records"]:
                table[record[key]] = dict(record)
            return httpx.Response(200, json={"upserted_hashes": [r[key] for r in op["records"]]})
        if name == "search_by_hash":
            return httpx.Response(200, json=[table[h] for h in op["hash_values"] if h in table])
        if name == "search_by_value":
            return httpx.Response(200, json=list(table.values()))
        return httpx.Response(400, json={"error": f"unknown operation {name}"})


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def ledger():
    return MemoryTradeLedger()


@pytest.fixture
def positions():
    return MemoryPositionStore(timeout=1.0)


@pytest.fixture
def service(ledger, positions, clock):
    return PortfolioService(ledger, positions, clock=clock)


@pytest.fixture
def make_client(clock):
    clients = []

    def _make(ledger=None, positions=None, settings=None):
        app = create_app(
            settings=settings or Settings(),
            ledger=ledger if ledger is not None else MemoryTradeLedger(),
            positions=positions if positions is not None else MemoryPositionStore(timeout=1.0),
        )
        app.state.service.clock = clock
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def harperdb():
    return FakeHarperDB()


@pytest.fixture
def harperdb_client(harperdb):
    http = httpx.Client(base_url="http://harperdb.test", transport=httpx.MockTransport(harperdb))
    client = HarperDBClient(http, schema="trading")
    yield client
    client.close()
