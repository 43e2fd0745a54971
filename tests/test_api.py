# tests/test_api.py

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.harperdb import HarperDBPositionStore, HarperDBTradeLedger
from app.store import MemoryTradeLedger
from tests.conftest import BrokenPositionStore, UnavailableLedger


def post_trade(client, **body):
    return client.post("/trades", json=body)


def test_root(client):
    rv = client.get("/")
    assert rv.status_code == 200
    data = rv.json()
    assert data["message"] == "Day Trading API is running!"
    assert data["timestamp"].endswith("Z")


def test_health(client):
    rv = client.get("/health")
    assert rv.status_code == 200
    assert rv.json() == {"status": "healthy", "store": "memory"}


def test_health_unavailable(make_client):
    rv = make_client(ledger=UnavailableLedger()).get("/health")
    assert rv.status_code == 503
    assert rv.json()["status"] == "unhealthy"


def test_record_trade_normalizes_strings(client):
    rv = post_trade(client, symbol="aapl", type="buy", quantity="10", price="150")
    assert rv.status_code == 201
    data = rv.json()
    assert data["message"] == "Trade recorded successfully"
    trade = data["trade"]
    assert trade["symbol"] == "AAPL"
    assert trade["side"] == "BUY"
    assert trade["quantity"] == 10 and isinstance(trade["quantity"], int)
    assert trade["price"] == 150.0
    assert trade["date"] == "2025-07-20"
    assert trade["id"]


def test_portfolio_average_cost(client):
    post_trade(client, symbol="AAPL", type="BUY", quantity=10, price=150)
    post_trade(client, symbol="AAPL", type="BUY", quantity=5, price=180)

    rv = client.get("/portfolio")
    assert rv.status_code == 200
    data = rv.json()
    assert data["portfolio"] == [{"symbol": "AAPL", "quantity": 15, "avgCost": 160.0}]
    assert data["totalValue"] == pytest.approx(2400.0)


def test_portfolio_empty(client):
    assert client.get("/portfolio").json() == {"portfolio": [], "totalValue": 0.0}


@pytest.mark.parametrize("missing", ["symbol", "type", "quantity", "price"])
def test_missing_field(client, missing):
    body = {"symbol": "AAPL", "type": "BUY", "quantity": 10, "price": 150}
    del body[missing]

    rv = client.post("/trades", json=body)
    assert rv.status_code == 400
    assert rv.json() == {"error": "Missing required fields: symbol, type, quantity, price"}
    assert client.get("/trades").json() == {"trades": []}


def test_invalid_type(client):
    rv = post_trade(client, symbol="AAPL", type="HOLD", quantity=10, price=150)
    assert rv.status_code == 400
    assert rv.json() == {"error": "Type must be BUY or SELL"}
    assert client.get("/trades").json() == {"trades": []}


def test_invalid_quantity(client):
    rv = post_trade(client, symbol="AAPL", type="BUY", quantity="ten", price=150)
    assert rv.status_code == 400
    assert rv.json()["error"].startswith("Invalid quantity")


@pytest.mark.parametrize("body", [b"{not json", b"[1, 2]", b""])
def test_invalid_json(client, body):
    rv = client.post("/trades", content=body, headers={"Content-Type": "application/json"})
    assert rv.status_code == 400
    assert rv.json() == {"error": "Invalid JSON body"}


def test_trades_newest_date_first(client, clock):
    clock.set_date(2025, 7, 20)
    post_trade(client, symbol="AAPL", type="BUY", quantity=10, price=150)
    clock.set_date(2025, 7, 21)
    post_trade(client, symbol="TSLA", type="BUY", quantity=5, price=250)

    trades = client.get("/trades").json()["trades"]
    assert [t["date"] for t in trades] == ["2025-07-21", "2025-07-20"]
    assert trades[0]["symbol"] == "TSLA"


def test_sell_recorded_but_portfolio_unchanged(client):
    post_trade(client, symbol="AAPL", type="BUY", quantity=10, price=150)
    rv = post_trade(client, symbol="AAPL", type="sell", quantity=4, price=170)
    assert rv.status_code == 201
    assert rv.json()["trade"]["side"] == "SELL"

    assert client.get("/portfolio").json()["portfolio"][0]["quantity"] == 10
    assert len(client.get("/trades").json()["trades"]) == 2


def test_ledger_failure_is_500(make_client):
    client = make_client(ledger=UnavailableLedger())
    rv = post_trade(client, symbol="AAPL", type="BUY", quantity=10, price=150)
    assert rv.status_code == 500
    assert rv.json() == {"error": "Failed to record trade"}


def test_position_failure_is_500_but_trade_kept(make_client):
    ledger = MemoryTradeLedger()
    client = make_client(ledger=ledger, positions=BrokenPositionStore(timeout=1.0))

    rv = post_trade(client, symbol="AAPL", type="BUY", quantity=10, price=150)
    assert rv.status_code == 500
    assert rv.json() == {"error": "Failed to record trade"}
    assert len(client.get("/trades").json()["trades"]) == 1


def test_read_failures_are_500(make_client):
    client = make_client(ledger=UnavailableLedger(), positions=BrokenPositionStore(timeout=1.0))
    assert client.get("/trades").json() == {"error": "Failed to fetch trades"}
    rv = client.get("/portfolio")
    assert rv.status_code == 500
    assert rv.json() == {"error": "Failed to fetch portfolio"}


def test_unknown_route_uses_error_shape(client):
    rv = client.get("/nope")
    assert rv.status_code == 404
    assert "error" in rv.json()


def test_seeded_sample_data():
    with TestClient(create_app(settings=Settings(seed_sample_data=True))) as client:
        data = client.get("/portfolio").json()
        assert [p["symbol"] for p in data["portfolio"]] == ["AAPL", "MSFT", "TSLA"]
        assert data["totalValue"] == pytest.approx(10 * 150 + 5 * 250 + 8 * 300)
        trades = client.get("/trades").json()["trades"]
        assert [t["date"] for t in trades] == ["2025-07-21", "2025-07-20"]


def test_oversized_trade_is_400_and_portfolio_stays_numeric(client):
    rv = post_trade(client, symbol="BIG", type="BUY", quantity=2, price=1e308)
    assert rv.status_code == 400
    assert rv.json()["error"].startswith("Invalid trade")
    assert client.get("/trades").json() == {"trades": []}
    assert client.get("/portfolio").json() == {"portfolio": [], "totalValue": 0.0}


def test_overflowing_buy_is_500_and_position_intact(client):
    assert post_trade(client, symbol="BIG", type="BUY", quantity=1, price=1e308).status_code == 201

    rv = post_trade(client, symbol="BIG", type="BUY", quantity=1, price=1e308)
    assert rv.status_code == 500
    assert rv.json() == {"error": "Failed to record trade"}

    data = client.get("/portfolio").json()
    assert data["portfolio"] == [{"symbol": "BIG", "quantity": 1, "avgCost": 1e308}]
    assert data["totalValue"] == 1e308


def test_malformed_harperdb_rows_are_500(make_client, harperdb, harperdb_client):
    harperdb.tables["trades"]["t-1"] = {"id": "t-1", "side": "BUY", "quantity": 1}
    harperdb.tables["portfolio"]["AAPL"] = {"symbol": "AAPL", "quantity": "lots"}
    client = make_client(
        ledger=HarperDBTradeLedger(harperdb_client),
        positions=HarperDBPositionStore(harperdb_client, timeout=1.0),
    )

    rv = client.get("/trades")
    assert rv.status_code == 500
    assert rv.json() == {"error": "Failed to fetch trades"}

    rv = client.get("/portfolio")
    assert rv.status_code == 500
    assert rv.json() == {"error": "Failed to fetch portfolio"}

    rv = post_trade(client, symbol="AAPL", type="BUY", quantity=1, price=1)
    assert rv.status_code == 500
    assert rv.json() == {"error": "Failed to record trade"}
