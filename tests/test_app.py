from app.schemas.alerts import AlertRuleIn
from app.schemas.base import to_wire


def test_root(client):
    assert client.get("/").json() == {"message": "Welcome to the Trade Marathon API"}


def test_health(client):
    body = client.get("/api/health").json()
    assert body["ok"] is True
    assert body["timestamp"]
    assert isinstance(body["databaseConfigured"], bool)
    assert isinstance(body["backupConfigured"], bool)
    assert body["redis"] in ("memory", "connected")


def test_scheduler_status_when_stopped(client):
    assert client.get("/api/scheduler/status").json() == {"scheduler_running": False, "jobs": []}


def test_settings_blob_roundtrip(client):
    assert client.get("/api/settings/layout").json() == {"key": "layout", "value": None}

    value = {"theme": "dark", "widgets": ["pnl", "positions"]}
    assert client.put("/api/settings/layout", json={"value": value}).json() == {"key": "layout", "value": value}
    assert client.get("/api/settings/layout").json()["value"] == value

    client.put("/api/settings/layout", json={"value": {"theme": "light"}})
    assert client.get("/api/settings/layout").json()["value"] == {"theme": "light"}


def test_validation_errors_are_400(client):
    response = client.post("/api/accounting/cost-basis", json={"symbol": "BTC", "currentPrice": "lots"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"].startswith("currentPrice:")
    assert body["details"][0]["loc"] == ["body", "currentPrice"]


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_cost_basis_route(client):
    response = client.post("/api/accounting/cost-basis", json={
        "symbol": "BTC/USDT",
        "transactions": [
            {"id": "b1", "symbol": "BTCUSDT", "side": "buy", "price": 100, "amount": 2, "timestamp": 1000},
            {"id": "s1", "symbol": "BTCUSDT", "side": "sell", "price": 150, "amount": 1, "timestamp": 2000},
        ],
        "currentPrice": 200,
        "currentBalance": 1,
    })
    body = response.json()
    assert body["symbol"] == "BTC"
    assert [e["id"] for e in body["events"]] == ["b1", "s1"]
    assert body["snapshot"]["realizedPnl"] == 50
    assert body["snapshot"]["unrealizedPnl"] == 100


def test_cost_basis_requires_symbol(client):
    response = client.post("/api/accounting/cost-basis", json={"transactions": []})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing symbol"}



def test_to_wire_keeps_only_sent_fields():
    body = AlertRuleIn.model_validate({"symbol": "BTC", "cooldownSeconds": 60, "logic": None})
    assert to_wire(body) == {"symbol": "BTC", "cooldownSeconds": 60, "logic": None}
