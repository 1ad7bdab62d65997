import asyncio
import json

import httpx
import pytest

from app.core.errors import ApiError
from app.main import app
from app.models.alert import AlertRule
from app.api.routes import alerts as alerts_routes
from app.services.alert_checker import AlertChecker, evaluate_alert, evaluate_condition
from app.services.alert_service import PRIORITY_COLORS, AlertService, get_alert_service
from app.services.alert_rule_service import validate_rule

TICKERS = [
    {"symbol": "BTCUSDT", "lastPrice": "101000", "priceChangePercent": "3.5", "volume": "12000"},
    {"symbol": "ETHUSDT", "lastPrice": "3900", "priceChangePercent": "-1.2", "volume": "90000"},
    {"symbol": "ETHBTC", "lastPrice": "0.038", "priceChangePercent": "0", "volume": "10"},
]


@pytest.fixture
def channel(client):
    state = {"handler": lambda request: httpx.Response(204), "requests": []}

    def handler(request):
        state["requests"].append(request)
        return state["handler"](request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_alert_service] = lambda: AlertService(http_client)
    return state


def test_send_discord_builds_embed(client, channel):
    response = client.post("/api/alerts/send", json={
        "type": "discord", "webhookUrl": "https://discord.com/api/webhooks/1/abc",
        "message": "BTC broke out", "priority": "critical", "mentionRole": "42",
        "symbol": "BTC", "value": 101000,
    })
    assert response.json() == {"success": True}

    body = json.loads(channel["requests"][0].content)
    embed = body["embeds"][0]
    assert embed["color"] == PRIORITY_COLORS["critical"]
    assert embed["description"] == "BTC broke out"
    assert {"name": "Value", "value": "$101,000", "inline": True} in embed["fields"]
    assert body["content"].startswith("<@&42>")


def test_mention_only_for_critical(client, channel):
    client.post("/api/alerts/send", json={
        "type": "discord", "webhookUrl": "https://discord.com/api/webhooks/1/abc",
        "message": "hello", "priority": "high", "mentionRole": "42",
    })
    assert "content" not in json.loads(channel["requests"][0].content)


def test_send_telegram(client, channel):
    channel["handler"] = lambda request: httpx.Response(200, json={"ok": True})
    response = client.post("/api/alerts/send", json={
        "type": "telegram", "botToken": "123:abc", "chatId": "99", "message": "hi",
    })
    assert response.json() == {"success": True}
    request = channel["requests"][0]
    assert str(request.url) == "https://api.telegram.org/bot123:abc/sendMessage"
    assert json.loads(request.content)["parse_mode"] == "Markdown"


def test_send_delivery_failure_is_500(client, channel):
    channel["handler"] = lambda request: httpx.Response(200, json={"ok": False, "description": "Unauthorized"})
    response = client.post("/api/alerts/send", json={
        "type": "telegram", "botToken": "bad", "chatId": "99", "message": "hi",
    })
    assert response.status_code == 500
    assert response.json() == {"error": "Telegram API error: Unauthorized"}


@pytest.mark.parametrize("payload,error", [
    ({"message": "x"}, "Alert type required"),
    ({"type": "discord"}, "Message required"),
    ({"type": "sms", "message": "x"}, "Invalid alert type"),
])
def test_send_validation(client, channel, payload, error):
    response = client.post("/api/alerts/send", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": error}


def test_test_discord_invalid_webhook(client, channel):
    channel["handler"] = lambda request: httpx.Response(404)
    response = client.post("/api/alerts/test", json={"type": "discord", "webhookUrl": "https://discord.com/x"})
    assert response.json() == {"success": False, "error": "Invalid webhook URL. Please check and try again."}


@pytest.mark.parametrize("payload,error", [
    ({}, "Type required (discord or telegram)"),
    ({"type": "discord"}, "Webhook URL required"),
    ({"type": "telegram", "botToken": "t"}, "Bot token and chat ID required"),
    ({"type": "email"}, "Invalid type"),
])
def test_test_validation(client, channel, payload, error):
    response = client.post("/api/alerts/test", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": error}


def test_health_checks_telegram_token_and_chat(client, channel):
    channel["handler"] = lambda request: httpx.Response(200, json={"ok": True, "result": {}})
    body = client.post("/api/integrations/health", json={
        "type": "telegram", "botToken": "123:abc", "chatId": "99",
    }).json()
    assert body["ok"] is True
    assert body["healthy"] is True
    assert body["detail"] == "Bot token and Chat ID validated."
    assert [r.url.path for r in channel["requests"]] == ["/bot123:abc/getMe", "/bot123:abc/getChat"]


def test_health_reports_unhealthy_webhook(client, channel):
    channel["handler"] = lambda request: httpx.Response(401)
    body = client.post("/api/integrations/health", json={
        "type": "discord", "webhookUrl": "https://discord.com/api/webhooks/1/abc",
    }).json()
    assert body["healthy"] is False
    assert body["statusCode"] == 401


def test_health_rejects_unknown_type(client, channel):
    response = client.post("/api/integrations/health", json={"type": "slack"})
    assert response.status_code == 400
    assert response.json() == {"error": "type must be discord or telegram", "ok": False}


def test_rule_crud(client):
    created = client.post("/api/alerts/rules", json={
        "symbol": "BTC", "conditions": [{"type": "price_above", "target": 100000}], "priority": "high",
    })
    assert created.status_code == 201
    rule = created.json()
    assert rule["logic"] == "AND"
    assert rule["active"] is True

    updated = client.put(f"/api/alerts/rules/{rule['id']}", json={"active": False}).json()
    assert updated["active"] is False
    assert updated["symbol"] == "BTC"

    assert len(client.get("/api/alerts/rules").json()["rules"]) == 1
    assert client.delete(f"/api/alerts/rules/{rule['id']}").json() == {"success": True}
    assert client.delete(f"/api/alerts/rules/{rule['id']}").status_code == 404


@pytest.mark.parametrize("payload,error", [
    ({"conditions": [{"type": "price_above", "target": 1}]}, "symbol or symbols required"),
    ({"symbol": "BTC"}, "At least one condition required"),
    ({"symbol": "BTC", "conditions": [{"type": "funding", "target": 1}]}, "Unknown condition type: funding"),
    ({"symbol": "BTC", "conditions": [{"type": "price_above", "operator": "eq", "target": 1}]}, "Unknown operator: eq"),
])
def test_rule_validation(client, payload, error):
    response = client.post("/api/alerts/rules", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": error}


def test_null_operator_takes_the_default(client):
    created = client.post("/api/alerts/rules", json={
        "symbol": "BTC", "conditions": [{"type": "price_above", "operator": None, "target": 1}],
    })
    assert created.status_code == 201

    validate_rule({"symbol": "BTC", "conditions": [{"type": "price_above", "operator": None, "target": 1}]})
    validate_rule({"symbol": "BTC", "conditions": [{"type": "price_above", "target": 1}]})
    with pytest.raises(ApiError):
        validate_rule({"symbol": "BTC", "conditions": [{"type": "price_above", "operator": "eq", "target": 1}]})


def test_alert_settings_roundtrip(client):
    assert client.get("/api/alerts/settings").json()["discordEnabled"] is False
    updated = client.put("/api/alerts/settings", json={
        "discordEnabled": True, "discordWebhookUrl": "https://discord.com/api/webhooks/1/abc",
    }).json()
    assert updated["discordEnabled"] is True
    assert updated["telegramEnabled"] is False


def test_evaluate_condition_variants():
    metric = {"price": 100.0, "change24h": 5.0, "volume24h": 1000.0}
    assert evaluate_condition({"type": "price_above", "target": 100}, 100.0, metric)
    assert not evaluate_condition({"type": "price_below", "target": 99}, 100.0, metric)
    assert evaluate_condition({"type": "chg_5m", "target": 4, "operator": "gt"}, 100.0, metric)
    assert evaluate_condition({"type": "chg_15m", "operator": "outside", "targetMin": -2, "targetMax": 2}, 100.0, metric)
    assert evaluate_condition({"type": "rvol", "target": 500}, 100.0, metric)
    assert not evaluate_condition({"type": "rvol", "target": 500}, 100.0, None)


def test_evaluate_alert_logic_and_targets():
    prices = {"BTC": 101000.0, "ETH": 3900.0}
    metrics = {"BTC": {"change24h": 3.5, "volume24h": 12000.0}, "ETH": {"change24h": -1.2, "volume24h": 90000.0}}
    conditions = [{"type": "price_above", "target": 100000}, {"type": "chg_5m", "target": 5, "operator": "gt"}]

    rule = {"active": True, "symbol": "BTC", "conditions": conditions, "logic": "AND"}
    assert evaluate_alert(rule, prices, metrics) == {"triggered": False}

    rule["logic"] = "OR"
    result = evaluate_alert(rule, prices, metrics)
    assert result["triggered"] and result["message"] == "BTC triggered!"

    global_rule = {"active": True, "symbol": "GLOBAL", "conditions": [{"type": "price_below", "target": 4000}]}
    assert evaluate_alert(global_rule, prices, metrics)["message"] == "Global Alert (ETH) triggered!"

    listed = {"active": True, "symbols": ["ETHUSDT"], "conditions": [{"type": "price_below", "target": 4000}]}
    assert evaluate_alert(listed, prices, metrics)["symbol"] == "ETH"

    assert evaluate_alert({**listed, "active": False}, prices, metrics) == {"triggered": False}


def _checker(requests):
    def handler(request):
        requests.append(request)
        if request.url.host == "api.binance.com":
            return httpx.Response(200, json=TICKERS)
        return httpx.Response(204)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AlertChecker(AlertService(http_client), http_client)


def test_run_check_delivers_and_throttles(client, db_session):
    client.put("/api/alerts/settings", json={
        "discordEnabled": True, "discordWebhookUrl": "https://discord.com/api/webhooks/1/abc",
    })
    client.post("/api/alerts/rules", json={
        "symbol": "BTC", "conditions": [{"type": "price_above", "target": 100000}], "cooldownSeconds": 600,
    })
    requests = []
    checker = _checker(requests)

    summary = asyncio.run(checker.run_check(db_session))
    assert summary["checked"] == 1
    assert summary["delivered"] == 1
    assert summary["triggered"][0]["symbol"] == "BTC"
    assert db_session.query(AlertRule).one().last_triggered_at is not None

    again = asyncio.run(checker.run_check(db_session))
    assert again["triggered"] == []


def test_run_check_skips_without_channels(client, db_session):
    client.post("/api/alerts/rules", json={"symbol": "BTC", "conditions": [{"type": "price_above", "target": 1}]})
    requests = []
    summary = asyncio.run(_checker(requests).run_check(db_session))
    assert summary == {"checked": 1, "triggered": [], "delivered": 0, "errors": []}
    assert requests == []


def test_manual_check_route(client, monkeypatch):
    client.put("/api/alerts/settings", json={"telegramEnabled": True, "telegramBotToken": "t", "telegramChatId": "1"})
    client.post("/api/alerts/rules", json={"symbol": "ETH", "conditions": [{"type": "price_above", "target": 5000}]})
    requests = []
    monkeypatch.setattr(alerts_routes, "alert_checker", _checker(requests))

    response = client.post("/api/alerts/check")
    assert response.json() == {"checked": 1, "triggered": [], "delivered": 0, "errors": []}
    assert requests[0].url.host == "api.binance.com"
