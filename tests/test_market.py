import asyncio
import json
from unittest.mock import MagicMock

import ccxt
import httpx
import pytest

from app.main import app
from app.services.hyperliquid_service import HyperliquidService, get_hyperliquid_service
from app.services.market_service import MarketService, get_market_service, is_usd_quoted
from app.services.price_service import PriceService, get_price_service


def _exchange(tickers, funding=None, funding_error=None):
    exchange = MagicMock()
    exchange.fetch_tickers.return_value = tickers
    exchange.has = {"fetchFundingRates": funding is not None or funding_error is not None}
    if funding_error:
        exchange.fetch_funding_rates.side_effect = funding_error
    else:
        exchange.fetch_funding_rates.return_value = funding or {}
    return exchange


def test_is_usd_quoted():
    assert is_usd_quoted("BTC/USDT:USDT")
    assert is_usd_quoted("ETH/USD")
    assert not is_usd_quoted("ETH/BTC")


def test_screener_merges_tickers_and_funding():
    venues = {
        "binance": _exchange(
            {"BTC/USDT:USDT": {"last": 100.0, "quoteVolume": 5e9, "percentage": 1.5},
             "ETH/BTC": {"last": 0.05}},
            funding={"BTC/USDT:USDT": {"fundingRate": 0.0001}, "DOGE/USDT:USDT": {"fundingRate": -0.0002}},
        ),
        "bybit": _exchange({"SOL/USDT:USDT": {"last": 150.0}}, funding_error=ccxt.NetworkError("down")),
        "hyperliquid": MagicMock(load_markets=MagicMock(side_effect=ccxt.ExchangeNotAvailable("maintenance"))),
    }
    service = MarketService(lambda name, options: venues[name])

    rows = service.get_screener_data(use_cache=False)["data"]
    by_key = {(r["symbol"], r["exchange"]): r for r in rows}
    assert set(by_key) == {("BTC", "binance"), ("DOGE", "binance"), ("SOL", "bybit")}
    assert by_key[("BTC", "binance")]["fundingRate"] == 0.0001
    assert by_key[("BTC", "binance")]["volume24h"] == 5e9
    assert by_key[("DOGE", "binance")]["price"] == 0.0
    assert by_key[("SOL", "bybit")]["fundingRate"] == 0.0


def test_screener_route_uses_cache(client):
    calls = []

    def factory(name, options):
        calls.append(name)
        return _exchange({"BTC/USDT:USDT": {"last": 1.0}})

    app.dependency_overrides[get_market_service] = lambda: MarketService(factory)
    first = client.get("/api/screener/ccxt-data").json()
    second = client.get("/api/screener/ccxt-data").json()
    assert first == second
    assert len(calls) == 3

    client.get("/api/screener/ccxt-data", params={"refresh": "true"})
    assert len(calls) == 6


def _price_client(requests):
    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={
            "bitcoin": {"usd": 60000, "usd_24h_change": 2.5},
            "hedera-hashgraph": {"usd": 0},
        })

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_prices_route(client):
    requests = []
    http_client = _price_client(requests)
    app.dependency_overrides[get_price_service] = lambda: PriceService(http_client)

    body = client.get("/api/prices", params={"symbols": "btc, BTC"}).json()
    assert body == {"prices": {"BTC": {"price": 60000.0, "change24h": 2.5}}}
    assert requests[0].url.params["ids"] == "bitcoin"

    client.get("/api/prices", params={"symbols": "BTC"})
    assert len(requests) == 1


def test_prices_require_symbols(client):
    response = client.get("/api/prices", params={"symbols": " , "})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing symbols"}


@pytest.fixture
def hyperliquid():
    HyperliquidService.reset_cache()
    responses = {
        "meta": {"universe": [{"name": "BTC"}, {"name": "ETH"}]},
        "spotMeta": {"tokens": [{"index": 1, "name": "USDC"}, {"index": 150, "name": "HYPE"}]},
        "userFills": [
            {"coin": "@150", "px": "25", "sz": "4", "side": "B", "time": 1700000000000, "hash": "0xa",
             "closedPnl": "0", "fee": "0.1"},
            {"coin": "ETH", "px": "2000", "sz": "1", "side": "A", "time": 1700000100000, "oid": 7,
             "closedPnl": "12.5", "dir": "Close Long"},
        ],
        "clearinghouseState": {"assetPositions": [
            {"position": {"coin": "BTC", "szi": "-0.5", "entryPx": "60000", "positionValue": "29000",
                          "unrealizedPnl": "500", "returnOnEquity": "0.1", "leverage": {"value": 5},
                          "liquidationPx": "70000"}},
            {"position": {"coin": "ETH", "szi": "0"}},
        ]},
    }

    def handler(request):
        return httpx.Response(200, json=responses[json.loads(request.content)["type"]])

    yield HyperliquidService(httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    HyperliquidService.reset_cache()


def test_resolve_coin_prefers_perp_names():
    asset_map = {"1": "ETH", "@1": "ETH", "150": "HYPE", "@150": "HYPE"}
    assert HyperliquidService.resolve_coin("@150", asset_map) == "HYPE"
    assert HyperliquidService.resolve_coin("1", asset_map) == "ETH"
    assert HyperliquidService.resolve_coin("@999", asset_map) == "@999"
    assert HyperliquidService.resolve_coin("SOL", asset_map) == "SOL"


def test_user_fills(hyperliquid):
    fills = asyncio.run(hyperliquid.fetch_user_fills("0x1234567890abcdef"))
    assert [(f["id"], f["symbol"], f["side"]) for f in fills] == [("0xa", "HYPE", "buy"), ("hl-7", "ETH", "sell")]
    assert fills[1]["pnl"] == 12.5
    assert fills[1]["notes"] == "Close Long"
    assert fills[0]["feeCurrency"] == "USDC"


def test_asset_map_keeps_perp_on_collision(hyperliquid):
    asset_map = asyncio.run(hyperliquid.get_asset_map())
    assert asset_map["1"] == "ETH"
    assert asset_map["@150"] == "HYPE"


def test_positions(hyperliquid):
    positions = asyncio.run(hyperliquid.fetch_positions("0xabc"))
    assert len(positions) == 1
    position = positions[0]
    assert position["side"] == "short"
    assert position["size"] == 0.5
    assert position["markPrice"] == 58000
    assert position["leverage"] == 5
    assert position["unrealizedProfitPercent"] == pytest.approx(10.0)


def test_hyperliquid_routes(client, hyperliquid):
    app.dependency_overrides[get_hyperliquid_service] = lambda: hyperliquid

    positions = client.get("/api/hyperliquid/positions", params={"user": "0xabc"}).json()["positions"]
    assert [(p["symbol"], p["side"], p["entryPrice"]) for p in positions] == [("BTC", "short", 60000)]

    trades = client.get("/api/hyperliquid/fills", params={"user": "0xabc"}).json()["trades"]
    assert [t["id"] for t in trades] == ["0xa", "hl-7"]

    response = client.get("/api/hyperliquid/positions")
    assert response.status_code == 400
    assert response.json() == {"error": "Missing address"}
