import asyncio
import json

import httpx
import pytest

from app.main import app
from app.services.price_service import DashboardService, PriceService, get_dashboard_service
from app.services.wallet_service import WalletService, get_wallet_service, resolve_wallet_kind


def _service(handler):
    return WalletService(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.parametrize("chain,wallet_type,expected", [
    (None, None, "evm"),
    ("BASE", None, "evm"),
    ("sol", None, "solana"),
    (None, "solana", "solana"),
    ("BTC", None, "bitcoin"),
    (None, "hbar", "hedera"),
    ("APT", None, "aptos"),
    ("TRX", None, "tron"),
    (None, "ton", "ton"),
    ("XRP", None, "xrp"),
    ("SUI", None, "sui"),
])
def test_resolve_wallet_kind(chain, wallet_type, expected):
    assert resolve_wallet_kind(chain, wallet_type) == expected


def test_evm_portfolio_from_blockscout():
    def handler(request):
        if request.url.params["action"] == "tokenlist":
            return httpx.Response(200, json={"status": "1", "result": [
                {"symbol": "USDC", "balance": "2500000", "decimals": "6"},
                {"symbol": "DUST", "balance": "1", "decimals": "18"},
            ]})
        return httpx.Response(200, json={"status": "1", "result": "1500000000000000000"})

    balances = asyncio.run(_service(handler).get_portfolio("0xabc", "BASE"))
    assert balances == [{"symbol": "USDC", "balance": 2.5}, {"symbol": "ETH", "balance": 1.5}]


def test_evm_portfolio_falls_back_to_rpc():
    def handler(request):
        if "blockscout" in request.url.host:
            return httpx.Response(502)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": hex(2 * 10 ** 18)})

    balances = asyncio.run(_service(handler).get_portfolio("0xabc", "BSC"))
    assert balances == [{"symbol": "BNB", "balance": 2.0}]


def test_solana_portfolio():
    def handler(request):
        if json.loads(request.content)["method"] == "getBalance":
            return httpx.Response(200, json={"result": {"value": 2_500_000_000}})
        return httpx.Response(200, json={"result": {"value": [
            {"account": {"data": {"parsed": {"info": {
                "mint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "tokenAmount": {"uiAmount": 10.0},
            }}}}},
            {"account": {"data": {"parsed": {"info": {
                "mint": "So1anaUnknownMint1111111111111111111111111", "tokenAmount": {"uiAmount": 1.0},
            }}}}},
        ]}})

    balances = asyncio.run(_service(handler).get_portfolio("addr", wallet_type="solana"))
    assert balances == [
        {"symbol": "SOL", "balance": 2.5},
        {"symbol": "USDC", "balance": 10.0},
        {"symbol": "So1a...1111", "balance": 1.0},
    ]


def test_tron_portfolio_reads_trc20_list():
    def handler(request):
        return httpx.Response(200, json={"data": [{
            "balance": 5_000_000,
            "trc20": [{"TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t": "12000000"}],
        }]})

    balances = asyncio.run(_service(handler).get_portfolio("T123", "TRX"))
    assert balances == [{"symbol": "TRX", "balance": 5.0}, {"symbol": "USDT", "balance": 12.0}]


def test_unreachable_explorer_degrades_to_empty():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    assert asyncio.run(_service(handler).get_portfolio("bc1q", "BTC")) == []
    assert asyncio.run(_service(handler).get_history("bc1q", "BTC")) == []


def test_xrp_history_skips_unparsable_dates():
    def handler(request):
        return httpx.Response(200, json={"transactions": [
            {"hash": "bad", "date": "not-a-date"},
            {"hash": "ok", "date": "2023-11-14T22:13:20Z", "type": "Payment", "result": "tesSUCCESS",
             "amount": {"value": "12.5"}},
        ]})

    service = _service(handler)
    assert asyncio.run(service.get_xrp_history("rXYZ")) == [{
        "id": "ok", "timestamp": 1700000000000, "symbol": "XRP", "side": "transfer", "price": 0,
        "amount": 12.5, "exchange": "XRP", "status": "Confirmed",
    }]

    only_bad = _service(lambda request: httpx.Response(200, json={"transactions": [{"hash": "h", "date": "not-a-date"}]}))
    assert asyncio.run(only_bad.get_history("rXYZ", "XRP")) == []


@pytest.mark.parametrize("chain,payload", [
    ("ETH", ["unexpected"]),
    ("BTC", {"txs": ["unexpected"]}),
    ("XRP", {"transactions": [None]}),
])
def test_malformed_history_payload_degrades_to_empty(chain, payload):
    service = _service(lambda request: httpx.Response(200, json=payload))
    assert asyncio.run(service.get_history("addr", chain)) == []


def test_bitcoin_history_sides():
    def handler(request):
        return httpx.Response(200, json={"txs": [
            {"hash": "a", "time": 1700000000, "result": 50_000_000, "block_height": 1},
            {"hash": "b", "time": 1700000100, "result": -10_000_000},
        ]})

    rows = asyncio.run(_service(handler).get_history("bc1q", "BTC"))
    assert [(r["id"], r["side"], r["status"], r["amount"]) for r in rows] == [
        ("a", "buy", "Confirmed", 0.5),
        ("b", "sell", "Pending", 0.1),
    ]
    assert rows[0]["timestamp"] == 1700000000000


def test_evm_history_merges_native_and_tokens():
    def handler(request):
        if request.url.params["action"] == "txlist":
            return httpx.Response(200, json={"status": "1", "result": [
                {"hash": "0x1", "timeStamp": "1700000000", "value": "1000000000000000000", "from": "0xABC"},
                {"hash": "0x2", "timeStamp": "1700000500", "value": "0", "from": "0xdef"},
            ]})
        return httpx.Response(200, json={"status": "1", "result": [
            {"hash": "0x3", "timeStamp": "1700000200", "value": "5000000", "tokenDecimal": "6",
             "tokenSymbol": "USDC", "from": "0xdef"},
        ]})

    rows = asyncio.run(_service(handler).get_history("0xabc"))
    assert [(r["id"], r["side"], r["amount"]) for r in rows] == [("0x3-USDC", "buy", 5.0), ("0x1", "sell", 1.0)]


def test_wallet_routes_require_address(client):
    response = client.get("/api/wallet/portfolio")
    assert response.status_code == 400
    assert response.json() == {"error": "Missing address"}
    assert client.get("/api/wallet/history", params={"address": "  "}).status_code == 400


def test_wallet_portfolio_route(client):
    def handler(request):
        return httpx.Response(200, json={"final_balance": 150_000_000})

    app.dependency_overrides[get_wallet_service] = lambda: _service(handler)
    response = client.get("/api/wallet/portfolio", params={"address": "bc1q", "chain": "BTC"})
    assert response.json() == [{"symbol": "BTC", "balance": 1.5}]


def test_dashboard_summary_values_wallet(client):
    def handler(request):
        if request.url.host == "api.coingecko.com":
            return httpx.Response(200, json={"bitcoin": {"usd": 60000, "usd_24h_change": 2.0}})
        return httpx.Response(200, json={"final_balance": 50_000_000})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    dashboard = DashboardService(WalletService(http_client), PriceService(http_client))
    app.dependency_overrides[get_dashboard_service] = lambda: dashboard

    body = client.get("/api/dashboard/summary", params={"address": "bc1q", "chain": "BTC"}).json()
    assert body["totalValueUsd"] == 30000
    assert body["assetCount"] == 1
    assert body["btcPrice"] == 60000
    assert body["addressProvided"] is True
