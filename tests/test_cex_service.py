import asyncio
from unittest.mock import MagicMock

import pytest

from app.core.errors import ApiError
from app.services import cex_service as cex_module
from app.services.bybit_client import BybitRequestError
from app.services.cex_service import CexService, active_balance_pairs, collect_target_pairs


@pytest.fixture
def exchange(monkeypatch):
    mock_exchange = MagicMock()
    mock_exchange.has = {"fetchPositions": True}
    monkeypatch.setattr(cex_module, "get_exchange_instance", lambda *args, **kwargs: mock_exchange)
    return mock_exchange


def test_active_balance_pairs_skips_stables_and_zero():
    pairs = active_balance_pairs({"total": {"USDT": 100, "SOL": 2, "DOGE": 0}})
    assert pairs == ["SOL/USDT", "SOL/USDT:USDT"]


def test_collect_target_pairs_appends_seed_last():
    client = MagicMock()
    client.fetch_balance.return_value = {"total": {"SOL": 1}}
    client.fetch_open_orders.return_value = [{"symbol": "ARB/USDT"}]
    pairs = collect_target_pairs(client, ["BTC/USDT", "SOL/USDT"], append_seed_last=True)
    assert pairs == ["SOL/USDT", "SOL/USDT:USDT", "ARB/USDT", "BTC/USDT"]


def test_missing_credentials_rejected():
    with pytest.raises(ApiError) as exc:
        CexService().get_positions("binance", "", "secret")
    assert exc.value.status_code == 400


def test_unknown_exchange_rejected():
    with pytest.raises(ApiError) as exc:
        CexService().get_open_orders("not-an-exchange", "key", "secret")
    assert exc.value.status_code == 400
    assert exc.value.message == "Invalid exchange"


def test_positions_skip_zero_size(exchange):
    exchange.fetch_positions.return_value = [
        {"symbol": "BTC/USDT:USDT", "contracts": 0.5, "side": "long", "entryPrice": 60000, "markPrice": 61000},
        {"symbol": "ETH/USDT:USDT", "contracts": 0, "side": "long"},
    ]
    result = CexService().get_positions("binance", "key", "secret")
    assert [p["symbol"] for p in result["positions"]] == ["BTC"]
    assert result["positions"][0]["positionAmt"] == 0.5


def test_bybit_positions_deduplicated_across_account_types(exchange):
    exchange.fetch_positions.return_value = [
        {"symbol": "SOL/USDT:USDT", "contracts": 3, "side": "short"},
    ]
    result = CexService().get_positions("bybit", "key", "secret")
    assert len(result["positions"]) == 1
    assert result["positions"][0]["positionAmt"] == -3


def test_bybit_open_orders_deduplicated_by_id(exchange):
    exchange.fetch_open_orders.return_value = [{"id": "1", "symbol": "BTC/USDT", "side": "buy"}]
    result = CexService().get_open_orders("bybit", "key", "secret")
    assert len(result["orders"]) == 1
    assert result["orders"][0]["exchange"] == "bybit"
    assert result["orders"][0]["symbol"] == "BTC"


def test_place_order_uses_perpetual_market(monkeypatch):
    created = MagicMock()
    created.create_order.return_value = {"id": "order-1"}
    factory = MagicMock(return_value=created)
    monkeypatch.setattr(cex_module.ccxt, "binanceusdm", factory)

    result = CexService().place_order("binance", "key", "secret", "BTCUSDT", "BUY", "0.01",
                                      order_type="limit", price="50000")

    assert result == {"success": True, "orderId": "order-1", "order": {"id": "order-1"}}
    created.create_order.assert_called_once_with("BTC/USDT:USDT", "limit", "buy", 0.01, 50000.0)


def test_place_order_market_ignores_price(monkeypatch):
    created = MagicMock()
    created.create_order.return_value = {"id": "order-2"}
    monkeypatch.setattr(cex_module.ccxt, "okx", MagicMock(return_value=created))

    CexService().place_order("okx", "key", "secret", "ETH", "sell", 1, order_type="stop_market", price=10)
    created.create_order.assert_called_once_with("ETH/USDT:USDT", "market", "sell", 1.0, None)


def test_place_order_rejects_other_exchanges():
    with pytest.raises(ApiError) as exc:
        CexService().place_order("kraken", "key", "secret", "BTC", "buy", 1)
    assert exc.value.status_code == 400


def test_trades_fall_back_to_symbol_queries(exchange):
    account_trade = {"id": "t1", "symbol": "BTC/USDT", "side": "buy", "price": 100, "amount": 1, "timestamp": 1}
    pepe_trade = {"id": "t2", "symbol": "PEPE/USDT", "side": "sell", "price": 0.001, "amount": 1000, "timestamp": 2}

    def fetch_my_trades(symbol, since, limit):
        if symbol is None:
            return [account_trade]
        if symbol == "PEPE/USDT":
            return [pepe_trade, account_trade]
        return []

    exchange.fetch_my_trades.side_effect = fetch_my_trades
    exchange.fetch_balance.return_value = {"total": {"PEPE": 1000}}
    exchange.fetch_open_orders.return_value = []

    result = CexService().get_trades("binance", "key", "secret")
    diagnostics = result["diagnostics"]
    assert diagnostics["accountWideCount"] == 1
    assert diagnostics["symbolFallbackCount"] == 2
    assert diagnostics["dedupedCount"] == 2
    assert {t["id"] for t in result["trades"]} == {"t1", "t2"}


def test_transfers_sorted_newest_first(exchange):
    exchange.fetch_deposits.return_value = [
        {"id": "d1", "currency": "USDT", "amount": 100, "timestamp": 1000, "address": "0xabc"},
    ]
    exchange.fetch_withdrawals.return_value = [
        {"id": "w1", "currency": "BTC", "amount": 0.1, "timestamp": 2000, "fee": {"cost": 0.0001, "currency": "BTC"}},
    ]
    transfers = CexService().get_transfers("binance", "key", "secret")["transfers"]
    assert [t["id"] for t in transfers] == ["w1", "d1"]
    assert transfers[0]["type"] == "Withdraw"
    assert transfers[0]["to"] == "External"
    assert transfers[0]["feeUsd"] == 0.0001
    assert transfers[1]["from"] == "0xabc"
    assert transfers[1]["to"] == "binance"


class FailingBybit:
    def __init__(self, api_key, secret):
        pass

    async def wallet_balance(self, account_type):
        if account_type == "SPOT":
            raise BybitRequestError("Bybit 10003: API key is invalid.")
        raise BybitRequestError("Bybit request failed")


class UnifiedOnlyBybit(FailingBybit):
    async def wallet_balance(self, account_type):
        if account_type == "UNIFIED":
            return {"result": {"list": [{"coin": [{"coin": "USDT", "walletBalance": "42"}]}]}}
        raise BybitRequestError("Bybit 10001: account type not supported")


def test_bybit_balance_reports_most_relevant_error():
    with pytest.raises(ApiError) as exc:
        asyncio.run(CexService(bybit_client_factory=FailingBybit).get_balance("bybit", "key", "secret"))
    assert exc.value.status_code == 502
    assert exc.value.message == "SPOT: Bybit 10003: API key is invalid."
    assert exc.value.extra["diagnostics"]["attemptedAccountTypes"] == ["UNIFIED", "SPOT", "FUND"]


def test_bybit_balance_merges_accounts_despite_partial_errors():
    result = asyncio.run(CexService(bybit_client_factory=UnifiedOnlyBybit).get_balance("bybit", "key", "secret"))
    assert result["total"] == {"USDT": 42.0}
    assert len(result["diagnostics"]["errors"]) == 2


def test_bybit_balance_single_account_type():
    result = asyncio.run(
        CexService(bybit_client_factory=UnifiedOnlyBybit).get_balance("bybit", "key", "secret", "unified")
    )
    assert result["diagnostics"]["accountTypeResolved"] == "swap"
    assert result["total"] == {"USDT": 42.0}
