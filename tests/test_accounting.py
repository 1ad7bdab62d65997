import pytest

from app.services.accounting_service import (
    FUNDING,
    INTERNAL_MOVE_IN,
    TRADE_BUY,
    TRADE_SELL,
    TRANSFER_IN,
    TRANSFER_OUT,
    build_ledger_events,
    compute_cost_basis_snapshot,
    cost_basis_report,
    transfer_kind,
)

TRANSACTIONS = [
    {"id": "s1", "symbol": "BTC/USDT", "side": "sell", "price": 300, "amount": 1.5, "timestamp": 3000},
    {"id": "b1", "symbol": "BTCUSDT", "side": "buy", "price": 100, "amount": 1, "timestamp": 1000, "feeUsd": 1},
    {"id": "b2", "symbol": "BTC", "side": "long", "price": 200, "amount": 1, "timestamp": 2000},
    {"id": "other", "symbol": "ETH", "side": "buy", "price": 10, "amount": 1, "timestamp": 1500},
    {"id": "undated", "symbol": "BTC", "side": "buy", "price": 10, "amount": 1, "timestamp": 0},
    {"id": "fund", "symbol": "BTC", "side": "funding", "amount": 0.001, "timestamp": 2500},
]


def test_transfer_kind():
    assert transfer_kind({"type": "Deposit"}) == TRANSFER_IN
    assert transfer_kind({"type": "Withdraw"}) == TRANSFER_OUT
    assert transfer_kind({"type": "Deposit", "isInternalTransfer": True}) == INTERNAL_MOVE_IN


def test_ledger_filters_and_orders_events():
    events = build_ledger_events("BTC", TRANSACTIONS)
    assert [e.id for e in events] == ["b1", "b2", "fund", "s1"]
    assert [e.kind for e in events] == [TRADE_BUY, TRADE_BUY, FUNDING, TRADE_SELL]
    assert events[0].fee_usd == 1


def test_ledger_time_range():
    events = build_ledger_events("BTC", TRANSACTIONS, from_ms=1500, to_ms=2600)
    assert [e.id for e in events] == ["b2", "fund"]


def test_fifo_snapshot():
    events = build_ledger_events("BTC", TRANSACTIONS)
    snapshot = compute_cost_basis_snapshot(events, current_price=400, current_balance=0.5)

    assert snapshot["realizedPnl"] == pytest.approx(450 - 101 - 100)
    assert snapshot["avgBuyPriceCurrent"] == pytest.approx(200)
    assert snapshot["avgBuyPriceLifetime"] == pytest.approx(150.5)
    assert snapshot["avgSellPrice"] == pytest.approx(300)
    assert snapshot["costBasis"] == pytest.approx(100)
    assert snapshot["unrealizedPnl"] == pytest.approx(100)
    assert snapshot["totalFeesUsd"] == 1
    assert snapshot["basisConfidence"] == "exact"
    assert snapshot["netPosition"] == pytest.approx(0.5)
    assert (snapshot["buyCount"], snapshot["sellCount"]) == (2, 1)
    assert (snapshot["firstBuyDate"], snapshot["lastBuyDate"], snapshot["lastSellDate"]) == (1000, 2000, 3000)


def test_deposits_use_basis_price_and_are_estimated():
    transfers = [
        {"id": "d1", "asset": "ETH", "type": "Deposit", "amount": 2, "timestamp": 100},
        {"id": "w1", "asset": "ETH", "type": "Withdraw", "amount": 0.5, "timestamp": 200, "feeUsd": 2},
    ]
    events = build_ledger_events("ETH", [], transfers, deposit_basis_price=1000)
    assert [e.kind for e in events] == [TRANSFER_IN, TRANSFER_OUT]
    assert events[0].estimated_basis

    snapshot = compute_cost_basis_snapshot(events, current_price=1500, current_balance=1.5)
    assert snapshot["basisConfidence"] == "estimated"
    assert snapshot["costBasis"] == pytest.approx(1500)
    assert snapshot["unrealizedPnl"] == pytest.approx(750)
    assert snapshot["realizedPnl"] == 0
    assert snapshot["totalFeesUsd"] == 2


def test_deposit_without_basis_price_adds_no_lot():
    events = build_ledger_events("ETH", [], [{"id": "d1", "asset": "ETH", "type": "Deposit", "amount": 1, "timestamp": 5}])
    snapshot = compute_cost_basis_snapshot(events, current_price=1500, current_balance=1)
    assert snapshot["costBasis"] == 0
    assert snapshot["buyCount"] == 0


def test_report_serializes_events():
    report = cost_basis_report("btc", TRANSACTIONS, [], current_price=400, current_balance=0.5)
    assert report["symbol"] == "BTC"
    assert report["events"][0]["feeUsd"] == 1
    assert report["events"][0]["kind"] == TRADE_BUY
    assert "estimatedBasis" in report["events"][0]
