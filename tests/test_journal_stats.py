import math

import numpy as np
import pytest

from app.services.journal_stats import (
    build_journal_report,
    calculate_day_of_week_stats,
    calculate_holdtime_stats,
    calculate_session_stats,
    calculate_symbol_stats,
    calculate_tag_stats,
    calculate_trading_stats,
    calculate_two_hour_buckets,
    generate_drawdown_curve,
    generate_equity_curve,
    holdtime_category,
    trading_session,
)

MONDAY = 1699833600000  # 2023-11-13 00:00 UTC
HOUR = 60 * 60 * 1000


@pytest.fixture
def trades():
    # deliberately out of order; stats work on time-sorted trades
    return [
        {"symbol": "BTC", "side": "buy", "timestamp": MONDAY + 14 * HOUR, "pnl": 200, "strategyTag": "pullback"},
        {"symbol": "BTC", "side": "buy", "timestamp": MONDAY + 2 * HOUR, "closeTime": MONDAY + 2 * HOUR + HOUR // 2,
         "pnl": 100, "strategyTag": "pullback", "executionQuality": 4},
        {"symbol": "ETH", "side": "sell", "timestamp": MONDAY + 9 * HOUR, "closeTime": MONDAY + 14 * HOUR,
         "pnl": -50, "strategyTag": "breakout", "executionQuality": 2},
        {"symbol": "SOL", "side": "sell", "timestamp": MONDAY + 17 * HOUR, "pnl": 0},
    ]


def test_trading_stats(trades):
    stats = calculate_trading_stats(trades)
    assert stats["totalTrades"] == 4
    assert stats["winningTrades"] == 2
    assert stats["losingTrades"] == 1
    assert stats["breakEvenTrades"] == 1
    assert stats["winRate"] == 0.5
    assert stats["totalPnL"] == 250
    assert stats["grossProfit"] == 300
    assert stats["grossLoss"] == 50
    assert stats["avgWin"] == 150
    assert stats["avgLoss"] == 50
    assert stats["largestWin"] == 200
    assert stats["largestLoss"] == 50
    assert stats["profitFactor"] == 6
    assert stats["expectancy"] == 50
    assert stats["maxDrawdown"] == 50
    assert stats["maxDrawdownPercent"] == pytest.approx(20.0)
    assert stats["avgHoldTime"] == pytest.approx((HOUR // 2 + 5 * HOUR) / 2)
    assert stats["longestTrade"] == 5 * HOUR
    assert stats["shortestTrade"] == HOUR // 2


def test_ratios_use_population_std(trades):
    pnl = np.array([100, -50, 200, 0], dtype=float)
    stats = calculate_trading_stats(trades)
    assert stats["sharpeRatio"] == pytest.approx(pnl.mean() / pnl.std() * math.sqrt(252))
    assert stats["sortinoRatio"] == pytest.approx(62.5 / 50 * math.sqrt(252))


def test_empty_trades_give_zeroes():
    stats = calculate_trading_stats([])
    assert stats["totalTrades"] == 0
    assert all(value == 0 for value in stats.values())
    assert generate_equity_curve([]) == []


def test_single_trade_has_no_ratios():
    stats = calculate_trading_stats([{"timestamp": MONDAY, "pnl": 10}])
    assert stats["sharpeRatio"] == 0
    assert stats["sortinoRatio"] == 0


def test_profit_factor_without_losses_is_null_in_report():
    report = build_journal_report([
        {"timestamp": MONDAY, "pnl": 10},
        {"timestamp": MONDAY + HOUR, "pnl": 5},
    ])
    assert report["stats"]["profitFactor"] is None
    assert report["stats"]["sortinoRatio"] is None
    assert calculate_trading_stats([{"timestamp": MONDAY, "pnl": 10}])["profitFactor"] == math.inf


def test_equity_and_drawdown_curves(trades):
    equity = generate_equity_curve(trades)
    assert [p["cumulativePnL"] for p in equity] == [100, 50, 250, 250]
    assert [p["tradeIndex"] for p in equity] == [0, 1, 2, 3]

    drawdown = generate_drawdown_curve(trades)
    assert [p["drawdown"] for p in drawdown] == [0, 50, 0, 0]
    assert drawdown[1]["drawdownPercent"] == pytest.approx(50 / 10100 * 100)


def test_holdtime_buckets(trades):
    assert holdtime_category(30 * 60 * 1000) == "scalp"
    assert holdtime_category(5 * HOUR) == "dayTrade"
    assert holdtime_category(48 * HOUR) == "swing"
    assert holdtime_category(200 * HOUR) == "position"

    stats = calculate_holdtime_stats(trades)
    assert stats["scalp"]["count"] == 1
    assert stats["dayTrade"]["totalPnL"] == -50
    assert stats["swing"]["count"] == 0


def test_sessions_are_utc(trades):
    assert trading_session(2) == "asia"
    assert trading_session(9) == "london"
    assert trading_session(14) == "overlap"
    assert trading_session(17) == "newYork"
    assert trading_session(22) == "asia"

    sessions = calculate_session_stats(trades)
    assert {name: s["count"] for name, s in sessions.items()} == {
        "asia": 1, "london": 1, "newYork": 1, "overlap": 1,
    }


def test_day_of_week(trades):
    days = calculate_day_of_week_stats(trades)
    assert days["monday"]["count"] == 4
    assert days["monday"]["winRate"] == 0.5
    assert days["sunday"]["count"] == 0


def test_symbol_stats_sorted_by_pnl(trades):
    symbols = calculate_symbol_stats(trades)
    assert [s["symbol"] for s in symbols] == ["BTC", "SOL", "ETH"]
    assert symbols[0]["longCount"] == 2
    assert symbols[2]["shortCount"] == 1


def test_two_hour_buckets(trades):
    buckets = calculate_two_hour_buckets(trades)
    assert len(buckets) == 12
    assert buckets[1] == {"hour": 2, "pnl": 100.0, "count": 1, "wins": 1, "losses": 0}
    assert buckets[4]["losses"] == 1
    assert buckets[7]["pnl"] == 200


def test_tag_stats(trades):
    tags = calculate_tag_stats(trades)
    assert tags["taggedTrades"] == 3
    assert tags["winRateByTag"]["pullback"] == {"wins": 2, "losses": 0, "winRate": 1.0, "totalPnl": 300.0}
    assert tags["avgExecutionQuality"] == 3.0


def test_report_hourly_keys_are_strings(trades):
    report = build_journal_report(trades)
    assert report["hourly"]["2"]["count"] == 1
    assert set(report) >= {"stats", "equityCurve", "drawdownCurve", "sessions", "symbols", "twoHour", "tags"}
