"""
Journal statistics: win/loss, risk ratios, equity and drawdown curves, and
breakdowns by hold time, session, weekday, hour, symbol and strategy tag.

Trades are plain dicts (``pnl``, ``timestamp`` in epoch ms, optional
``closeTime``, ``side``, ``symbol``, ``strategyTag``, ``executionQuality``).
Times are bucketed in UTC.
"""

import math
from typing import Any, Dict, List

import numpy as np
import pandas as pd

ANNUALIZATION = math.sqrt(252)
DEFAULT_INITIAL_CAPITAL = 10000.0

STRATEGY_TAGS = [
    {"id": "pinnacle_rebound", "name": "Pinnacle Rebound", "color": "#22c55e", "description": "Reversal from key swing high/low"},
    {"id": "equilibrium_breaker", "name": "Equilibrium Breaker", "color": "#3b82f6", "description": "Breakout from balance area"},
    {"id": "pullback", "name": "Pullback", "color": "#f59e0b", "description": "Entry on retracement to value"},
    {"id": "volume_breakout", "name": "Volume Breakout", "color": "#8b5cf6", "description": "High volume range expansion"},
    {"id": "trend_continuation", "name": "Trend Continuation", "color": "#06b6d4", "description": "With-trend entry after consolidation"},
    {"id": "fade", "name": "Fade", "color": "#ef4444", "description": "Counter-trend at extremes"},
    {"id": "delta_stall", "name": "Delta Stall", "color": "#ec4899", "description": "Absorption and delta divergence"},
    {"id": "trev_entry", "name": "TRev Entry", "color": "#14b8a6", "description": "T-Size reversal pattern"},
    {"id": "scalp", "name": "Scalp", "color": "#a3a3a3", "description": "Quick in-and-out trade"},
    {"id": "custom", "name": "Custom", "color": "#71717a", "description": "User-defined strategy"},
]
STRATEGY_TAG_IDS = {tag["id"] for tag in STRATEGY_TAGS}

EXECUTION_QUALITY = [
    {"value": 1, "label": "Poor", "color": "#ef4444"},
    {"value": 2, "label": "Below Avg", "color": "#f97316"},
    {"value": 3, "label": "Average", "color": "#f59e0b"},
    {"value": 4, "label": "Good", "color": "#84cc16"},
    {"value": 5, "label": "Excellent", "color": "#22c55e"},
]

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_STATS_FIELDS = [
    "totalTrades", "winningTrades", "losingTrades", "breakEvenTrades", "winRate",
    "totalPnL", "grossProfit", "grossLoss", "avgWin", "avgLoss", "largestWin", "largestLoss",
    "profitFactor", "expectancy", "maxDrawdown", "maxDrawdownPercent", "sharpeRatio", "sortinoRatio",
    "avgHoldTime", "longestTrade", "shortestTrade",
]


def trades_frame(trades: List[Dict[str, Any]]) -> pd.DataFrame:
    """Normalize a list of trade dicts into a time-sorted frame."""
    rows = []
    for trade in trades:
        timestamp = pd.to_numeric(trade.get("timestamp"), errors="coerce")
        close_time = pd.to_numeric(trade.get("closeTime"), errors="coerce")
        pnl = pd.to_numeric(trade.get("pnl"), errors="coerce")
        rows.append({
            "timestamp": 0 if pd.isna(timestamp) else int(timestamp),
            "closeTime": 0 if pd.isna(close_time) else int(close_time),
            "pnl": 0.0 if pd.isna(pnl) else float(pnl),
            "side": trade.get("side"),
            "symbol": trade.get("symbol") or "UNKNOWN",
            "strategyTag": trade.get("strategyTag"),
            "executionQuality": trade.get("executionQuality"),
        })
    df = pd.DataFrame(rows, columns=["timestamp", "closeTime", "pnl", "side", "symbol", "strategyTag", "executionQuality"])
    if df.empty:
        return df
    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    # hold time only when the close time is known and after the open
    df["holdTime"] = np.where((df["closeTime"] > 0) & (df["timestamp"] > 0), df["closeTime"] - df["timestamp"], 0)
    df["opened"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df


def empty_stats() -> Dict[str, float]:
    return {field: 0 for field in _STATS_FIELDS}


def max_drawdown(pnl: pd.Series) -> Dict[str, float]:
    """Peak-to-trough drop of cumulative PnL; the running peak starts at zero."""
    if pnl.empty:
        return {"maxDrawdown": 0.0, "maxDrawdownPercent": 0.0}
    cumulative = pnl.cumsum()
    peak = cumulative.cummax().clip(lower=0)
    drawdown = peak - cumulative
    worst = float(drawdown.max())
    final_peak = float(peak.iloc[-1])
    return {
        "maxDrawdown": worst,
        "maxDrawdownPercent": worst / final_peak * 100 if final_peak > 0 else 0.0,
    }


def sharpe_ratio(returns: pd.Series, risk_free_rate: float = 0.0) -> float:
    if len(returns) < 2:
        return 0.0
    std = float(returns.std(ddof=0))
    if std == 0:
        return 0.0
    return (float(returns.mean()) - risk_free_rate) / std * ANNUALIZATION


def sortino_ratio(returns: pd.Series, target_return: float = 0.0) -> float:
    if len(returns) < 2:
        return 0.0
    mean = float(returns.mean())
    downside = returns[returns < target_return]
    if downside.empty:
        return math.inf if mean > target_return else 0.0
    downside_dev = math.sqrt(float(((downside - target_return) ** 2).mean()))
    if downside_dev == 0:
        return 0.0
    return (mean - target_return) / downside_dev * ANNUALIZATION


def calculate_trading_stats(trades: List[Dict[str, Any]]) -> Dict[str, float]:
    df = trades_frame(trades)
    if df.empty:
        return empty_stats()

    pnl = df["pnl"]
    wins = pnl[pnl > 0]
    losses = pnl[pnl < 0]

    gross_profit = float(wins.sum())
    gross_loss = abs(float(losses.sum()))
    avg_win = gross_profit / len(wins) if len(wins) else 0.0
    avg_loss = gross_loss / len(losses) if len(losses) else 0.0
    win_rate = len(wins) / len(df)

    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = math.inf if gross_profit > 0 else 0.0

    hold_times = df.loc[df["holdTime"] > 0, "holdTime"]

    return {
        "totalTrades": int(len(df)),
        "winningTrades": int(len(wins)),
        "losingTrades": int(len(losses)),
        "breakEvenTrades": int((pnl == 0).sum()),
        "winRate": win_rate,
        "totalPnL": gross_profit - gross_loss,
        "grossProfit": gross_profit,
        "grossLoss": gross_loss,
        "avgWin": avg_win,
        "avgLoss": avg_loss,
        "largestWin": float(wins.max()) if len(wins) else 0.0,
        "largestLoss": abs(float(losses.min())) if len(losses) else 0.0,
        "profitFactor": profit_factor,
        "expectancy": win_rate * avg_win - (1 - win_rate) * avg_loss,
        **max_drawdown(pnl),
        "sharpeRatio": sharpe_ratio(pnl),
        "sortinoRatio": sortino_ratio(pnl),
        "avgHoldTime": float(hold_times.mean()) if len(hold_times) else 0.0,
        "longestTrade": int(hold_times.max()) if len(hold_times) else 0,
        "shortestTrade": int(hold_times.min()) if len(hold_times) else 0,
    }


def generate_equity_curve(trades: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    df = trades_frame(trades)
    if df.empty:
        return []
    cumulative = df["pnl"].cumsum()
    return [
        {"timestamp": int(ts), "cumulativePnL": float(cum), "tradeIndex": int(i)}
        for i, (ts, cum) in enumerate(zip(df["timestamp"], cumulative))
    ]


def generate_drawdown_curve(trades: List[Dict[str, Any]],
                            initial_capital: float = DEFAULT_INITIAL_CAPITAL) -> List[Dict[str, Any]]:
    df = trades_frame(trades)
    if df.empty:
        return []
    equity = initial_capital + df["pnl"].cumsum()
    peak = equity.cummax().clip(lower=initial_capital)
    drawdown = peak - equity
    percent = np.where(peak > 0, drawdown / peak * 100, 0.0)
    return [
        {"timestamp": int(ts), "drawdown": float(dd), "drawdownPercent": float(pct)}
        for ts, dd, pct in zip(df["timestamp"], drawdown, percent)
    ]


def _sub_stats(pnl: pd.Series) -> Dict[str, float]:
    count = int(len(pnl))
    total = float(pnl.sum()) if count else 0.0
    return {
        "count": count,
        "winRate": float((pnl > 0).sum()) / count if count else 0.0,
        "totalPnL": total,
        "avgPnL": total / count if count else 0.0,
    }


def _grouped(df: pd.DataFrame, key: pd.Series, labels) -> Dict[Any, Dict[str, float]]:
    groups = {label: _sub_stats(df["pnl"][key == label]) for label in labels}
    return groups


def holdtime_category(hold_time_ms: float) -> str:
    hours = hold_time_ms / (1000 * 60 * 60)
    if hours < 1:
        return "scalp"
    if hours < 24:
        return "dayTrade"
    if hours < 168:
        return "swing"
    return "position"


def trading_session(utc_hour: int) -> str:
    if 13 <= utc_hour < 16:
        return "overlap"
    if 0 <= utc_hour < 8:
        return "asia"
    if 8 <= utc_hour < 16:
        return "london"
    if 16 <= utc_hour < 21:
        return "newYork"
    return "asia"  # off-hours


def calculate_holdtime_stats(trades: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    labels = ["scalp", "dayTrade", "swing", "position"]
    df = trades_frame(trades)
    if df.empty:
        return {label: _sub_stats(pd.Series(dtype=float)) for label in labels}
    df = df[df["holdTime"] > 0]
    return _grouped(df, df["holdTime"].map(holdtime_category), labels)


def calculate_session_stats(trades: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    labels = ["asia", "london", "newYork", "overlap"]
    df = trades_frame(trades)
    if df.empty:
        return {label: _sub_stats(pd.Series(dtype=float)) for label in labels}
    return _grouped(df, df["opened"].dt.hour.map(trading_session), labels)


def calculate_day_of_week_stats(trades: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    df = trades_frame(trades)
    if df.empty:
        return {day: _sub_stats(pd.Series(dtype=float)) for day in WEEKDAYS}
    day_names = df["opened"].dt.dayofweek.map(lambda i: WEEKDAYS[i])
    return _grouped(df, day_names, WEEKDAYS)


def calculate_hourly_stats(trades: List[Dict[str, Any]]) -> Dict[int, Dict[str, float]]:
    df = trades_frame(trades)
    if df.empty:
        return {hour: _sub_stats(pd.Series(dtype=float)) for hour in range(24)}
    return _grouped(df, df["opened"].dt.hour, range(24))


def calculate_symbol_stats(trades: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    df = trades_frame(trades)
    if df.empty:
        return []
    result = []
    for symbol, group in df.groupby("symbol", sort=False):
        result.append({
            "symbol": symbol,
            **_sub_stats(group["pnl"]),
            "longCount": int((group["side"] == "buy").sum()),
            "shortCount": int((group["side"] == "sell").sum()),
        })
    result.sort(key=lambda s: s["totalPnL"], reverse=True)
    return result


def calculate_tag_stats(trades: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Win rate per strategy tag and average execution quality of annotated trades."""
    df = trades_frame(trades)
    if df.empty:
        return {"totalTrades": 0, "taggedTrades": 0, "winRateByTag": {}, "avgExecutionQuality": 0.0}

    tagged = df[df["strategyTag"].notna() & (df["strategyTag"] != "")]
    by_tag = {}
    for tag, group in tagged.groupby("strategyTag", sort=False):
        wins = int((group["pnl"] > 0).sum())
        losses = int((group["pnl"] < 0).sum())
        by_tag[tag] = {
            "wins": wins,
            "losses": losses,
            "winRate": wins / len(group) if len(group) else 0.0,
            "totalPnl": float(group["pnl"].sum()),
        }

    quality = pd.to_numeric(df["executionQuality"], errors="coerce").dropna()
    return {
        "totalTrades": int(len(df)),
        "taggedTrades": int(len(tagged)),
        "winRateByTag": by_tag,
        "avgExecutionQuality": float(quality.mean()) if len(quality) else 0.0,
    }


def json_safe(value: Any) -> Any:
    """Infinite ratios are not valid JSON; render them as ``None``."""
    if isinstance(value, float) and (math.isinf(value) or math.isnan(value)):
        return None
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [json_safe(v) for v in value]
    return value


def build_journal_report(trades: List[Dict[str, Any]],
                         initial_capital: float = DEFAULT_INITIAL_CAPITAL) -> Dict[str, Any]:
    return json_safe({
        "stats": calculate_trading_stats(trades),
        "equityCurve": generate_equity_curve(trades),
        "drawdownCurve": generate_drawdown_curve(trades, initial_capital),
        "holdtime": calculate_holdtime_stats(trades),
        "sessions": calculate_session_stats(trades),
        "dayOfWeek": calculate_day_of_week_stats(trades),
        "hourly": {str(h): s for h, s in calculate_hourly_stats(trades).items()},
        "symbols": calculate_symbol_stats(trades),
        "twoHour": calculate_two_hour_buckets(trades),
        "tags": calculate_tag_stats(trades),
    })


def calculate_two_hour_buckets(trades: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Twelve UTC two-hour buckets; trades without a timestamp are ignored."""
    buckets = [{"hour": i * 2, "pnl": 0.0, "count": 0, "wins": 0, "losses": 0} for i in range(12)]
    df = trades_frame(trades)
    if df.empty:
        return buckets
    df = df[df["timestamp"] > 0]
    for index, group in df.groupby(df["opened"].dt.hour // 2):
        bucket = buckets[int(index)]
        bucket["pnl"] = float(group["pnl"].sum())
        bucket["count"] = int(len(group))
        bucket["wins"] = int((group["pnl"] > 0).sum())
        bucket["losses"] = int((group["pnl"] < 0).sum())
    return buckets
