"""
Symbol, trade, position and order normalization.

Every exchange and chain reports instruments differently (``BTC/USDT:USDT``,
``BTCUSDT``, ``WBTC``, ``@107``...). The journal, balances and analytics all
key on the bare base asset returned by :func:`normalize_symbol`.
"""

import re
import time
from typing import Any, Dict, Iterable, List, Optional

_PAIR_SUFFIX_RE = re.compile(r"[:/-](USDT|USDC|BTC|ETH|BNB|EUR|USD|DAI)$")
_MARKET_SUFFIX_RE = re.compile(r"-(SPOT|PERP|FUTURES)$")
_TRAILING_SEPARATORS_RE = re.compile(r"[/:_-]+$")

SYMBOL_ALIASES = {
    "WETH": "ETH",
    "WBTC": "BTC",
    "WBNB": "BNB",
    "WAXE": "AXE",
    "WFTM": "FTM",
    "WAVAX": "AVAX",
    "WMATIC": "MATIC",
    "WPOL": "POL",
    "WCRO": "CRO",
    "WSOL": "SOL",
    "USDC.E": "USDC",
    "USDC.P": "USDC",
    "USDT.E": "USDT",
    "USDT.P": "USDT",
    "BTC.B": "BTC",
    "MANTLE": "MNT",
    # legacy alias found in old journal rows
    "NIGGO": "MIGGO",
    "GAS": "GAS",
    "LUNA": "LUNC",
    "WIF": "WIF",
    "UBTC": "BTC",
    "UETH": "ETH",
    "USOL": "SOL",
}

_DERIVATIVE_SYMBOL_RE = re.compile(r"PERP|SWAP|FUTURES|CONTRACT|:USDT|:USD|USDTM|UMCBL|DMCBL", re.IGNORECASE)
_DERIVATIVE_HINT_RE = re.compile(r"perp|swap|future|futures|linear|inverse|contract|derivative", re.IGNORECASE)
_FUTURE_HINT_RE = re.compile(r"future|futures|contract", re.IGNORECASE)


def normalize_symbol(symbol: Any, chain: Optional[str] = None) -> str:
    """Reduce any exchange or chain symbol to its base asset ticker."""
    if not symbol or not isinstance(symbol, str):
        return ""

    s = symbol.upper().strip()

    if "::" in s:
        return normalize_symbol(s.split("::")[-1], chain)
    if ":" in s:
        return normalize_symbol(s.split(":")[0], chain)

    s = _PAIR_SUFFIX_RE.sub("", s)
    s = _MARKET_SUFFIX_RE.sub("", s)

    # only the first occurrence is removed, e.g. USDTUSDT -> USDT
    if s.endswith("USDT") and len(s) > 4:
        s = s.replace("USDT", "", 1)
    if s.endswith("USDC") and len(s) > 4:
        s = s.replace("USDC", "", 1)
    if s.endswith("USD") and len(s) > 3:
        s = s.replace("USD", "", 1)

    if s in SYMBOL_ALIASES:
        return SYMBOL_ALIASES[s]
    return _TRAILING_SEPARATORS_RE.sub("", s)


def quote_asset(raw_symbol: Any, default: str = "USDT") -> str:
    """``ETH/USDC`` -> ``USDC``; ``BTC/USDT:USDT`` -> ``USDT``."""
    if not isinstance(raw_symbol, str) or "/" not in raw_symbol:
        return default
    quote = raw_symbol.split("/")[1].split(":")[0]
    return quote or default


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number


def now_ms() -> int:
    return int(time.time() * 1000)


def classify_trade(item: Dict[str, Any], exchange: str) -> Dict[str, str]:
    """Tell derivatives (perp/future) apart from spot fills."""
    info = item.get("info") or {}
    raw_symbol = str(item.get("symbol") or info.get("symbol") or "").upper()
    hint = " ".join(
        str(v).lower()
        for v in (
            item.get("marketType"),
            item.get("category"),
            item.get("contractType"),
            item.get("type"),
            info.get("category"),
            info.get("marketType"),
            info.get("instType"),
        )
        if v
    )

    is_derivative = (
        exchange == "hyperliquid"
        or bool(_DERIVATIVE_SYMBOL_RE.search(raw_symbol))
        or bool(_DERIVATIVE_HINT_RE.search(hint))
        or item.get("leverage") is not None
        or info.get("positionIdx") is not None
    )

    if is_derivative:
        market_type = "future" if _FUTURE_HINT_RE.search(hint) else "perp"
        return {"instrumentType": "future", "marketType": market_type}
    return {"instrumentType": "crypto", "marketType": "spot"}


def normalize_cex_trade(item: Dict[str, Any], exchange: str, strict: bool = True) -> Optional[Dict[str, Any]]:
    """
    Map a ccxt trade to the journal's transaction shape.

    With ``strict`` rows without a symbol or with a non-positive price/amount
    are dropped (``None``).
    """
    info = item.get("info") if isinstance(item.get("info"), dict) else {}
    raw_symbol = str(item.get("symbol") or info.get("symbol") or "")
    symbol = normalize_symbol(raw_symbol)
    side = "sell" if str(item.get("side") or "").lower() == "sell" else "buy"
    price = to_float(item.get("price"))
    amount = to_float(item.get("amount") or info.get("execQty") or info.get("qty"))
    timestamp = int(to_float(item.get("timestamp"), now_ms()) or now_ms())

    if strict and (not symbol or price <= 0 or amount <= 0):
        return None

    fee = item.get("fee") or {}
    fee_cost = fee.get("cost")
    if not isinstance(fee_cost, (int, float)):
        fee_cost = price * amount * 0.001
    fee_currency = str(fee.get("currency") or quote_asset(raw_symbol))

    pnl = 0.0
    for key in ("pnl", "closedPnl", "execPnl", "cumRealisedPnl"):
        if info.get(key) is not None:
            pnl = to_float(info.get(key))
            break

    trade_id = item.get("id") or f"{exchange}-{raw_symbol or symbol}-{timestamp}-{side}-{amount}-{price}"

    return {
        **classify_trade(item, exchange),
        "id": str(trade_id),
        "symbol": symbol,
        "rawSymbol": raw_symbol,
        "side": side,
        "type": "Buy" if side == "buy" else "Sell",
        "price": price,
        "amount": amount,
        "timestamp": timestamp,
        "exchange": exchange,
        "status": "closed",
        "pnl": pnl,
        "fee": float(fee_cost or 0),
        "feeCurrency": fee_currency,
        "feeAsset": fee_currency,
        "feeUsd": float(fee_cost or 0),
        "quoteAsset": quote_asset(raw_symbol),
        "takerOrMaker": str(item.get("takerOrMaker") or "taker"),
        "orderId": item.get("order"),
        "orderType": item.get("type"),
        "clientOrderId": item.get("clientOrderId") or info.get("orderLinkId") or info.get("orderId"),
        "cost": item.get("cost"),
        "datetime": item.get("datetime"),
        "txHash": str(info.get("txId") or info.get("tradeId") or item.get("id") or f"{exchange}-{timestamp}"),
        "info": info,
        "sourceType": "cex",
    }


def trade_key(trade: Dict[str, Any]) -> str:
    return str(
        trade.get("id")
        or f"{trade.get('exchange')}-{trade.get('symbol')}-{trade.get('timestamp')}-{trade.get('side')}-{trade.get('amount')}"
    )


def dedupe_trades(trades: Iterable[Dict[str, Any]], newest_first: bool = True) -> List[Dict[str, Any]]:
    """Keep the last trade per id, newest first."""
    unique: Dict[str, Dict[str, Any]] = {}
    for trade in trades:
        unique[trade_key(trade)] = trade
    result = list(unique.values())
    if newest_first:
        result.sort(key=lambda t: to_float(t.get("timestamp")), reverse=True)
    return result


def position_contracts(position: Dict[str, Any]) -> Any:
    contracts = position.get("contracts")
    return contracts if contracts is not None else position.get("amount")


def normalize_position(position: Dict[str, Any], exchange_id: str) -> Dict[str, Any]:
    contracts = to_float(position_contracts(position))
    contract_size = to_float(position.get("contractSize"), 1.0) or 1.0
    size = abs(contracts * (contract_size if contract_size > 0 else 1))
    side = "long" if str(position.get("side") or "").lower() == "long" else "short"

    try:
        leverage = int(to_float(position.get("leverage"), 1.0)) or 1
    except (TypeError, ValueError, OverflowError):
        leverage = 1

    entry = position.get("entryPrice")
    mark = position.get("markPrice")
    pnl = position.get("unrealizedPnl")
    return {
        "symbol": normalize_symbol(position.get("symbol")),
        "rawSymbol": position.get("symbol"),
        "size": size or abs(contracts),
        "entryPrice": to_float(entry if entry is not None else position.get("average")),
        "markPrice": to_float(mark if mark is not None else position.get("lastPrice")),
        "unrealizedProfit": to_float(pnl if pnl is not None else position.get("unrealizedProfit")),
        "unrealizedProfitPercent": to_float(position.get("percentage")),
        "leverage": leverage,
        "liquidationPrice": to_float(position.get("liquidationPrice")),
        "side": side,
        "exchange": exchange_id,
    }


def position_payload(position: Dict[str, Any]) -> Dict[str, Any]:
    """Shape consumed by the positions table; short size is signed negative."""
    return {
        "symbol": position["symbol"],
        "rawSymbol": position["rawSymbol"],
        "positionAmt": -position["size"] if position["side"] == "short" else position["size"],
        "size": position["size"],
        "entryPrice": position["entryPrice"],
        "markPrice": position["markPrice"],
        "unrealizedProfit": position["unrealizedProfit"],
        "unrealizedProfitPercent": position["unrealizedProfitPercent"],
        "leverage": position["leverage"],
        "liquidationPrice": position["liquidationPrice"],
        "side": position["side"],
    }


def normalize_order(order: Dict[str, Any], exchange_id: str) -> Dict[str, Any]:
    return {
        "id": order.get("id"),
        "symbol": normalize_symbol(order.get("symbol")),
        "rawSymbol": order.get("symbol"),
        "type": order.get("type"),
        "side": order.get("side"),
        "price": order.get("price"),
        "amount": order.get("amount"),
        "filled": order.get("filled"),
        "remaining": order.get("remaining"),
        "status": order.get("status"),
        "timestamp": order.get("timestamp"),
        "datetime": order.get("datetime"),
        "exchange": exchange_id,
    }


def clamp_int(value: Any, minimum: int, maximum: int, fallback: int) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if number != number or number in (float("inf"), float("-inf")):
        return fallback
    return max(minimum, min(maximum, int(number // 1)))
