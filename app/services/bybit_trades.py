import time
from typing import Any, Dict, List, Optional

from loguru import logger

from app.services.exchange_manager import get_exchange_instance
from app.services.normalization import clamp_int, dedupe_trades, normalize_cex_trade, now_ms, to_float

DEFAULT_BYBIT_SYMBOLS = [
    "BTC/USDT",
    "ETH/USDT",
    "SOL/USDT",
    "BNB/USDT",
    "XRP/USDT",
    "DOGE/USDT",
    "SUI/USDT",
    "TON/USDT",
]

EXECUTION_CATEGORIES = ["spot", "linear", "inverse"]
MS_PER_DAY = 24 * 60 * 60 * 1000
WINDOW_DAYS = 7  # widest startTime/endTime span the execution endpoint accepts
PAGE_SIZE = 100
MAX_DAYS_BACK = 60
MAX_PAGES_PER_WINDOW = 10


def bybit_client(api_key: str, secret: str, mode: str = "default"):
    default_type = "swap" if mode in ("default", "unified") else mode
    return get_exchange_instance("bybit", api_key, secret, {"options": {"defaultType": default_type}})


def map_execution_row(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Turn a V5 execution-list row into a ccxt-like trade."""
    raw_symbol = str(row.get("symbol") or "").upper()
    amount = to_float(row.get("execQty") or row.get("qty"))
    price = to_float(row.get("execPrice") or row.get("price"))
    if not raw_symbol or amount <= 0 or price <= 0:
        return None

    if raw_symbol.endswith("USDT"):
        pair = f"{raw_symbol.replace('USDT', '', 1)}/USDT"
    elif raw_symbol.endswith("USDC"):
        pair = f"{raw_symbol.replace('USDC', '', 1)}/USDC"
    else:
        pair = raw_symbol

    exec_time = row.get("execTime") or row.get("tradeTime")
    fee_cost = to_float(row.get("execFee"))
    return {
        "id": str(row.get("execId") or row.get("orderId") or f"{raw_symbol}-{exec_time or now_ms()}"),
        "symbol": pair,
        "side": "sell" if str(row.get("side") or "").lower() == "sell" else "buy",
        "price": price,
        "amount": amount,
        "timestamp": int(to_float(exec_time, now_ms())),
        "cost": amount * price,
        "fee": {
            "cost": fee_cost or None,
            "currency": str(row.get("feeCurrency") or "USDT"),
        },
        "takerOrMaker": "maker" if str(row.get("isMaker") or "").lower() == "true" else "taker",
        "order": row.get("orderId"),
        "type": row.get("orderType") or "limit",
        "info": row,
    }


def fetch_bybit_trades(
    api_key: str,
    secret: str,
    symbols: Optional[List[str]] = None,
    days_back: int = 30,
    page_limit_per_window: int = 10,
    page_delay: float = 0.05,
) -> Dict[str, Any]:
    """
    Walk the V5 execution list backwards in 7-day windows for every category.

    ``symbols`` only feeds the diagnostics; the execution list is account-wide.
    Returns ``{"trades": [...], "diagnostics": {...}}`` with trades newest first.
    """
    symbols = symbols or DEFAULT_BYBIT_SYMBOLS
    days_back = clamp_int(days_back, 1, MAX_DAYS_BACK, 30)
    page_limit_per_window = clamp_int(page_limit_per_window, 1, MAX_PAGES_PER_WINDOW, 10)
    diagnostics = {
        "exchange": "bybit",
        "accountWideModesTried": [],
        "executionCategoriesTried": [],
        "symbolModesTried": [],
        "symbolsConsidered": len(symbols),
        "errors": [],
        "accountWideCount": 0,
        "executionCount": 0,
        "symbolFallbackCount": 0,
        "dedupedCount": 0,
        "executionFallbackUsed": True,
        "symbolFallbackUsed": False,
    }

    raw_trades: List[Dict[str, Any]] = []
    windows = -(-days_back // WINDOW_DAYS)

    for category in EXECUTION_CATEGORIES:
        diagnostics["executionCategoriesTried"].append(category)
        try:
            client = bybit_client(api_key, secret, "spot" if category == "spot" else "unified")
            fetch_page = getattr(client, "private_get_v5_execution_list", None)
            if fetch_page is None:
                diagnostics["errors"].append(f"execution({category}): endpoint unavailable")
                continue

            end_time = now_ms()
            start_time = end_time - WINDOW_DAYS * MS_PER_DAY
            for _ in range(windows):
                cursor = None
                page_count = 0
                while page_count < page_limit_per_window:
                    request = {
                        "category": category,
                        "limit": PAGE_SIZE,
                        "endTime": str(end_time),
                        "startTime": str(start_time),
                    }
                    if cursor:
                        request["cursor"] = cursor

                    raw = fetch_page(request) or {}
                    result = raw.get("result") or {}
                    rows = result.get("list")
                    if isinstance(rows, list):
                        for row in rows:
                            mapped = map_execution_row(row)
                            if mapped:
                                raw_trades.append(mapped)
                                diagnostics["executionCount"] += 1

                    cursor = result.get("nextPageCursor")
                    if not cursor or not rows or len(rows) < PAGE_SIZE:
                        break
                    page_count += 1
                    if page_delay:
                        time.sleep(page_delay)

                end_time = start_time - 1
                start_time = end_time - WINDOW_DAYS * MS_PER_DAY
        except Exception as e:
            logger.warning(f"Bybit execution fetch failed for {category}: {e}")
            diagnostics["errors"].append(f"execution({category}): {e}")

    normalized = [t for t in (normalize_cex_trade(raw, "bybit") for raw in raw_trades) if t]
    deduped = dedupe_trades(normalized)
    diagnostics["dedupedCount"] = len(deduped)
    logger.info(f"Bybit execution fetch: {diagnostics['executionCount']} rows, {len(deduped)} unique trades")
    return {"trades": deduped, "diagnostics": diagnostics}
