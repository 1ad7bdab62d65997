from typing import Any, Dict, List, Optional

from loguru import logger
from starlette.concurrency import run_in_threadpool

from app.services.bybit_trades import fetch_bybit_trades
from app.services.cex_service import collect_target_pairs
from app.services.exchange_manager import get_exchange_instance
from app.services.hyperliquid_service import HyperliquidService
from app.services.normalization import clamp_int, dedupe_trades, normalize_symbol, now_ms, to_float

BINANCE_FALLBACK_SYMBOLS = ["BTC/USDT", "ETH/USDT", "SOL/USDT", "BNB/USDT", "XRP/USDT", "SUI/USDT", "DOGE/USDT"]
BYBIT_SEED_SYMBOLS = ["BTC/USDT", "ETH/USDT", "SOL/USDT", "XRP/USDT", "DOGE/USDT", "SUI/USDT", "BNB/USDT", "TON/USDT"]
MAX_DIAGNOSTIC_ERRORS = 8


def resolve_sync_options(options: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """Realtime syncs look back less far and page less than manual ones."""
    options = options if isinstance(options, dict) else {}
    realtime = options.get("mode") == "realtime"
    return {
        "bybitDaysBack": clamp_int(options.get("bybitDaysBack"), 1, 60, 7 if realtime else 30),
        "bybitSymbolsLimit": clamp_int(options.get("bybitSymbolsLimit"), 5, 80, 20 if realtime else 60),
        "bybitPageLimitPerWindow": clamp_int(options.get("bybitPageLimitPerWindow"), 1, 10, 3 if realtime else 10),
    }


def binance_trade(trade: Dict[str, Any]) -> Dict[str, Any]:
    trade_id = trade.get("id") if trade.get("id") is not None else f"{trade.get('symbol')}-{trade.get('timestamp')}"
    return {
        "id": f"binance-{trade_id}",
        "symbol": normalize_symbol(trade.get("symbol")),
        "rawSymbol": trade.get("symbol"),
        "side": trade.get("side"),
        "price": trade.get("price"),
        "amount": trade.get("amount"),
        "timestamp": trade.get("timestamp"),
        "exchange": "Binance",
        "pnl": 0,
        "fee": to_float((trade.get("fee") or {}).get("cost")),
        "status": "closed",
        "sourceType": "cex",
    }


def fetch_binance_history(api_key: str, secret: str) -> Dict[str, Any]:
    """Account-wide recent trades, falling back to a handful of majors."""
    binance = get_exchange_instance("binance", api_key, secret)
    errors: List[str] = []
    try:
        recent = binance.fetch_my_trades(None, None, 100) or []
        if recent:
            return {"trades": [binance_trade(t) for t in recent], "errors": errors}
    except Exception as e:
        logger.info(f"Binance account-wide trades unavailable, trying per symbol: {e}")
        errors.append(f"account-wide: {e}")

    trades: List[Dict[str, Any]] = []
    for symbol in BINANCE_FALLBACK_SYMBOLS:
        try:
            trades.extend(binance_trade(t) for t in binance.fetch_my_trades(symbol, None, 30) or [])
        except Exception as e:
            logger.debug(f"Binance trades for {symbol} failed: {e}")
            errors.append(f"{symbol}: {e}")
    return {"trades": trades, "errors": errors}


def fetch_bybit_history(api_key: str, secret: str, sync_options: Dict[str, int]) -> Dict[str, Any]:
    bybit = get_exchange_instance("bybit", api_key, secret)
    symbols = collect_target_pairs(bybit, BYBIT_SEED_SYMBOLS)[:sync_options["bybitSymbolsLimit"]]
    result = fetch_bybit_trades(
        api_key,
        secret,
        symbols=symbols,
        days_back=sync_options["bybitDaysBack"],
        page_limit_per_window=sync_options["bybitPageLimitPerWindow"],
    )
    return {"trades": result["trades"], "errors": result["diagnostics"]["errors"]}


def venue_diagnostics(trades: List[Dict[str, Any]], errors: List[str]) -> Dict[str, Any]:
    entry = {
        "status": "ok" if trades else "empty",
        "trades": len(trades),
        "errors": errors[:MAX_DIAGNOSTIC_ERRORS],
    }
    if not trades and errors:
        entry["message"] = errors[0]
    return entry


class JournalSyncService:
    """
    Pulls trade history from every connected venue into one journal feed.

    Each venue reports into ``diagnostics`` with ``ok`` / ``empty`` / ``error``
    and at most eight error messages; a failing venue never fails the whole sync.
    """

    def __init__(self, hyperliquid: Optional[HyperliquidService] = None):
        self.hyperliquid = hyperliquid or HyperliquidService()

    async def sync(self, keys: Optional[Dict[str, Any]], options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        keys = keys or {}
        sync_options = resolve_sync_options(options)

        trades: List[Dict[str, Any]] = []
        exchanges: List[str] = []
        diagnostics: Dict[str, Dict[str, Any]] = {}

        venues = []
        wallet = keys.get("hyperliquidWallet")
        if wallet:
            venues.append(("hyperliquid", self._hyperliquid_history(wallet)))
        if keys.get("binanceApiKey") and keys.get("binanceSecret"):
            venues.append(("binance", run_in_threadpool(
                fetch_binance_history, keys["binanceApiKey"], keys["binanceSecret"]
            )))
        if keys.get("bybitApiKey") and keys.get("bybitSecret"):
            venues.append(("bybit", run_in_threadpool(
                fetch_bybit_history, keys["bybitApiKey"], keys["bybitSecret"], sync_options
            )))

        for venue, pending in venues:
            try:
                result = await pending
            except Exception as e:
                logger.error(f"{venue.capitalize()} sync error: {e}")
                diagnostics[venue] = {"status": "error", "message": str(e), "errors": [str(e)]}
                continue
            trades.extend(result["trades"])
            if result["trades"]:
                exchanges.append(venue)
            diagnostics[venue] = venue_diagnostics(result["trades"], result["errors"])

        deduped = dedupe_trades(trades)
        logger.info(f"Journal sync: {len(deduped)} trades from {exchanges or 'no venues'}")
        return {
            "trades": deduped,
            "exchanges": exchanges,
            "syncedAt": now_ms(),
            "diagnostics": diagnostics,
            "options": sync_options,
        }

    async def _hyperliquid_history(self, wallet: str) -> Dict[str, Any]:
        return {"trades": await self.hyperliquid.fetch_user_fills(wallet), "errors": []}


def get_journal_sync_service() -> JournalSyncService:
    return JournalSyncService()
