from typing import Any, Callable, Dict, List, Optional

import ccxt
from loguru import logger

from app.core.config import settings
from app.core.redis_client import cache_get_json, cache_set_json
from app.services.normalization import normalize_symbol, now_ms, to_float

SCREENER_EXCHANGES = [
    ("binance", {"defaultType": "future"}),
    ("bybit", {"defaultType": "linear"}),
    ("hyperliquid", {}),
]
SCREENER_CACHE_KEY = "screener:ccxt-data"
SCREENER_CACHE_TTL_SECONDS = 30


def is_usd_quoted(symbol: str) -> bool:
    pair = symbol.split(":")[0]
    return pair.endswith("/USDT") or pair.endswith("/USD")


def public_exchange(name: str, options: Dict[str, Any]):
    return getattr(ccxt, name)({
        "enableRateLimit": True,
        "timeout": settings.exchange_timeout_ms,
        "options": options,
    })


class MarketService:
    """Aggregated perp screener rows (price, volume, change, funding) across venues"""

    def __init__(self, exchange_factory: Optional[Callable[[str, Dict[str, Any]], Any]] = None):
        self.exchange_factory = exchange_factory or public_exchange

    def _screen_exchange(self, name: str, options: Dict[str, Any], timestamp: int) -> List[Dict[str, Any]]:
        exchange = self.exchange_factory(name, options)
        exchange.load_markets()
        rows: Dict[str, Dict[str, Any]] = {}

        for symbol, ticker in (exchange.fetch_tickers() or {}).items():
            if not is_usd_quoted(symbol):
                continue
            normalized = normalize_symbol(symbol)
            rows[f"{normalized}-{name}"] = {
                "symbol": normalized,
                "rawSymbol": symbol,
                "exchange": name,
                "price": to_float(ticker.get("last")),
                "volume24h": to_float(ticker.get("quoteVolume")),
                "change24h": to_float(ticker.get("percentage")),
                "fundingRate": 0.0,
                "timestamp": timestamp,
            }

        if exchange.has.get("fetchFundingRates"):
            try:
                funding_rates = exchange.fetch_funding_rates() or {}
            except ccxt.BaseError as e:
                logger.debug(f"Screener funding rates unavailable on {name}: {e}")
                funding_rates = {}
            for symbol, funding in funding_rates.items():
                normalized = normalize_symbol(symbol)
                key = f"{normalized}-{name}"
                rate = funding.get("fundingRate") if isinstance(funding, dict) else None
                rate = rate if isinstance(rate, (int, float)) else 0.0
                if key in rows:
                    rows[key]["fundingRate"] = rate
                else:
                    rows[key] = {
                        "symbol": normalized,
                        "rawSymbol": symbol,
                        "exchange": name,
                        "price": 0.0,
                        "volume24h": 0.0,
                        "change24h": 0.0,
                        "fundingRate": rate,
                        "timestamp": timestamp,
                    }
        return list(rows.values())

    def get_screener_data(self, use_cache: bool = True) -> Dict[str, List[Dict[str, Any]]]:
        if use_cache:
            cached = cache_get_json(SCREENER_CACHE_KEY)
            if cached is not None:
                return cached

        timestamp = now_ms()
        data: List[Dict[str, Any]] = []
        for name, options in SCREENER_EXCHANGES:
            try:
                data.extend(self._screen_exchange(name, options, timestamp))
            except Exception as e:
                logger.warning(f"[Screener] {name} failed: {e}")

        result = {"data": data}
        if data:
            cache_set_json(SCREENER_CACHE_KEY, result, SCREENER_CACHE_TTL_SECONDS)
        return result


def get_market_service() -> MarketService:
    return MarketService()
