import json
import threading
from typing import Any, Dict, Optional

import ccxt
from loguru import logger

from app.core.config import settings
from app.core.errors import ApiError, ApiErrorCode


class ExchangeManager:
    """
    Caches authenticated ccxt clients.

    One instance per (exchange, credentials, options) so ccxt's rate limiter
    and loaded markets survive between requests.
    """

    def __init__(self):
        self._cache: Dict[str, Any] = {}
        self._lock = threading.Lock()

    @staticmethod
    def is_supported(exchange_id: Optional[str]) -> bool:
        return bool(exchange_id) and exchange_id in ccxt.exchanges and hasattr(ccxt, exchange_id)

    @staticmethod
    def _cache_key(exchange_id: str, api_key: str, secret: str, options: Dict[str, Any]) -> str:
        return f"{exchange_id}:{api_key}:{secret}:{json.dumps(options, sort_keys=True, default=str)}"

    def get_exchange(self, exchange_id: str, api_key: str, secret: str, options: Optional[Dict[str, Any]] = None):
        options = options or {}
        key = self._cache_key(exchange_id, api_key, secret, options)

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            if not self.is_supported(exchange_id):
                raise ApiError(f"Invalid exchange: {exchange_id}", ApiErrorCode.INVALID_EXCHANGE)

            # Bybit accounts are unified; "swap" maps ccxt onto the V5 unified/linear endpoints
            bybit_defaults = {
                "defaultType": "swap",
                "recvWindow": settings.bybit_recv_window,
                "adjustForTimeDifference": True,
            } if exchange_id == "bybit" else {}

            merged_options = {**bybit_defaults, **(options.get("options") or {})}
            config = {
                "apiKey": api_key,
                "secret": secret,
                "enableRateLimit": True,
                "timeout": settings.exchange_timeout_ms,
                **{k: v for k, v in options.items() if k != "options"},
                "options": merged_options,
            }

            exchange = getattr(ccxt, exchange_id)(config)
            if exchange_id == "bybit":
                exchange.options["recvWindow"] = settings.bybit_recv_window
                exchange.options["adjustForTimeDifference"] = True

            self._cache[key] = exchange
            logger.debug(f"Created {exchange_id} client (options={merged_options})")
            return exchange

    def clear(self):
        with self._lock:
            self._cache.clear()
        logger.info("Exchange client cache cleared")

    def __len__(self):
        return len(self._cache)


# Global exchange manager instance
exchange_manager = ExchangeManager()


def get_exchange_instance(exchange_id: str, api_key: str, secret: str, options: Optional[Dict[str, Any]] = None):
    return exchange_manager.get_exchange(exchange_id, api_key, secret, options)


def clear_exchange_cache():
    exchange_manager.clear()


def is_supported_exchange(exchange_id: Optional[str]) -> bool:
    return ExchangeManager.is_supported(exchange_id)
