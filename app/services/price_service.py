from typing import Any, Dict, Iterable, Optional

import httpx
from loguru import logger

from app.core.redis_client import cache_get_json, cache_set_json
from app.services.http_client import managed_client
from app.services.normalization import now_ms, to_float
from app.services.wallet_service import WalletService

COINGECKO_SIMPLE_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
PRICE_CACHE_TTL_SECONDS = 60

SYMBOL_TO_ID = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "SOL": "solana",
    "XRP": "ripple",
    "USDC": "usd-coin",
    "USDT": "tether",
    "ADA": "cardano",
    "AVAX": "avalanche-2",
    "DOGE": "dogecoin",
    "DOT": "polkadot",
    "TRX": "tron",
    "LINK": "chainlink",
    "MATIC": "matic-network",
    "WBTC": "wrapped-bitcoin",
    "LTC": "litecoin",
    "BCH": "bitcoin-cash",
    "ATOM": "cosmos",
    "XLM": "stellar",
    "FIL": "filecoin",
    "HBAR": "hbar",
    "APT": "aptos",
    "ARB": "arbitrum",
    "OP": "optimism",
    "SUI": "sui",
    "INJ": "injective-protocol",
    "TON": "the-open-network",
}
ID_TO_SYMBOL = {coin_id: symbol for symbol, coin_id in SYMBOL_TO_ID.items()}


def price_symbol(raw: Any) -> str:
    symbol = str(raw or "").strip().upper()
    return "HBAR" if symbol == "WHBAR" else symbol


class PriceService:
    """USD spot prices from CoinGecko, cached in redis for a minute"""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    async def get_simple_prices(self, symbols: Iterable[str]) -> Dict[str, Dict[str, float]]:
        """``{SYMBOL: {price, change24h}}``; unknown symbols are tried as CoinGecko ids."""
        ids = sorted({SYMBOL_TO_ID.get(s, s.lower()) for s in map(price_symbol, symbols) if s})
        if not ids:
            return {}

        cache_key = f"prices:{','.join(ids)}"
        cached = cache_get_json(cache_key)
        if cached is not None:
            return cached

        params = {"ids": ",".join(ids), "vs_currencies": "usd", "include_24hr_change": "true"}
        try:
            async with managed_client(self.http_client) as client:
                response = await client.get(COINGECKO_SIMPLE_PRICE_URL, params=params)
            if response.status_code >= 400:
                logger.warning(f"CoinGecko returned HTTP {response.status_code}")
                return {}
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"CoinGecko price fetch failed: {e}")
            return {}

        prices = {}
        for coin_id, row in (payload or {}).items():
            price = to_float((row or {}).get("usd"))
            if price > 0:
                prices[ID_TO_SYMBOL.get(coin_id) or price_symbol(coin_id)] = {
                    "price": price,
                    "change24h": to_float((row or {}).get("usd_24h_change")),
                }
        cache_set_json(cache_key, prices, PRICE_CACHE_TTL_SECONDS)
        return prices


class DashboardService:
    """Wallet valuation plus the BTC headline for the dashboard header"""

    def __init__(self, wallet: Optional[WalletService] = None, prices: Optional[PriceService] = None):
        self.wallet = wallet or WalletService()
        self.prices = prices or PriceService()

    async def summary(self, address: Optional[str] = None, chain: Optional[str] = None,
                      wallet_type: Optional[str] = None) -> Dict[str, Any]:
        address = (address or "").strip()
        total_value = 0.0
        asset_count = 0

        if address:
            balances = await self.wallet.get_portfolio(address, chain, wallet_type)
            tradable = [b for b in balances if b.get("symbol") and to_float(b.get("balance")) > 0]
            asset_count = len(tradable)
            prices = await self.prices.get_simple_prices({price_symbol(b["symbol"]) for b in tradable})
            total_value = sum(
                to_float(b["balance"]) * (prices.get(price_symbol(b["symbol"])) or {}).get("price", 0.0)
                for b in tradable
            )

        btc = (await self.prices.get_simple_prices(["BTC"])).get("BTC") or {}
        return {
            "totalValueUsd": total_value,
            "totalPnlUsd": 0,
            "totalPnlPercent": 0,
            "btcPrice": to_float(btc.get("price")),
            "btcChange24h": to_float(btc.get("change24h")),
            "assetCount": asset_count,
            "addressProvided": bool(address),
            "generatedAt": now_ms(),
        }


def get_price_service() -> PriceService:
    return PriceService()


def get_dashboard_service() -> DashboardService:
    return DashboardService()
