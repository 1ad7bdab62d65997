import re
import time
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from app.services.http_client import managed_client
from app.services.normalization import normalize_symbol, to_float

HYPERLIQUID_INFO_API = "https://api.hyperliquid.xyz/info"
ASSET_CACHE_TTL_SECONDS = 5 * 60

_NUMERIC_RE = re.compile(r"^\d+$")


class HyperliquidService:
    """Read-only client for the Hyperliquid info endpoint"""

    # shared across instances; the asset universe rarely changes
    _asset_map: Dict[str, str] = {}
    _asset_map_fetched_at: float = 0.0

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    @classmethod
    def reset_cache(cls):
        cls._asset_map = {}
        cls._asset_map_fetched_at = 0.0

    async def info(self, payload: Dict[str, Any]) -> Optional[Any]:
        """POST to the info API; ``None`` on any transport or HTTP failure."""
        try:
            async with managed_client(self.http_client) as client:
                response = await client.post(HYPERLIQUID_INFO_API, json=payload)
            if response.status_code >= 400:
                logger.warning(f"Hyperliquid info {payload.get('type')} returned HTTP {response.status_code}")
                return None
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Hyperliquid info {payload.get('type')} failed: {e}")
            return None

    async def get_asset_map(self) -> Dict[str, str]:
        """Index -> coin name for perps (``"3"`` and ``"@3"``); spot tokens only fill gaps."""
        cls = type(self)
        if cls._asset_map and time.monotonic() - cls._asset_map_fetched_at < ASSET_CACHE_TTL_SECONDS:
            return cls._asset_map

        meta = await self.info({"type": "meta"})
        if not meta:
            return cls._asset_map

        asset_map: Dict[str, str] = {}
        for index, asset in enumerate(meta.get("universe") or []):
            asset_map[str(index)] = asset.get("name")
            asset_map[f"@{index}"] = asset.get("name")

        spot_meta = await self.info({"type": "spotMeta"})
        for token in (spot_meta or {}).get("tokens") or []:
            if token.get("index") is None:
                continue
            # perp names win on index collisions
            asset_map.setdefault(str(token["index"]), token.get("name"))
            asset_map.setdefault(f"@{token['index']}", token.get("name"))

        cls._asset_map = asset_map
        cls._asset_map_fetched_at = time.monotonic()
        return asset_map

    @staticmethod
    def resolve_coin(coin: Optional[str], asset_map: Dict[str, str]) -> Optional[str]:
        if not coin:
            return coin
        if coin.startswith("@"):
            return asset_map.get(coin) or asset_map.get(coin[1:]) or coin
        if _NUMERIC_RE.match(coin):
            return asset_map.get(coin) or asset_map.get(f"@{coin}") or coin
        return coin

    async def fetch_user_fills(self, user: str) -> List[Dict[str, Any]]:
        asset_map = await self.get_asset_map()
        fills = await self.info({"type": "userFills", "user": user})
        if not isinstance(fills, list):
            return []

        trades = []
        for fill in fills:
            symbol = self.resolve_coin(fill.get("coin"), asset_map)
            trades.append({
                "id": fill.get("hash") or f"hl-{fill.get('oid')}",
                "symbol": normalize_symbol(symbol),
                "rawSymbol": fill.get("coin"),
                "side": "buy" if fill.get("side") == "B" else "sell",
                "price": to_float(fill.get("px")),
                "amount": to_float(fill.get("sz")),
                "timestamp": fill.get("time"),
                "exchange": "Hyperliquid",
                "pnl": to_float(fill.get("closedPnl")),
                "fee": to_float(fill.get("fee")),
                "feeCurrency": fill.get("feeToken") or "USDC",
                "status": "closed",
                "notes": fill.get("dir"),
                "instrumentType": "future",
                "marketType": "perp",
                "sourceType": "dex",
            })
        logger.info(f"Hyperliquid: {len(trades)} fills for {user[:10]}...")
        return trades

    async def fetch_positions(self, user: str) -> List[Dict[str, Any]]:
        """Open perp positions from ``clearinghouseState``."""
        state = await self.info({"type": "clearinghouseState", "user": user})
        positions = []
        for entry in (state or {}).get("assetPositions") or []:
            position = entry.get("position") or {}
            size = to_float(position.get("szi"))
            if size == 0:
                continue
            leverage = position.get("leverage") or {}
            positions.append({
                "symbol": normalize_symbol(position.get("coin")),
                "rawSymbol": position.get("coin"),
                "positionAmt": size,
                "size": abs(size),
                "entryPrice": to_float(position.get("entryPx")),
                "markPrice": to_float(position.get("positionValue")) / abs(size) if abs(size) else 0.0,
                "unrealizedProfit": to_float(position.get("unrealizedPnl")),
                "unrealizedProfitPercent": to_float(position.get("returnOnEquity")) * 100,
                "leverage": int(to_float(leverage.get("value"), 1.0)) or 1,
                "liquidationPrice": to_float(position.get("liquidationPx")),
                "side": "long" if size > 0 else "short",
            })
        return positions


def get_hyperliquid_service() -> HyperliquidService:
    return HyperliquidService()
