from typing import Any, Dict, Optional

import httpx
from loguru import logger

from app.core.errors import ApiError, ApiErrorCode
from app.services.http_client import managed_client

FUTURES_LISTEN_KEY_URL = "https://fapi.binance.com/fapi/v1/listenKey"
SPOT_LISTEN_KEY_URL = "https://api.binance.com/api/v3/userDataStream"


def listen_key_url(market_type: Optional[str]) -> str:
    return FUTURES_LISTEN_KEY_URL if market_type == "futures" else SPOT_LISTEN_KEY_URL


class BinanceService:
    """User-data-stream listen keys (created and kept alive with the API key header only)"""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    async def create_listen_key(self, api_key: Optional[str], api_secret: Optional[str],
                                market_type: Optional[str] = None) -> Dict[str, Any]:
        if not api_key or not api_secret:
            raise ApiError("Missing API credentials", ApiErrorCode.MISSING_CREDENTIALS)

        try:
            async with managed_client(self.http_client) as client:
                response = await client.post(listen_key_url(market_type), headers={"X-MBX-APIKEY": api_key})
        except httpx.HTTPError as e:
            logger.error(f"ListenKey error: {e}")
            raise ApiError("Failed to create ListenKey")

        if response.status_code >= 400:
            raise ApiError(
                f"Binance {market_type or 'Spot'} Error: {response.text}",
                ApiErrorCode.UPSTREAM_FAILURE,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            raise ApiError("Failed to create ListenKey")

    async def keep_alive_listen_key(self, api_key: Optional[str], listen_key: Optional[str],
                                    market_type: Optional[str] = None) -> Dict[str, Any]:
        if not api_key or not listen_key:
            raise ApiError("Missing parameters", ApiErrorCode.MISSING_PARAMETERS)

        url = listen_key_url(market_type)
        params = None if market_type == "futures" else {"listenKey": listen_key}
        try:
            async with managed_client(self.http_client) as client:
                response = await client.put(url, params=params, headers={"X-MBX-APIKEY": api_key})
        except httpx.HTTPError as e:
            logger.error(f"ListenKey keep-alive error: {e}")
            raise ApiError("Internal Server Error")

        if response.status_code >= 400:
            raise ApiError("Failed to keep-alive ListenKey", ApiErrorCode.UPSTREAM_FAILURE,
                           status_code=response.status_code)
        return {"success": True}


def get_binance_service() -> BinanceService:
    return BinanceService()
