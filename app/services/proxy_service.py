import json
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

from app.core.config import settings
from app.core.errors import ApiError, ApiErrorCode, missing_parameters
from app.services.http_client import managed_client

PING_TIMEOUT_SECONDS = 5.0
LOCAL_API_WARNING_COOLDOWN_SECONDS = 15.0

ALLOWED_PING_HOSTS = [
    "api.bybit.com",
    "api.binance.com",
    "api.hyperliquid.xyz",
    "eth.llamarpc.com",
    "arb1.arbitrum.io",
    "mainnet.optimism.io",
    "mainnet.base.org",
    "polygon-rpc.com",
    "bsc-dataseed.binance.org",
    "api.avax.network",
    "rpc.ftm.tools",
    "rpc.linea.build",
    "rpc.scroll.io",
    "mainnet.era.zksync.io",
    "rpc.blast.io",
    "rpc.gnosischain.com",
    "forno.celo.org",
    "evm.cronos.org",
    "rpc.mantle.xyz",
    "api.mainnet-beta.solana.com",
]


def is_allowed_host(hostname: Optional[str]) -> bool:
    hostname = (hostname or "").lower()
    return any(hostname == host or hostname.endswith(f".{host}") for host in ALLOWED_PING_HOSTS)


def is_local_api(url: str) -> bool:
    parsed = urlparse(url)
    local = urlparse(settings.api_base_url)
    return parsed.hostname in ("127.0.0.1", "localhost", local.hostname) and parsed.port == local.port


class ProxyService:
    """Server-side fetch for endpoints the browser cannot call directly (CORS)"""

    _last_local_failure_at = 0.0

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    async def forward(self, url: Optional[str], method: str = "GET",
                      headers: Optional[Dict[str, str]] = None, body: Any = None) -> httpx.Response:
        if not url:
            raise missing_parameters("Missing URL")
        content = json.dumps(body) if body else None
        try:
            async with managed_client(self.http_client) as client:
                response = await client.request(method or "GET", url, headers=headers or {}, content=content)
                await response.aread()
            return response
        except httpx.ConnectError as e:
            if is_local_api(url):
                self._warn_local_unreachable()
                raise ApiError(
                    "API Server Unreachable",
                    ApiErrorCode.NOT_CONFIGURED,
                    extra={"hint": f"Start the API server ({settings.api_base_url})"},
                )
            logger.error(f"Proxy error for {url}: {e}")
            raise ApiError(str(e) or "Proxy Failed")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Proxy error for {url}: {e}")
            raise ApiError(str(e) or "Proxy Failed")

    @classmethod
    def _warn_local_unreachable(cls):
        now = time.monotonic()
        if now - cls._last_local_failure_at > LOCAL_API_WARNING_COOLDOWN_SECONDS:
            logger.warning(f"Proxy error: API server unreachable at {settings.api_base_url}")
            cls._last_local_failure_at = now

    async def ping(self, url: Optional[str]) -> Dict[str, Any]:
        if not url:
            raise missing_parameters("Missing url param")
        parsed = urlparse(url)
        if not is_allowed_host(parsed.hostname) and parsed.scheme not in ("http", "https"):
            raise missing_parameters("Invalid protocol")
        try:
            async with managed_client(self.http_client, timeout=PING_TIMEOUT_SECONDS) as client:
                response = await client.get(
                    url, headers={"Content-Type": "application/json"}, timeout=PING_TIMEOUT_SECONDS
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Ping failed for {url}: {e}")
            raise ApiError("Fetch failed", extra={"details": str(e)})
        return {"success": response.is_success, "status": response.status_code}


def get_proxy_service() -> ProxyService:
    return ProxyService()
