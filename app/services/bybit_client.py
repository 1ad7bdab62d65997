"""
Native Bybit V5 signed REST client.

Used where ccxt is unreliable for Bybit: wallet balances across the
UNIFIED / SPOT / FUND accounts and the raw deposit/withdraw records. The
client rotates through mirror hosts, keeps a per-host server-time offset
and retries once on a timestamp rejection.
"""

import hashlib
import hmac
import json
import re
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from loguru import logger

from app.core.config import settings

DEFAULT_BYBIT_BASE_URLS = [
    "https://api.bybit.com",
    "https://api.bytick.com",
    "https://api-testnet.bybit.com",
]

TIME_SYNC_TTL_MS = 5 * 60 * 1000
RET_CODE_TIMESTAMP_ERROR = 10002

_FORBIDDEN_RE = re.compile(r"HTTP 403|restricted IP|forbidden", re.IGNORECASE)
_AUTH_RE = re.compile(r"10003|10004|10005|invalid api|permission denied|api key|signature", re.IGNORECASE)


class BybitRequestError(Exception):
    def __init__(
        self,
        message: str,
        ret_code: Optional[int] = None,
        http_status: Optional[int] = None,
        base: Optional[str] = None,
        ret_msg: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.ret_code = ret_code
        self.http_status = http_status
        self.base = base
        self.ret_msg = ret_msg


def get_bybit_base_urls(env_value: Optional[str] = None) -> List[str]:
    raw = env_value if env_value is not None else (settings.bybit_api_base_url or "")
    from_env = [v.strip() for v in raw.split(",") if v.strip()]
    urls: List[str] = []
    for url in from_env + DEFAULT_BYBIT_BASE_URLS:
        if url not in urls:
            urls.append(url)
    return urls


def parse_ret_code(value: Any) -> int:
    if isinstance(value, bool):
        return -1
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value == value:
        return int(value)
    if isinstance(value, str):
        match = re.match(r"\s*-?\d+", value)
        if match:
            return int(match.group())
    return -1


def build_query(params: Dict[str, Any]) -> str:
    """Sorted, URL-encoded query string; empty values are dropped."""
    entries = sorted(
        (k, str(v).lower() if isinstance(v, bool) else str(v))
        for k, v in params.items()
        if v is not None and str(v) != ""
    )
    return urlencode(entries)


def sign(secret: str, timestamp: str, api_key: str, recv_window: str, query_string: str) -> str:
    payload = f"{timestamp}{api_key}{recv_window}{query_string}"
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def parse_server_time_ms(payload: Any) -> Optional[int]:
    if not isinstance(payload, dict):
        return None
    result = payload.get("result") or {}

    nano = result.get("timeNano")
    if nano is not None:
        ns = str(nano).strip()
        if ns.isdigit():
            return 0 if len(ns) <= 6 else int(ns[:-6])
        try:
            as_number = float(ns)
            if as_number > 0:
                return int(as_number // 1_000_000)
        except ValueError:
            pass

    sec = result.get("timeSecond")
    if sec is not None:
        try:
            n = float(sec)
            if n > 0:
                return int(n * 1000)
        except (TypeError, ValueError):
            pass

    direct = payload.get("time")
    if direct is not None:
        try:
            n = float(direct)
            if n > 0:
                return int(n)
        except (TypeError, ValueError):
            pass
    return None


def pick_bybit_error(errors: List[str]) -> Optional[str]:
    """Prefer regional blocks, then credential problems, then the first error."""
    if not errors:
        return None
    for err in errors:
        if _FORBIDDEN_RE.search(err):
            return err
    for err in errors:
        if _AUTH_RE.search(err):
            return err
    return errors[0]


def map_account_type(account_type: Optional[str]) -> Optional[str]:
    raw = str(account_type or "").strip().lower()
    if not raw:
        return None
    if raw == "spot":
        return "spot"
    if raw in ("swap", "contract", "unified"):
        return "swap"
    if raw in ("fund", "funding"):
        return "fund"
    return None


class BybitClient:
    # offsets are shared by every client instance (per base URL)
    _time_offsets: Dict[str, int] = {}
    _time_updated_at: Dict[str, int] = {}

    def __init__(
        self,
        api_key: str,
        secret: str,
        http_client: Optional[httpx.AsyncClient] = None,
        base_urls: Optional[List[str]] = None,
        recv_window: Optional[int] = None,
    ):
        self.api_key = api_key
        self.secret = secret
        self.http_client = http_client
        self.base_urls = base_urls or get_bybit_base_urls()
        self.recv_window = str(recv_window or settings.bybit_recv_window)

    @classmethod
    def reset_time_offsets(cls):
        cls._time_offsets.clear()
        cls._time_updated_at.clear()

    async def _get(self, client: httpx.AsyncClient, url: str, headers: Dict[str, str]) -> httpx.Response:
        return await client.get(url, headers=headers, timeout=settings.exchange_timeout_ms / 1000)

    async def sync_server_time(self, client: httpx.AsyncClient, base: str, force: bool = False):
        now = int(time.time() * 1000)
        last = self._time_updated_at.get(base, 0)
        if not force and base in self._time_offsets and now - last < TIME_SYNC_TTL_MS:
            return
        try:
            response = await self._get(client, f"{base}/v5/market/time", {"Accept": "application/json"})
            if response.status_code >= 400:
                return
            server_ms = parse_server_time_ms(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Bybit time sync failed for {base}: {e}")
            return
        if not server_ms:
            return
        now = int(time.time() * 1000)
        self._time_offsets[base] = server_ms - now
        self._time_updated_at[base] = now

    async def signed_get(self, path: str, query: Dict[str, Any]) -> Dict[str, Any]:
        if self.http_client is not None:
            return await self._signed_get(self.http_client, path, query)
        async with httpx.AsyncClient() as client:
            return await self._signed_get(client, path, query)

    async def _signed_get(self, client: httpx.AsyncClient, path: str, query: Dict[str, Any]) -> Dict[str, Any]:
        last_error: Optional[BybitRequestError] = None
        saw_forbidden = False

        for base in self.base_urls:
            for attempt in range(2):
                try:
                    await self.sync_server_time(client, base, force=attempt > 0)
                    offset = self._time_offsets.get(base, 0)
                    timestamp = str(int(time.time() * 1000) + offset)
                    query_string = build_query(query)
                    signature = sign(self.secret, timestamp, self.api_key, self.recv_window, query_string)
                    url = f"{base}{path}" + (f"?{query_string}" if query_string else "")
                    response = await self._get(client, url, {
                        "X-BAPI-API-KEY": self.api_key,
                        "X-BAPI-TIMESTAMP": timestamp,
                        "X-BAPI-SIGN": signature,
                        "X-BAPI-SIGN-TYPE": "2",
                        "X-BAPI-RECV-WINDOW": self.recv_window,
                        "Accept": "application/json",
                    })
                except httpx.HTTPError as e:
                    last_error = BybitRequestError(f"Bybit request failed: {e}", base=base)
                    break

                text = response.text
                try:
                    payload = json.loads(text) if text else {}
                except ValueError:
                    payload = {}
                if not isinstance(payload, dict):
                    payload = {}
                ret_code = parse_ret_code(payload.get("retCode"))
                ret_msg = str(payload["retMsg"]) if payload.get("retMsg") else None

                if response.status_code >= 400:
                    msg = f"Bybit HTTP {response.status_code}"
                    if ret_msg:
                        msg += f": {ret_msg}"
                    elif text and len(text) < 220:
                        msg += f": {text}"
                    if response.status_code == 403:
                        saw_forbidden = True
                        msg += " (possible regional/IP restriction)"
                    last_error = BybitRequestError(
                        msg,
                        ret_code=ret_code if ret_code >= 0 else None,
                        http_status=response.status_code,
                        base=base,
                        ret_msg=ret_msg,
                    )
                    break

                if ret_code == 0:
                    return payload
                if ret_code == RET_CODE_TIMESTAMP_ERROR and attempt == 0:
                    logger.info(f"Bybit rejected timestamp on {base}; resyncing server time")
                    continue

                last_error = BybitRequestError(
                    f"Bybit {ret_code}: {ret_msg or 'Unknown error'}",
                    ret_code=ret_code if ret_code >= 0 else None,
                    http_status=response.status_code,
                    base=base,
                    ret_msg=ret_msg,
                )
                break

            if last_error is not None:
                logger.warning(f"Bybit {path} failed on {base}: {last_error.message}")

        if saw_forbidden:
            raise BybitRequestError(
                "Bybit returned HTTP 403 (restricted IP region). Bybit docs state US IPs are blocked for API access.",
                http_status=403,
            )
        raise last_error or BybitRequestError("Bybit request failed")

    async def wallet_balance(self, account_type: str) -> Dict[str, Any]:
        return await self.signed_get("/v5/account/wallet-balance", {"accountType": account_type})

    async def deposit_records(self, start_time: Optional[int] = None) -> Dict[str, Any]:
        return await self.signed_get("/v5/asset/deposit/query-record", {"startTime": start_time})

    async def withdraw_records(self, start_time: Optional[int] = None) -> Dict[str, Any]:
        return await self.signed_get("/v5/asset/withdraw/query-record", {"startTime": start_time})


def empty_balance() -> Dict[str, Dict[str, Any]]:
    return {"total": {}, "free": {}, "used": {}, "info": {}}


def _num(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _first_present(coin: Dict[str, Any], keys) -> float:
    # the API sends "" for fields that do not apply to an account type
    for key in keys:
        value = coin.get(key)
        if value is None or value == "" or (not isinstance(value, str) and value == 0):
            continue
        return _num(value)
    return 0.0


def merge_wallet_balance(merged: Dict[str, Dict[str, Any]], payload: Dict[str, Any], account_type: str):
    """Fold one wallet-balance response into a ccxt-like ``total/free/used`` balance."""
    accounts = ((payload or {}).get("result") or {}).get("list") or []
    for account in accounts:
        coins = account.get("coin") or []
        for coin in coins:
            symbol = coin.get("coin")
            if not symbol:
                continue
            wallet = _first_present(coin, ("walletBalance", "equity", "free", "availableToWithdraw"))
            locked = _first_present(coin, ("locked", "frozenBalance"))
            total = wallet + locked
            if total > 0:
                merged["total"][symbol] = merged["total"].get(symbol, 0) + total
                merged["free"][symbol] = merged["free"].get(symbol, 0) + wallet
                merged["used"][symbol] = merged["used"].get(symbol, 0) + locked

        # some accounts only report account-level equity
        account_total = _num(account.get("totalEquity") or account.get("totalWalletBalance") or 0)
        if account_total > 0 and not coins:
            symbol = "USDT" if account_type.lower() == "unified" else "USDC"
            merged["total"][symbol] = merged["total"].get(symbol, 0) + account_total
            merged["free"][symbol] = merged["free"].get(symbol, 0) + account_total
    merged["info"][account_type] = payload


def has_any_balance(balance: Dict[str, Any]) -> bool:
    if not isinstance(balance, dict):
        return False
    total = balance.get("total") or {}
    if not total and balance.get("free") and balance.get("used"):
        free = balance.get("free") or {}
        used = balance.get("used") or {}
        return any(_num(free.get(k)) + _num(used.get(k)) > 0 for k in set(free) | set(used))
    return any(_num(v) > 0 for v in total.values())
