"""
Centralized-exchange proxy operations (balances, positions, orders, trades, transfers).

All ccxt calls here are blocking; routes run them in FastAPI's threadpool.
Only the Bybit wallet-balance path is async because it goes through the
native signed client.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import ccxt
from loguru import logger
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.errors import ApiError, ApiErrorCode
from app.services.bybit_client import (
    BybitClient,
    BybitRequestError,
    empty_balance,
    has_any_balance,
    map_account_type,
    merge_wallet_balance,
    pick_bybit_error,
)
from app.services.bybit_trades import fetch_bybit_trades
from app.services.exchange_manager import get_exchange_instance, is_supported_exchange
from app.services.normalization import (
    dedupe_trades,
    normalize_cex_trade,
    normalize_order,
    normalize_position,
    normalize_symbol,
    now_ms,
    position_contracts,
    position_payload,
    to_float,
)

EXPANDED_PAIRS = [
    "BTC/USDT", "ETH/USDT", "SOL/USDT", "BNB/USDT", "XRP/USDT", "ADA/USDT", "DOGE/USDT", "AVAX/USDT",
    "TRX/USDT", "DOT/USDT", "LINK/USDT", "MATIC/USDT", "LTC/USDT", "BCH/USDT", "NEAR/USDT", "UNI/USDT",
    "ICP/USDT", "LEO/USDT", "DAI/USDT", "ETC/USDT", "FIL/USDT", "APT/USDT", "ATOM/USDT", "IMX/USDT",
    "STX/USDT", "HBAR/USDT", "ARB/USDT", "VET/USDT", "OP/USDT", "RNDR/USDT", "INJ/USDT", "GRT/USDT",
    "PEPE/USDT", "WIF/USDT", "BONK/USDT", "FLOKI/USDT", "SHIB/USDT", "SUI/USDT", "SEI/USDT", "TIA/USDT",
    "BRETT/USDT", "MOG/USDT", "SPX/USDT", "POPCAT/USDT", "MEW/USDT", "JUP/USDT", "PYTH/USDT",
]

ORDER_EXCHANGES = ("binance", "bybit", "okx")
MAX_TARGET_PAIRS = 60
SYMBOL_BATCH_SIZE = 10
TRANSFER_LOOKBACK_MS = 90 * 24 * 60 * 60 * 1000


def require_credentials(exchange_id: Optional[str], api_key: Optional[str], secret: Optional[str],
                        message: str = "Missing parameters"):
    if not exchange_id or not api_key or not secret:
        raise ApiError(message, ApiErrorCode.MISSING_CREDENTIALS)


def require_supported(exchange_id: str):
    if not is_supported_exchange(exchange_id):
        raise ApiError("Invalid exchange", ApiErrorCode.INVALID_EXCHANGE)


def active_balance_pairs(balance: Dict[str, Any]) -> List[str]:
    """``X/USDT`` and ``X/USDT:USDT`` for every non-stable asset with a positive total."""
    pairs = []
    for asset, amount in (balance.get("total") or {}).items():
        if to_float(amount) > 0 and asset not in ("USDT", "USDC"):
            pairs.append(f"{asset}/USDT")
            pairs.append(f"{asset}/USDT:USDT")
    return pairs


def collect_target_pairs(client, seed: List[str], append_seed_last: bool = False) -> List[str]:
    """Seed pairs plus everything the account holds or has open orders on (insertion ordered)."""
    targets: Dict[str, None] = {} if append_seed_last else dict.fromkeys(seed)
    try:
        targets.update(dict.fromkeys(active_balance_pairs(client.fetch_balance() or {})))
    except Exception as e:
        logger.warning(f"Failed to fetch balance for trade filtering: {e}")
    try:
        for order in client.fetch_open_orders() or []:
            if order.get("symbol"):
                targets[str(order["symbol"])] = None
    except Exception as e:
        logger.debug(f"Open orders unavailable for trade filtering: {e}")
    if append_seed_last:
        targets.update(dict.fromkeys(seed))
    return list(targets)


class CexService:
    def __init__(self, bybit_client_factory=BybitClient):
        self.bybit_client_factory = bybit_client_factory

    # Balances

    async def get_balance(self, exchange_id: str, api_key: str, secret: str,
                          account_type: Optional[str] = None) -> Dict[str, Any]:
        require_credentials(exchange_id, api_key, secret)
        require_supported(exchange_id)

        if exchange_id == "bybit":
            return await self._get_bybit_balance(api_key, secret, account_type)

        exchange = get_exchange_instance(exchange_id, api_key, secret)
        balance = await run_in_threadpool(exchange.fetch_balance)
        return {**balance, "diagnostics": {"exchange": exchange_id}}

    async def _get_bybit_balance(self, api_key: str, secret: str, account_type: Optional[str]) -> Dict[str, Any]:
        client = self.bybit_client_factory(api_key, secret)
        requested = map_account_type(account_type)
        merged = empty_balance()

        if requested:
            query_type = "UNIFIED" if requested == "swap" else requested.upper()
            diagnostics = {
                "exchange": "bybit",
                "accountTypeRequested": str(account_type),
                "accountTypeResolved": requested,
                "attemptedAccountTypes": [requested],
                "errors": [],
            }
            try:
                payload = await client.wallet_balance(query_type)
            except BybitRequestError as e:
                diagnostics["errors"] = [e.message]
                raise ApiError(e.message, ApiErrorCode.UPSTREAM_FAILURE, extra={"diagnostics": diagnostics})
            merge_wallet_balance(merged, payload, requested)
            return {**merged, "diagnostics": diagnostics}

        errors: List[str] = []
        attempted: List[str] = []
        for query_type in ("UNIFIED", "SPOT", "FUND"):
            attempted.append(query_type)
            try:
                payload = await client.wallet_balance(query_type)
                merge_wallet_balance(merged, payload, query_type.lower())
            except BybitRequestError as e:
                errors.append(f"{query_type}: {e.message}")

        diagnostics = {"exchange": "bybit", "attemptedAccountTypes": attempted, "errors": errors}
        if not has_any_balance(merged) and errors:
            error = pick_bybit_error(errors)
            logger.warning(f"Bybit balance unavailable: {error}")
            raise ApiError(error, ApiErrorCode.UPSTREAM_FAILURE, extra={"diagnostics": diagnostics})

        return {**merged, "diagnostics": diagnostics}

    # Positions

    def get_positions(self, exchange_id: str, api_key: str, secret: str) -> Dict[str, Any]:
        require_credentials(exchange_id, api_key, secret)
        require_supported(exchange_id)

        positions: List[Dict[str, Any]] = []
        if exchange_id == "bybit":
            seen = set()
            for default_type in ("unified", "linear", "inverse"):
                try:
                    exchange = get_exchange_instance("bybit", api_key, secret, {"options": {"defaultType": default_type}})
                    raw = exchange.fetch_positions() or []
                except Exception as e:
                    if "Permission denied" not in str(e):
                        logger.warning(f"Bybit {default_type} positions failed: {e}")
                    continue
                for p in raw:
                    sym = str(p.get("symbol") or (p.get("info") or {}).get("symbol") or "").upper()
                    if not sym or sym in seen:
                        continue
                    if abs(to_float(position_contracts(p))) == 0:
                        continue
                    seen.add(sym)
                    positions.append(normalize_position(p, "bybit"))
        else:
            options = {"options": {"defaultType": "future"}} if exchange_id == "binance" else None
            try:
                exchange = get_exchange_instance(exchange_id, api_key, secret, options)
                raw = exchange.fetch_positions() if exchange.has.get("fetchPositions") else []
                positions = [
                    normalize_position(p, exchange_id)
                    for p in (raw or [])
                    if abs(to_float(position_contracts(p))) > 0
                ]
            except Exception as e:
                logger.warning(f"{exchange_id} positions failed: {e}")

        return {"positions": [position_payload(p) for p in positions]}

    # Open orders

    def get_open_orders(self, exchange_id: str, api_key: str, secret: str) -> Dict[str, Any]:
        require_credentials(exchange_id, api_key, secret)
        require_supported(exchange_id)

        orders: List[Dict[str, Any]] = []
        if exchange_id == "bybit":
            seen_ids = set()
            for default_type in ("spot", "unified", "linear"):
                try:
                    exchange = get_exchange_instance("bybit", api_key, secret, {"options": {"defaultType": default_type}})
                    raw = exchange.fetch_open_orders() or []
                except Exception as e:
                    if "Permission denied" not in str(e):
                        logger.warning(f"Bybit {default_type} open orders failed: {e}")
                    continue
                for order in raw:
                    if order.get("id") and str(order["id"]) not in seen_ids:
                        seen_ids.add(str(order["id"]))
                        orders.append(order)
        else:
            exchange = get_exchange_instance(exchange_id, api_key, secret)
            orders = exchange.fetch_open_orders() or []

        return {"orders": [normalize_order(o, exchange_id) for o in orders]}

    # Order placement

    def place_order(self, exchange_id: str, api_key: str, secret: str, symbol: str, side: str,
                    amount: Any, order_type: Optional[str] = None, price: Any = None) -> Dict[str, Any]:
        if not symbol or not side or not amount:
            raise ApiError("Missing parameters: symbol, side, amount", ApiErrorCode.MISSING_PARAMETERS)
        if exchange_id not in ORDER_EXCHANGES:
            raise ApiError("Only binance, bybit, and okx are supported", ApiErrorCode.UNSUPPORTED_EXCHANGE)

        base = normalize_symbol(symbol) or symbol
        market_symbol = f"{base}/USDT:USDT"  # perpetual futures
        resolved_type = "market" if "market" in (order_type or "limit") else "limit"

        exchange_class = ccxt.binanceusdm if exchange_id == "binance" else getattr(ccxt, exchange_id)
        config = {"apiKey": api_key, "secret": secret, "enableRateLimit": True,
                  "timeout": settings.exchange_timeout_ms}
        if exchange_id in ("bybit", "okx"):
            config["options"] = {"defaultType": "swap"}
        exchange = exchange_class(config)

        limit_price = float(price) if resolved_type == "limit" and price else None
        logger.info(f"Placing {resolved_type} {side} {amount} {market_symbol} on {exchange_id}")
        order = exchange.create_order(market_symbol, resolved_type, side.lower(), float(amount), limit_price)
        return {"success": True, "orderId": order.get("id"), "order": order}

    # Trades

    def get_trades(self, exchange_id: str, api_key: str, secret: str) -> Dict[str, Any]:
        require_credentials(exchange_id, api_key, secret, "Missing credentials")
        client = get_exchange_instance(exchange_id, api_key, secret)

        if exchange_id == "bybit":
            symbols = collect_target_pairs(client, EXPANDED_PAIRS)[:MAX_TARGET_PAIRS]
            return fetch_bybit_trades(api_key, secret, symbols=symbols)

        diagnostics = {
            "exchange": exchange_id,
            "accountWideCount": 0,
            "symbolFallbackCount": 0,
            "errors": [],
            "dedupedCount": 0,
        }
        trades: List[Dict[str, Any]] = []
        try:
            recent = client.fetch_my_trades(None, None, 120) or []
            trades.extend(recent)
            diagnostics["accountWideCount"] += len(recent)
        except Exception as e:
            diagnostics["errors"].append(f"accountWide(default): {e}")

        pairs = collect_target_pairs(client, EXPANDED_PAIRS, append_seed_last=True)[:MAX_TARGET_PAIRS]

        def fetch_pair(pair: str):
            try:
                return pair, client.fetch_my_trades(pair, None, 50) or [], None
            except Exception as e:
                return pair, [], e

        with ThreadPoolExecutor(max_workers=SYMBOL_BATCH_SIZE) as pool:
            for i in range(0, len(pairs), SYMBOL_BATCH_SIZE):
                for pair, result, error in pool.map(fetch_pair, pairs[i:i + SYMBOL_BATCH_SIZE]):
                    if error is not None:
                        diagnostics["errors"].append(f"symbol({pair}): {error}")
                    elif result:
                        trades.extend(result)
                        diagnostics["symbolFallbackCount"] += len(result)

        normalized = [normalize_cex_trade(t, exchange_id, strict=False) for t in trades]
        deduped = dedupe_trades(normalized, newest_first=False)
        diagnostics["dedupedCount"] = len(deduped)
        return {"trades": deduped, "diagnostics": diagnostics}

    # Transfers

    def get_transfers(self, exchange_id: str, api_key: str, secret: str) -> Dict[str, Any]:
        require_credentials(exchange_id, api_key, secret, "Missing credentials")
        client = get_exchange_instance(exchange_id, api_key, secret)

        since = now_ms() - TRANSFER_LOOKBACK_MS
        deposits: List[Dict[str, Any]] = []
        withdrawals: List[Dict[str, Any]] = []
        try:
            deposits = client.fetch_deposits(None, since) or []
            withdrawals = client.fetch_withdrawals(None, since) or []
        except Exception as e:
            logger.warning(f"{exchange_id} transfer history failed: {e}")

        if exchange_id == "bybit" and not deposits and not withdrawals:
            deposits = self._bybit_records(client, "private_get_v5_asset_deposit_query_record", "dep")
            withdrawals = self._bybit_records(client, "private_get_v5_asset_withdraw_query_record", "wd")

        transfers = [normalize_transfer(d, "Deposit", exchange_id) for d in deposits]
        transfers += [normalize_transfer(w, "Withdraw", exchange_id) for w in withdrawals]
        transfers.sort(key=lambda t: to_float(t.get("timestamp")), reverse=True)
        return {"transfers": transfers}

    @staticmethod
    def _bybit_records(client, method_name: str, prefix: str) -> List[Dict[str, Any]]:
        fetch = getattr(client, method_name, None)
        if fetch is None:
            return []
        try:
            raw = fetch({"limit": 50}) or {}
        except Exception as e:
            logger.warning(f"Bybit {prefix} records failed: {e}")
            return []
        result = raw.get("result") or {}
        rows = result.get("rows") or result.get("list") or []
        records = []
        for row in rows:
            ts = int(to_float(row.get("successAt") or row.get("createTime"), now_ms()))
            records.append({
                "id": row.get("id") or row.get("txID") or row.get("withdrawId")
                or f"{prefix}-{row.get('coin')}-{row.get('amount')}-{ts}",
                "currency": row.get("coin"),
                "amount": to_float(row.get("amount")),
                "status": row.get("status") or row.get("depositStatus") or row.get("withdrawStatus") or "ok",
                "timestamp": ts,
                "datetime": None,
                "txid": row.get("txID") or row.get("txId"),
                "address": row.get("toAddress") or row.get("address"),
                "network": row.get("chain") or row.get("chainType"),
                "fee": {"cost": to_float(row.get("fee")), "currency": row.get("coin")} if row.get("fee") else None,
                "info": row,
            })
        return records


def normalize_transfer(item: Dict[str, Any], transfer_type: str, exchange_id: str) -> Dict[str, Any]:
    fee = item.get("fee") or {}
    fee_cost = fee.get("cost") if isinstance(fee.get("cost"), (int, float)) else None
    is_deposit = transfer_type == "Deposit"
    return {
        "id": item.get("id") or item.get("txid") or f"{transfer_type}-{item.get('timestamp')}",
        "type": transfer_type,
        "asset": item.get("currency"),
        "symbol": item.get("currency"),
        "amount": item.get("amount"),
        "status": item.get("status"),
        "timestamp": item.get("timestamp"),
        "datetime": item.get("datetime"),
        "txHash": item.get("txid"),
        "address": item.get("address"),
        "tag": item.get("tag"),
        "network": item.get("network"),
        "chain": item.get("network") or item.get("chain"),
        "from": (item.get("address") or "External") if is_deposit else exchange_id,
        "to": exchange_id if is_deposit else (item.get("address") or "External"),
        "exchange": exchange_id,
        "fee": fee_cost,
        "feeAsset": fee.get("currency") or item.get("currency"),
        "feeUsd": fee_cost,
        "info": item.get("info") or {},
        "sourceType": "cex",
    }


cex_service = CexService()


def get_cex_service() -> CexService:
    return cex_service
