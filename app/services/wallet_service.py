"""
On-chain wallet balances and history through public explorers and RPCs.

Every fetcher degrades to an empty list on failure so a single unreachable
explorer never breaks the dashboard.
"""

from typing import Any, Awaitable, Dict, List, Optional

import httpx
import pandas as pd
from loguru import logger

from app.services.http_client import managed_client
from app.services.normalization import to_float

BLOCKSCOUT_API = {
    "ETH": "https://eth.blockscout.com/api",
    "ARB": "https://arbitrum.blockscout.com/api",
    "MATIC": "https://polygon.blockscout.com/api",
    "OP": "https://optimism.blockscout.com/api",
    "BASE": "https://base.blockscout.com/api",
    "BSC": "https://bsc.blockscout.com/api",
    "AVAX": "https://avalanche.blockscout.com/api",
}

RPC_CONFIG = {
    "ETH": ["https://eth.llamarpc.com", "https://rpc.ankr.com/eth"],
    "ARB": ["https://arb1.arbitrum.io/rpc", "https://arbitrum.llamarpc.com"],
    "MATIC": ["https://polygon-rpc.com", "https://polygon.llamarpc.com"],
    "OP": ["https://mainnet.optimism.io", "https://optimism.llamarpc.com"],
    "BASE": ["https://mainnet.base.org", "https://base.llamarpc.com"],
    "BSC": ["https://bsc-dataseed.binance.org", "https://binance.llamarpc.com"],
    "AVAX": ["https://api.avax.network/ext/bc/C/rpc", "https://avalanche.llamarpc.com"],
}

NATIVE_SYMBOLS = {"MATIC": "MATIC", "BSC": "BNB", "AVAX": "AVAX"}

SOLANA_RPC = "https://api.mainnet-beta.solana.com"
SOLANA_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
SOLANA_MINTS = {
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": "USDC",
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": "USDT",
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": "BONK",
    "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm": "WIF",
    "JUPyiwrYJFskUPiHa7hkeR8VUtkqj20HMNtjKeOV2T8": "JUP",
    "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So": "mSOL",
    "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs": "WETH",
    "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh": "WBTC",
}

SUI_RPC = "https://fullnode.mainnet.sui.io"
APTOS_API = "https://fullnode.mainnet.aptoslabs.com/v1"
APTOS_COIN_STORE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"
TONCENTER_API = "https://toncenter.com/api/v2"
TRONGRID_API = "https://api.trongrid.io/v1"
TRC20_CONTRACTS = {
    "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t": "USDT",
    "TEkxiTehnzSmSe2XqrBj4w32RUN966rdz8": "USDC",
}
XRPSCAN_API = "https://api.xrpscan.com/api/v1"
BLOCKCHAIN_INFO_API = "https://blockchain.info"
HEDERA_MIRROR_API = "https://mainnet-public.mirrornode.hedera.com/api/v1"

EVM_HISTORY_LIMIT = 100


def resolve_wallet_kind(chain: Optional[str] = None, wallet_type: Optional[str] = None) -> str:
    """Map the ``type``/``chain`` query pair to a fetcher family; EVM is the default."""
    chain = (chain or "").strip().upper()
    wallet_type = (wallet_type or "").strip().lower()
    if wallet_type == "solana" or chain == "SOL":
        return "solana"
    if wallet_type in ("bitcoin", "btc") or chain == "BTC":
        return "bitcoin"
    if wallet_type in ("hedera", "hbar") or chain == "HBAR":
        return "hedera"
    if wallet_type == "sui" or chain == "SUI":
        return "sui"
    if wallet_type == "aptos" or chain == "APT":
        return "aptos"
    if wallet_type == "ton" or chain == "TON":
        return "ton"
    if wallet_type == "tron" or chain in ("TRX", "TRON"):
        return "tron"
    if wallet_type == "xrp" or chain == "XRP":
        return "xrp"
    return "evm"


def _history_row(tx_id: Any, timestamp: Any, symbol: str, side: str, exchange: str,
                 status: str, amount: float = 0.0) -> Dict[str, Any]:
    return {
        "id": tx_id,
        "timestamp": int(to_float(timestamp)),
        "symbol": symbol,
        "side": side,
        "price": 0,
        "amount": amount,
        "exchange": exchange,
        "status": status,
    }


async def _degrade_to_empty(fetch: Awaitable[List[Dict[str, Any]]], label: str) -> List[Dict[str, Any]]:
    """Explorer payloads with an unexpected shape yield no rows."""
    try:
        return await fetch
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning(f"Unexpected {label} payload: {e}")
        return []


class WalletService:
    """Balances and history for EVM, Solana, Bitcoin, Hedera, Sui, Aptos, TON, TRON and XRP"""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with managed_client(self.http_client) as client:
            response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    async def _rpc(self, url: str, method: str, params: List[Any]) -> Any:
        async with managed_client(self.http_client) as client:
            response = await client.post(url, json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params})
        response.raise_for_status()
        data = response.json()
        if data.get("error"):
            raise ValueError(f"{method} RPC error: {data['error']}")
        return data.get("result")

    # Portfolios

    async def get_portfolio(self, address: str, chain: Optional[str] = None,
                            wallet_type: Optional[str] = None) -> List[Dict[str, Any]]:
        kind = resolve_wallet_kind(chain, wallet_type)
        if kind == "evm":
            fetch = self.get_evm_portfolio(address, (chain or "ETH").upper())
        else:
            fetch = getattr(self, f"get_{kind}_portfolio")(address)
        return await _degrade_to_empty(fetch, f"{kind} portfolio")

    async def get_evm_portfolio(self, address: str, chain: str = "ETH") -> List[Dict[str, Any]]:
        balances: List[Dict[str, Any]] = []
        native_symbol = NATIVE_SYMBOLS.get(chain, "ETH")
        api_url = BLOCKSCOUT_API.get(chain)

        if api_url:
            try:
                tokens = await self._get_json(api_url, {"module": "account", "action": "tokenlist", "address": address})
                if tokens.get("status") == "1" and isinstance(tokens.get("result"), list):
                    for token in tokens["result"]:
                        if not (token.get("balance") and token.get("decimals") and token.get("symbol")):
                            continue
                        raw = to_float(token["balance"])
                        if raw <= 0:
                            continue
                        balance = raw / 10 ** int(to_float(token["decimals"]))
                        # dust filter
                        if balance * to_float(token.get("exchange_rate")) > 0.01 or balance > 0.0001:
                            balances.append({"symbol": token["symbol"], "balance": balance})

                native = await self._get_json(api_url, {"module": "account", "action": "balance", "address": address})
                if native.get("status") == "1":
                    value = to_float(native.get("result"))
                    if value > 0:
                        balances.append({"symbol": native_symbol, "balance": value / 1e18})

                if balances:
                    return balances
            except (httpx.HTTPError, ValueError, AttributeError) as e:
                logger.warning(f"Blockscout failed for {chain}, falling back to RPC: {e}")

        for url in RPC_CONFIG.get(chain) or RPC_CONFIG["ETH"]:
            try:
                result = await self._rpc(url, "eth_getBalance", [address, "latest"])
            except (httpx.HTTPError, ValueError) as e:
                logger.debug(f"RPC {url} unavailable: {e}")
                continue
            wei = int(result, 16) if isinstance(result, str) else 0
            if wei > 0:
                balances.append({"symbol": native_symbol, "balance": wei / 1e18})
            return balances
        return balances

    async def get_solana_portfolio(self, address: str) -> List[Dict[str, Any]]:
        balances: List[Dict[str, Any]] = []
        try:
            lamports = await self._rpc(SOLANA_RPC, "getBalance", [address, {"commitment": "confirmed"}])
            value = to_float((lamports or {}).get("value"))
            if value > 0:
                balances.append({"symbol": "SOL", "balance": value / 1e9})

            accounts = await self._rpc(
                SOLANA_RPC,
                "getTokenAccountsByOwner",
                [address, {"programId": SOLANA_TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
            )
            for account in (accounts or {}).get("value") or []:
                info = account["account"]["data"]["parsed"]["info"]
                amount = to_float(info["tokenAmount"].get("uiAmount"))
                if amount <= 0:
                    continue
                mint = info["mint"]
                balances.append({"symbol": SOLANA_MINTS.get(mint) or f"{mint[:4]}...{mint[-4:]}", "balance": amount})
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Solana portfolio error: {e}")
        return balances

    async def get_bitcoin_portfolio(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{BLOCKCHAIN_INFO_API}/rawaddr/{address}")
            return [{"symbol": "BTC", "balance": to_float(data.get("final_balance")) / 1e8}]
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"BTC portfolio error: {e}")
            return []

    async def get_hedera_portfolio(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{HEDERA_MIRROR_API}/accounts/{address}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"HBAR portfolio error for {address}: {e}")
            return []
        balance = 0.0
        if data.get("balance"):
            balance = to_float(data["balance"].get("balance")) / 1e8
        elif data.get("account"):
            balance = to_float(data["account"].get("balance")) / 1e8
        return [{"symbol": "HBAR", "balance": balance}] if balance > 0 else []

    async def get_sui_portfolio(self, address: str) -> List[Dict[str, Any]]:
        try:
            result = await self._rpc(SUI_RPC, "suix_getAllBalances", [address])
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"SUI portfolio error: {e}")
            return []
        balances = []
        for row in result if isinstance(result, list) else []:
            coin_type = row.get("coinType")
            symbol = coin_type.split("::")[-1] if coin_type and coin_type != "0x2::sui::SUI" else "SUI"
            balance = to_float(row.get("totalBalance")) / 1e9
            if balance > 0:
                balances.append({"symbol": symbol, "balance": balance})
        return balances

    async def get_aptos_portfolio(self, address: str) -> List[Dict[str, Any]]:
        try:
            resources = await self._get_json(f"{APTOS_API}/accounts/{address}/resources")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Aptos portfolio error for {address}: {e}")
            return []
        balances = []
        for resource in resources if isinstance(resources, list) else []:
            if resource.get("type") != APTOS_COIN_STORE:
                continue
            value = ((resource.get("data") or {}).get("coin") or {}).get("value")
            balance = to_float(value) / 1e8
            if balance > 0:
                balances.append({"symbol": "APT", "balance": balance})
        return balances

    async def get_ton_portfolio(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{TONCENTER_API}/getAddressInformation", {"address": address})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"TON portfolio error: {e}")
            return []
        if not data.get("ok") or not data.get("result"):
            return []
        return [{"symbol": "TON", "balance": to_float(data["result"].get("balance")) / 1e9}]

    async def get_tron_portfolio(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{TRONGRID_API}/accounts/{address}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"TRON portfolio error: {e}")
            return []
        accounts = data.get("data") or []
        if not accounts:
            return []
        account = accounts[0]
        balances = []
        if account.get("balance"):
            balances.append({"symbol": "TRX", "balance": to_float(account["balance"]) / 1e6})
        # trongrid returns trc20 as a list of single-entry dicts
        trc20 = account.get("trc20") or []
        entries = trc20.items() if isinstance(trc20, dict) else [item for d in trc20 for item in d.items()]
        for contract, amount in entries:
            balances.append({"symbol": TRC20_CONTRACTS.get(contract, "TRC20"), "balance": to_float(amount) / 1e6})
        return balances

    async def get_xrp_portfolio(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{XRPSCAN_API}/account/{address}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"XRP portfolio error for {address}: {e}")
            return []
        balances = []
        xrp = to_float(data.get("xrpBalance"))
        if xrp > 0:
            balances.append({"symbol": "XRP", "balance": xrp})
        for line in data.get("trustlines") or []:
            balance = to_float(line.get("balance"))
            if balance > 0:
                balances.append({"symbol": line.get("currency") or "Unknown", "balance": balance})
        return balances

    # History

    async def get_history(self, address: str, chain: Optional[str] = None,
                          wallet_type: Optional[str] = None) -> List[Dict[str, Any]]:
        kind = resolve_wallet_kind(chain, wallet_type)
        if kind == "evm":
            fetch = self.get_evm_history(address, (chain or "ETH").upper())
        else:
            fetch = getattr(self, f"get_{kind}_history")(address)
        return await _degrade_to_empty(fetch, f"{kind} history")

    async def get_evm_history(self, address: str, chain: str = "ETH") -> List[Dict[str, Any]]:
        base_url = BLOCKSCOUT_API.get(chain) if chain != "AVAX" else None
        base_url = base_url or BLOCKSCOUT_API["ETH"]
        native_symbol = "MATIC" if chain == "MATIC" else "BNB" if chain == "BSC" else "ETH"
        params = {"module": "account", "address": address, "offset": EVM_HISTORY_LIMIT, "sort": "desc"}
        me = address.lower()

        try:
            native = await self._get_json(base_url, {**params, "action": "txlist"})
            tokens = await self._get_json(base_url, {**params, "action": "tokentx"})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"EVM history error: {e}")
            return []

        txs = []
        if native.get("status") == "1" and isinstance(native.get("result"), list):
            for tx in native["result"]:
                value = to_float(tx.get("value"))
                if value <= 0:
                    continue
                side = "sell" if str(tx.get("from", "")).lower() == me else "buy"
                txs.append(_history_row(tx.get("hash"), to_float(tx.get("timeStamp")) * 1000, native_symbol,
                                        side, chain, "Confirmed", value / 1e18))

        if tokens.get("status") == "1" and isinstance(tokens.get("result"), list):
            for tx in tokens["result"]:
                side = "sell" if str(tx.get("from", "")).lower() == me else "buy"
                amount = to_float(tx.get("value")) / 10 ** int(to_float(tx.get("tokenDecimal")))
                txs.append(_history_row(f"{tx.get('hash')}-{tx.get('tokenSymbol')}", to_float(tx.get("timeStamp")) * 1000,
                                        tx.get("tokenSymbol"), side, chain, "Confirmed", amount))

        txs.sort(key=lambda t: t["timestamp"], reverse=True)
        return txs[:EVM_HISTORY_LIMIT]

    async def get_solana_history(self, address: str) -> List[Dict[str, Any]]:
        try:
            signatures = await self._rpc(SOLANA_RPC, "getSignaturesForAddress", [address, {"limit": 100}])
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Solana history error: {e}")
            return []
        return [
            _history_row(sig.get("signature"), to_float(sig.get("blockTime")) * 1000, "SOL", "transfer",
                         "Solana", sig.get("confirmationStatus") or "confirmed")
            for sig in signatures or []
        ]

    async def get_sui_history(self, address: str) -> List[Dict[str, Any]]:
        query = {"filter": {"FromAddress": address}, "options": {"showEffects": True, "showTimestamp": True}}
        try:
            result = await self._rpc(SUI_RPC, "suix_queryTransactionBlocks", [query, None, 50, True])
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"SUI history error: {e}")
            return []
        rows = []
        for tx in (result or {}).get("data") or []:
            status = (((tx.get("effects") or {}).get("status") or {}).get("status"))
            rows.append(_history_row(tx.get("digest"), tx.get("timestampMs"), "SUI", "sell", "Sui",
                                     "Confirmed" if status == "success" else "Failed"))
        return rows

    async def get_aptos_history(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{APTOS_API}/accounts/{address}/transactions", {"limit": 50})
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Aptos history error: {e}")
            return []
        # aptos timestamps are microseconds
        return [
            _history_row(tx.get("hash"), to_float(tx.get("timestamp")) / 1000, "APT", "sell", "Aptos",
                         "Confirmed" if tx.get("success") else "Failed")
            for tx in data if isinstance(tx, dict)
        ] if isinstance(data, list) else []

    async def get_ton_history(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{TONCENTER_API}/getTransactions", {"address": address, "limit": 50})
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"TON history error: {e}")
            return []
        if not data.get("ok") or not data.get("result"):
            return []
        rows = []
        for tx in data["result"]:
            out_msgs = tx.get("out_msgs") or [{}]
            value = (tx.get("in_msg") or {}).get("value") or out_msgs[0].get("value") or 0
            rows.append(_history_row((tx.get("transaction_id") or {}).get("hash"), to_float(tx.get("utime")) * 1000,
                                     "TON", "transfer", "TON", "Confirmed", to_float(value) / 1e9))
        return rows

    async def get_tron_history(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{TRONGRID_API}/accounts/{address}/transactions", {"limit": 50})
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"TRON history error: {e}")
            return []
        rows = []
        for tx in data.get("data") or []:
            ret = tx.get("ret") or [{}]
            rows.append(_history_row(tx.get("txID"), tx.get("block_timestamp"), "TRX", "transfer", "TRON",
                                     "Confirmed" if ret[0].get("contractRet") == "SUCCESS" else "Failed"))
        return rows

    async def get_xrp_history(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{XRPSCAN_API}/account/{address}/transactions", {"limit": 50})
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"XRP history error: {e}")
            return []
        rows = []
        for tx in data.get("transactions") or []:
            date = pd.to_datetime(tx.get("date"), errors="coerce", utc=True)
            if pd.isna(date):
                if tx.get("date"):
                    logger.debug(f"Skipping XRP tx {tx.get('hash')} with unparsable date")
                    continue
                timestamp = 0
            else:
                timestamp = date.value // 1_000_000
            rows.append(_history_row(
                tx.get("hash"), timestamp, "XRP",
                "transfer" if tx.get("type") == "Payment" else "other",
                "XRP",
                "Confirmed" if tx.get("result") == "tesSUCCESS" else "Failed",
                to_float((tx.get("amount") or {}).get("value") if isinstance(tx.get("amount"), dict) else 0),
            ))
        return rows

    async def get_bitcoin_history(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{BLOCKCHAIN_INFO_API}/rawaddr/{address}", {"limit": 50})
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"BTC history error: {e}")
            return []
        rows = []
        for tx in data.get("txs") or []:
            # positive result means the address received funds
            delta = to_float(tx.get("result"))
            rows.append(_history_row(tx.get("hash"), to_float(tx.get("time")) * 1000, "BTC",
                                     "buy" if delta >= 0 else "sell", "Bitcoin",
                                     "Confirmed" if tx.get("block_height") else "Pending", abs(delta) / 1e8))
        return rows

    async def get_hedera_history(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = await self._get_json(f"{HEDERA_MIRROR_API}/transactions",
                                        {"account.id": address, "limit": 50, "order": "desc"})
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"HBAR history error: {e}")
            return []
        rows = []
        for tx in data.get("transactions") or []:
            own = sum(to_float(t.get("amount")) for t in tx.get("transfers") or [] if t.get("account") == address)
            rows.append(_history_row(tx.get("transaction_id"), to_float(tx.get("consensus_timestamp")) * 1000,
                                     "HBAR", "buy" if own >= 0 else "sell", "Hedera",
                                     "Confirmed" if tx.get("result") == "SUCCESS" else "Failed", abs(own) / 1e8))
        return rows


def get_wallet_service() -> WalletService:
    return WalletService()
