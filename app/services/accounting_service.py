"""
Ledger construction and FIFO cost basis for a single asset.

Trades and transfers from any venue are folded into one time-ordered list
of :class:`LedgerEvent`; :func:`compute_cost_basis_snapshot` replays it
against a queue of lots.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from app.services.normalization import normalize_symbol, to_float

LOT_EPSILON = 1e-12

TRADE_BUY = "TRADE_BUY"
TRADE_SELL = "TRADE_SELL"
TRANSFER_IN = "TRANSFER_IN"
TRANSFER_OUT = "TRANSFER_OUT"
INTERNAL_MOVE_IN = "INTERNAL_MOVE_IN"
INTERNAL_MOVE_OUT = "INTERNAL_MOVE_OUT"
FEE = "FEE"
FUNDING = "FUNDING"

INBOUND_TRANSFERS = (TRANSFER_IN, INTERNAL_MOVE_IN)
OUTBOUND_TRANSFERS = (TRANSFER_OUT, INTERNAL_MOVE_OUT)


@dataclass
class LedgerEvent:
    id: str
    kind: str
    symbol: str
    timestamp: int
    qty: float
    price: Optional[float] = None
    fee_usd: float = 0.0
    fee_asset: Optional[str] = None
    quote_asset: Optional[str] = None
    connection_id: Optional[str] = None
    exchange: Optional[str] = None
    source_type: Optional[str] = None
    estimated_basis: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "id": data["id"],
            "kind": data["kind"],
            "symbol": data["symbol"],
            "timestamp": data["timestamp"],
            "qty": data["qty"],
            "price": data["price"],
            "feeUsd": data["fee_usd"],
            "feeAsset": data["fee_asset"],
            "quoteAsset": data["quote_asset"],
            "connectionId": data["connection_id"],
            "exchange": data["exchange"],
            "sourceType": data["source_type"],
            "estimatedBasis": data["estimated_basis"],
        }


@dataclass
class Lot:
    qty: float
    cost_usd: float
    estimated: bool
    timestamp: int


def _in_range(ts: float, from_ms: Optional[int], to_ms: Optional[int]) -> bool:
    if ts <= 0:
        return False
    if from_ms is not None and ts < from_ms:
        return False
    if to_ms is not None and ts > to_ms:
        return False
    return True


def _fee_usd(tx: Dict[str, Any]) -> float:
    if isinstance(tx.get("feeUsd"), (int, float)):
        return float(tx["feeUsd"])
    if isinstance(tx.get("fee"), (int, float)):
        return float(tx["fee"])
    return 0.0


def transfer_kind(transfer: Dict[str, Any]) -> str:
    transfer_type = str(transfer.get("type") or "").lower()
    internal = bool(transfer.get("isInternalTransfer")) or transfer_type == "internal"
    outgoing = "with" in transfer_type
    if internal:
        return INTERNAL_MOVE_OUT if outgoing else INTERNAL_MOVE_IN
    return TRANSFER_OUT if outgoing else TRANSFER_IN


def build_ledger_events(symbol: str,
                        transactions: Iterable[Dict[str, Any]],
                        transfers: Optional[Iterable[Dict[str, Any]]] = None,
                        from_ms: Optional[int] = None,
                        to_ms: Optional[int] = None,
                        deposit_basis_price: float = 0.0) -> List[LedgerEvent]:
    target = normalize_symbol(symbol)
    events: List[LedgerEvent] = []

    for tx in transactions or []:
        ts = to_float(tx.get("timestamp"))
        if not _in_range(ts, from_ms, to_ms):
            continue
        if normalize_symbol(tx.get("symbol") or tx.get("asset") or "") != target or not target:
            continue

        side = str(tx.get("side") if tx.get("side") is not None else tx.get("type") or "").lower()
        tx_type = str(tx.get("type") or "").lower()
        amount = to_float(tx.get("amount"))
        price = to_float(tx.get("price"))
        if amount <= 0:
            continue

        common = dict(
            id=str(tx.get("id")),
            symbol=target,
            timestamp=int(ts),
            qty=amount,
            connection_id=tx.get("connectionId"),
            exchange=tx.get("exchange"),
            source_type=tx.get("sourceType"),
        )

        if side == "funding" or tx.get("feeType") == "funding":
            events.append(LedgerEvent(kind=FUNDING, **common))
            continue

        is_buy = side in ("buy", "long") or tx_type == "buy"
        is_sell = side in ("sell", "short") or tx_type == "sell"
        if not (is_buy or is_sell) or price <= 0:
            continue

        events.append(LedgerEvent(
            kind=TRADE_BUY if is_buy else TRADE_SELL,
            price=price,
            fee_usd=_fee_usd(tx),
            fee_asset=tx.get("feeAsset") or tx.get("feeCurrency"),
            quote_asset=tx.get("quoteAsset"),
            estimated_basis=bool(tx.get("estimatedBasis")),
            **common,
        ))

    for transfer in transfers or []:
        ts = to_float(transfer.get("timestamp"))
        if not _in_range(ts, from_ms, to_ms):
            continue
        if normalize_symbol(transfer.get("symbol") or transfer.get("asset") or "") != target or not target:
            continue
        qty = to_float(transfer.get("amount"))
        if qty <= 0:
            continue

        kind = transfer_kind(transfer)
        events.append(LedgerEvent(
            id=str(transfer.get("id")),
            kind=kind,
            symbol=target,
            timestamp=int(ts),
            qty=qty,
            price=deposit_basis_price if deposit_basis_price > 0 else None,
            fee_usd=float(transfer["feeUsd"]) if isinstance(transfer.get("feeUsd"), (int, float)) else 0.0,
            fee_asset=transfer.get("feeAsset"),
            connection_id=transfer.get("connectionId"),
            source_type=transfer.get("sourceType"),
            estimated_basis=kind in INBOUND_TRANSFERS,
        ))

    events.sort(key=lambda e: e.timestamp)
    return events


class _LotQueue:
    def __init__(self):
        self.lots: List[Lot] = []

    def add(self, qty: float, cost: float, estimated: bool, timestamp: int):
        self.lots.append(Lot(qty=qty, cost_usd=cost, estimated=estimated, timestamp=timestamp))

    def consume(self, qty: float) -> float:
        """Remove ``qty`` oldest-first and return the cost it carried."""
        remaining = qty
        consumed_cost = 0.0
        while remaining > 0 and self.lots:
            lot = self.lots[0]
            take = min(remaining, lot.qty)
            unit_cost = lot.cost_usd / lot.qty if lot.qty > 0 else 0.0
            consumed_cost += take * unit_cost
            lot.qty -= take
            lot.cost_usd -= take * unit_cost
            remaining -= take
            if lot.qty <= LOT_EPSILON:
                self.lots.pop(0)
        return consumed_cost

    @property
    def qty(self) -> float:
        return sum(lot.qty for lot in self.lots)

    @property
    def cost(self) -> float:
        return sum(lot.cost_usd for lot in self.lots)

    @property
    def estimated(self) -> bool:
        return any(lot.estimated for lot in self.lots)


def compute_cost_basis_snapshot(events: Iterable[LedgerEvent],
                                current_price: float,
                                current_balance: float) -> Dict[str, Any]:
    lots = _LotQueue()
    totals = {
        "totalBought": 0.0, "totalSold": 0.0, "totalCost": 0.0, "totalProceeds": 0.0,
        "realizedPnl": 0.0, "totalFeesUsd": 0.0,
    }
    buy_count = sell_count = 0
    first_buy = last_buy = last_sell = 0

    for event in events:
        qty = to_float(event.qty)
        if qty <= 0:
            continue
        fee = to_float(event.fee_usd)
        if fee > 0:
            totals["totalFeesUsd"] += fee
        price = to_float(event.price)

        if event.kind == TRADE_BUY or event.kind in INBOUND_TRANSFERS:
            if price <= 0:
                continue
            is_trade = event.kind == TRADE_BUY
            cost = qty * price + (fee if is_trade else 0.0)
            lots.add(qty, cost, event.estimated_basis if is_trade else True, event.timestamp)
            totals["totalBought"] += qty
            totals["totalCost"] += cost
            buy_count += 1
            first_buy = first_buy or event.timestamp
            last_buy = event.timestamp
        elif event.kind == TRADE_SELL:
            if price <= 0:
                continue
            proceeds = qty * price - fee
            totals["realizedPnl"] += proceeds - lots.consume(qty)
            totals["totalSold"] += qty
            totals["totalProceeds"] += proceeds
            sell_count += 1
            last_sell = event.timestamp
        elif event.kind in OUTBOUND_TRANSFERS:
            lots.consume(qty)
            totals["totalSold"] += qty
            sell_count += 1
            last_sell = event.timestamp
        # FEE and FUNDING only count toward fees

    lots_qty = lots.qty
    avg_buy_current = lots.cost / lots_qty if lots_qty > 0 else 0.0
    avg_buy_lifetime = totals["totalCost"] / totals["totalBought"] if totals["totalBought"] > 0 else 0.0
    avg_sell = totals["totalProceeds"] / totals["totalSold"] if totals["totalSold"] > 0 else 0.0

    covered = max(0.0, min(to_float(current_balance), lots_qty))
    cost_basis = covered * avg_buy_current if covered > 0 and avg_buy_current > 0 else 0.0
    unrealized = covered * current_price - cost_basis if covered > 0 and current_price > 0 else 0.0

    return {
        "avgBuyPriceCurrent": avg_buy_current,
        "avgBuyPriceLifetime": avg_buy_lifetime,
        "avgSellPrice": avg_sell,
        "costBasis": cost_basis,
        "realizedPnl": totals["realizedPnl"],
        "unrealizedPnl": unrealized,
        "totalFeesUsd": totals["totalFeesUsd"],
        "basisConfidence": "estimated" if lots.estimated else "exact",
        "totalBought": totals["totalBought"],
        "totalSold": totals["totalSold"],
        "totalCost": totals["totalCost"],
        "totalProceeds": totals["totalProceeds"],
        "buyCount": buy_count,
        "sellCount": sell_count,
        "netPosition": totals["totalBought"] - totals["totalSold"],
        "firstBuyDate": first_buy,
        "lastBuyDate": last_buy,
        "lastSellDate": last_sell,
    }


def cost_basis_report(symbol: str, transactions, transfers, current_price: float, current_balance: float,
                      from_ms: Optional[int] = None, to_ms: Optional[int] = None,
                      deposit_basis_price: float = 0.0) -> Dict[str, Any]:
    events = build_ledger_events(symbol, transactions, transfers, from_ms, to_ms, deposit_basis_price)
    return {
        "symbol": normalize_symbol(symbol),
        "events": [event.to_dict() for event in events],
        "snapshot": compute_cost_basis_snapshot(events, current_price, current_balance),
    }
