from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import CamelModel


class JournalTradeIn(CamelModel):
    id: Optional[str] = None
    symbol: str
    raw_symbol: Optional[str] = None
    side: str
    price: float = 0.0
    amount: float = 0.0
    timestamp: int
    close_time: Optional[int] = None
    exchange: Optional[str] = None
    instrument_type: Optional[str] = None
    market_type: Optional[str] = None
    pnl: float = 0.0
    fee: float = 0.0
    fee_currency: Optional[str] = None
    status: Optional[str] = None
    source_type: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    screenshots: Optional[List[str]] = None
    strategy_tag: Optional[str] = None
    execution_quality: Optional[int] = Field(None, ge=1, le=5)
    mistake_tags: Optional[List[str]] = None


class JournalBatchIn(CamelModel):
    trades: List[JournalTradeIn]


class JournalAnnotation(CamelModel):
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    screenshots: Optional[List[str]] = None
    strategy_tag: Optional[str] = None
    execution_quality: Optional[int] = Field(None, ge=1, le=5)
    mistake_tags: Optional[List[str]] = None
    close_time: Optional[int] = None
    pnl: Optional[float] = None
    status: Optional[str] = None


class JournalSyncKeys(CamelModel):
    hyperliquid_wallet: Optional[str] = None
    binance_api_key: Optional[str] = None
    binance_secret: Optional[str] = None
    bybit_api_key: Optional[str] = None
    bybit_secret: Optional[str] = None


class JournalSyncRequest(CamelModel):
    keys: Optional[JournalSyncKeys] = None
    options: Optional[Dict[str, Any]] = None
    persist: bool = False
