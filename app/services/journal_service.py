from typing import Any, Dict, List, Optional

from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.core.database import get_db
from app.core.errors import ApiError, ApiErrorCode
from app.models.journal_trade import JournalTrade
from app.services.journal_stats import STRATEGY_TAG_IDS, build_journal_report
from app.services.normalization import normalize_symbol, now_ms, to_float

DEFAULT_LIST_LIMIT = 500
MAX_LIST_LIMIT = 5000

# incoming camelCase key -> column
_TRADE_FIELDS = {
    "rawSymbol": "raw_symbol",
    "exchange": "exchange",
    "instrumentType": "instrument_type",
    "marketType": "market_type",
    "closeTime": "close_time",
    "status": "status",
    "feeCurrency": "fee_currency",
    "sourceType": "source_type",
    "notes": "notes",
    "tags": "tags",
    "screenshots": "screenshots",
    "strategyTag": "strategy_tag",
    "executionQuality": "execution_quality",
    "mistakeTags": "mistake_tags",
}

_ANNOTATION_FIELDS = {
    "notes": "notes",
    "tags": "tags",
    "screenshots": "screenshots",
    "strategyTag": "strategy_tag",
    "executionQuality": "execution_quality",
    "mistakeTags": "mistake_tags",
    "closeTime": "close_time",
    "pnl": "pnl",
    "status": "status",
}

# user-curated columns a re-sync must not overwrite once filled
_USER_FIELDS = ("notes", "tags", "screenshots", "strategyTag", "executionQuality", "mistakeTags")


def validate_annotation(strategy_tag: Optional[str], execution_quality: Optional[int]):
    if strategy_tag and strategy_tag not in STRATEGY_TAG_IDS:
        raise ApiError(f"Unknown strategy tag: {strategy_tag}", ApiErrorCode.MISSING_PARAMETERS)
    if execution_quality is not None and not 1 <= int(execution_quality) <= 5:
        raise ApiError("Execution quality must be between 1 and 5", ApiErrorCode.MISSING_PARAMETERS)


class JournalService:
    """Persistence and analytics for journal trades"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, symbol: Optional[str] = None, exchange: Optional[str] = None,
               from_ms: Optional[int] = None, to_ms: Optional[int] = None):
        query = self.db.query(JournalTrade)
        if symbol:
            query = query.filter(JournalTrade.symbol == normalize_symbol(symbol))
        if exchange:
            query = query.filter(func.lower(JournalTrade.exchange) == exchange.lower())
        if from_ms is not None:
            query = query.filter(JournalTrade.timestamp >= from_ms)
        if to_ms is not None:
            query = query.filter(JournalTrade.timestamp <= to_ms)
        return query

    def list_trades(self, symbol: Optional[str] = None, exchange: Optional[str] = None,
                    from_ms: Optional[int] = None, to_ms: Optional[int] = None,
                    limit: int = DEFAULT_LIST_LIMIT) -> List[Dict[str, Any]]:
        limit = max(1, min(MAX_LIST_LIMIT, limit or DEFAULT_LIST_LIMIT))
        rows = (
            self._query(symbol, exchange, from_ms, to_ms)
            .order_by(JournalTrade.timestamp.desc())
            .limit(limit)
            .all()
        )
        return [row.to_dict() for row in rows]

    def _apply(self, row: JournalTrade, trade: Dict[str, Any], keep_annotations: bool = False):
        raw_symbol = trade.get("rawSymbol") or trade.get("symbol")
        row.symbol = normalize_symbol(trade.get("symbol") or raw_symbol) or "UNKNOWN"
        row.side = "sell" if str(trade.get("side") or "").lower() in ("sell", "short") else "buy"
        row.price = to_float(trade.get("price"))
        row.amount = to_float(trade.get("amount"))
        row.timestamp = int(to_float(trade.get("timestamp"), now_ms()))
        row.pnl = to_float(trade.get("pnl"))
        row.fee = to_float(trade.get("fee"))
        for key, column in _TRADE_FIELDS.items():
            if key not in trade or trade[key] is None:
                continue
            if keep_annotations and key in _USER_FIELDS and getattr(row, column):
                continue
            setattr(row, column, trade[key])
        if not row.raw_symbol:
            row.raw_symbol = raw_symbol
        if not row.status:
            row.status = "closed"

    def upsert_trades(self, trades: List[Dict[str, Any]], keep_annotations: bool = False) -> Dict[str, int]:
        """
        Insert new trades and overwrite known ones (matched by id).

        With ``keep_annotations`` (exchange re-syncs) notes, tags and review
        fields already set on a stored trade are left alone.
        """
        created = updated = 0
        try:
            for trade in trades:
                validate_annotation(trade.get("strategyTag"), trade.get("executionQuality"))
                trade_id = trade.get("id")
                if not trade_id:
                    trade_id = (
                        f"{trade.get('exchange') or 'manual'}-{trade.get('symbol')}-"
                        f"{trade.get('timestamp')}-{trade.get('side')}-{trade.get('amount')}"
                    )
                row = self.db.get(JournalTrade, str(trade_id))
                if row is None:
                    row = JournalTrade(id=str(trade_id), tags=[], screenshots=[], mistake_tags=[])
                    self.db.add(row)
                    created += 1
                else:
                    updated += 1
                self._apply(row, trade, keep_annotations)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving journal trades: {e}")
            raise
        logger.info(f"Journal upsert: {created} created, {updated} updated")
        return {"created": created, "updated": updated}

    def get_trade(self, trade_id: str) -> JournalTrade:
        row = self.db.get(JournalTrade, trade_id)
        if row is None:
            raise ApiError("Trade not found", ApiErrorCode.NOT_FOUND)
        return row

    def annotate(self, trade_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        validate_annotation(changes.get("strategyTag"), changes.get("executionQuality"))
        row = self.get_trade(trade_id)
        for key, column in _ANNOTATION_FIELDS.items():
            if key in changes:
                setattr(row, column, changes[key])
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error annotating trade {trade_id}: {e}")
            raise
        self.db.refresh(row)
        return row.to_dict()

    def delete_trade(self, trade_id: str):
        row = self.get_trade(trade_id)
        self.db.delete(row)
        self.db.commit()

    def stats(self, symbol: Optional[str] = None, exchange: Optional[str] = None,
              from_ms: Optional[int] = None, to_ms: Optional[int] = None) -> Dict[str, Any]:
        rows = self._query(symbol, exchange, from_ms, to_ms).all()
        return build_journal_report([row.to_dict() for row in rows])


def get_journal_service(db: Session = Depends(get_db)) -> JournalService:
    return JournalService(db)
