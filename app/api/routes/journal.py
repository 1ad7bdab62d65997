from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import ApiError
from app.schemas.base import to_wire
from app.schemas.journal import JournalAnnotation, JournalBatchIn, JournalSyncRequest, JournalTradeIn
from app.services.journal_service import DEFAULT_LIST_LIMIT, JournalService, get_journal_service
from app.services.journal_stats import EXECUTION_QUALITY, STRATEGY_TAGS
from app.services.journal_sync_service import JournalSyncService, get_journal_sync_service

router = APIRouter()


@router.get("")
def list_journal_trades(
    symbol: Optional[str] = Query(None, description="Symbol, matched after normalization"),
    exchange: Optional[str] = Query(None, description="Exchange name (case-insensitive)"),
    from_ms: Optional[int] = Query(None, description="Start of range (epoch ms)"),
    to_ms: Optional[int] = Query(None, description="End of range (epoch ms)"),
    limit: int = Query(DEFAULT_LIST_LIMIT, description="Max rows, capped at 5000"),
    journal: JournalService = Depends(get_journal_service),
):
    """List stored journal trades, newest first"""
    trades = journal.list_trades(symbol, exchange, from_ms, to_ms, limit)
    return {"trades": trades, "count": len(trades)}


@router.post("")
def save_journal_trades(
    body: Union[JournalBatchIn, JournalTradeIn],
    journal: JournalService = Depends(get_journal_service),
):
    """Insert or update one trade or a batch of trades"""
    trades = body.trades if isinstance(body, JournalBatchIn) else [body]
    try:
        return journal.upsert_trades([t.model_dump(by_alias=True, exclude_none=True) for t in trades])
    except SQLAlchemyError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save trades: {str(e)}")


@router.get("/stats")
def get_journal_stats(
    symbol: Optional[str] = Query(None),
    exchange: Optional[str] = Query(None),
    from_ms: Optional[int] = Query(None),
    to_ms: Optional[int] = Query(None),
    journal: JournalService = Depends(get_journal_service),
):
    """Performance statistics, curves and breakdowns over stored trades"""
    return journal.stats(symbol, exchange, from_ms, to_ms)


@router.get("/strategy-tags")
def get_strategy_tags():
    """Strategy tag and execution quality catalogue"""
    return {"strategyTags": STRATEGY_TAGS, "executionQuality": EXECUTION_QUALITY}


@router.post("/sync")
async def sync_journal(
    body: JournalSyncRequest,
    sync_service: JournalSyncService = Depends(get_journal_sync_service),
    journal: JournalService = Depends(get_journal_service),
):
    """Pull trade history from Hyperliquid, Binance and Bybit"""
    keys = to_wire(body.keys) if body.keys else {}
    try:
        result = await sync_service.sync(keys, body.options)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Journal sync error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Sync failed")

    if body.persist and result["trades"]:
        result["persisted"] = journal.upsert_trades(result["trades"], keep_annotations=True)
    return result


@router.patch("/{trade_id}")
def annotate_journal_trade(
    trade_id: str,
    body: JournalAnnotation,
    journal: JournalService = Depends(get_journal_service),
):
    """Update notes, tags and review fields of a trade"""
    return journal.annotate(trade_id, to_wire(body))


@router.delete("/{trade_id}")
def delete_journal_trade(trade_id: str, journal: JournalService = Depends(get_journal_service)):
    """Delete a journal trade"""
    journal.delete_trade(trade_id)
    return {"success": True}
