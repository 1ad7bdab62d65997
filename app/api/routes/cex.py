from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from app.core.errors import ApiError, ApiErrorCode
from app.schemas.cex import BalanceRequest, CexCredentials, PlaceOrderRequest, RegisterConnectionRequest
from app.services.cex_service import CexService, get_cex_service, require_credentials, require_supported
from app.services.connection_service import ConnectionService, get_connection_service

router = APIRouter()

CONNECTION_NOT_REGISTERED = "Connection not registered. Register in Settings → Connections (Use secure proxy)."
MISSING_ORDER_PARAMETERS = "Missing parameters: exchangeId, apiKey, secret, symbol, side, amount (or use connectionId)"


@router.post("/balance")
async def get_balance(body: BalanceRequest, cex: CexService = Depends(get_cex_service)):
    """Fetch balances (Bybit merges unified, spot and funding accounts)"""
    try:
        return await cex.get_balance(body.resolved_exchange, body.api_key, body.secret, body.account_type)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"CEX balance error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/positions")
def get_positions(body: CexCredentials, cex: CexService = Depends(get_cex_service)):
    """Fetch open derivative positions"""
    try:
        return cex.get_positions(body.resolved_exchange, body.api_key, body.secret)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"CEX positions error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/open-orders")
def get_open_orders(body: CexCredentials, cex: CexService = Depends(get_cex_service)):
    """Fetch open orders"""
    try:
        return cex.get_open_orders(body.resolved_exchange, body.api_key, body.secret)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"CEX open orders error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/place-order")
def place_order(
    body: PlaceOrderRequest,
    cex: CexService = Depends(get_cex_service),
    connections: ConnectionService = Depends(get_connection_service),
):
    """Place a perpetual futures order with a registered connection or raw credentials"""
    if body.connection_id:
        credentials = connections.get_credentials(body.connection_id)
        if not credentials:
            raise ApiError(CONNECTION_NOT_REGISTERED, ApiErrorCode.MISSING_CREDENTIALS)
        exchange_id, api_key, secret = credentials["exchangeId"], credentials["apiKey"], credentials["secret"]
    else:
        exchange_id, api_key, secret = body.resolved_exchange, body.api_key, body.secret
        if not exchange_id or not api_key or not secret:
            raise ApiError(MISSING_ORDER_PARAMETERS, ApiErrorCode.MISSING_PARAMETERS)

    try:
        return cex.place_order(
            exchange_id, api_key, secret, body.symbol, body.side, body.amount,
            order_type=body.type, price=body.price,
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Place order error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Order failed")


@router.post("/trades")
def get_trades(body: CexCredentials, cex: CexService = Depends(get_cex_service)):
    """Fetch trade history with per-symbol fallback and diagnostics"""
    try:
        return cex.get_trades(body.resolved_exchange, body.api_key, body.secret)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"CEX trades error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/transfers")
def get_transfers(body: CexCredentials, cex: CexService = Depends(get_cex_service)):
    """Fetch deposits and withdrawals of the last 90 days"""
    try:
        return cex.get_transfers(body.resolved_exchange, body.api_key, body.secret)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"CEX transfers error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/register-connection")
def register_connection(
    body: RegisterConnectionRequest,
    connections: ConnectionService = Depends(get_connection_service),
):
    """Store encrypted exchange credentials for server-side order placement"""
    exchange_id = body.resolved_exchange
    require_credentials(exchange_id, body.api_key, body.secret)
    require_supported(exchange_id)
    connection = connections.register(
        exchange_id, body.api_key, body.secret, name=body.name, connection_id=body.connection_id
    )
    return {"success": True, "connectionId": connection.id}
