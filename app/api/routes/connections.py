from fastapi import APIRouter, Depends

from app.core.errors import ApiError, ApiErrorCode
from app.services.connection_service import ConnectionService, get_connection_service

router = APIRouter()


@router.get("")
def list_connections(connections: ConnectionService = Depends(get_connection_service)):
    """List registered exchange connections (secrets masked)"""
    return {"connections": connections.list_connections()}


@router.delete("/{connection_id}")
def delete_connection(connection_id: str, connections: ConnectionService = Depends(get_connection_service)):
    """Remove a registered connection"""
    if not connections.delete(connection_id):
        raise ApiError("Connection not found", ApiErrorCode.NOT_FOUND)
    return {"success": True}
