import uuid
from typing import Any, Dict, List, Optional

from fastapi import Depends
from loguru import logger
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import decrypt_data, encrypt_data, mask_secret
from app.models.connection import PortfolioConnection


class ConnectionService:
    """Stores exchange credentials encrypted so order placement can refer to a connection id"""

    def __init__(self, db: Session):
        self.db = db

    def register(self, exchange_id: str, api_key: str, secret: str,
                 name: Optional[str] = None, connection_id: Optional[str] = None) -> PortfolioConnection:
        connection = None
        if connection_id:
            connection = self.db.query(PortfolioConnection).filter(PortfolioConnection.id == connection_id).first()

        if connection is None:
            connection = PortfolioConnection(id=connection_id or str(uuid.uuid4()))
            self.db.add(connection)

        connection.exchange_id = exchange_id
        connection.name = name or connection.name or exchange_id
        connection.api_key = encrypt_data(api_key)
        connection.secret = encrypt_data(secret)
        connection.is_active = True

        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error registering {exchange_id} connection: {e}")
            raise
        self.db.refresh(connection)
        logger.info(f"Registered {exchange_id} connection {connection.id}")
        return connection

    def get_credentials(self, connection_id: str) -> Optional[Dict[str, str]]:
        connection = self.db.query(PortfolioConnection).filter(
            PortfolioConnection.id == connection_id,
            PortfolioConnection.is_active.is_(True)
        ).first()
        if not connection:
            return None
        return {
            "exchangeId": connection.exchange_id,
            "apiKey": decrypt_data(connection.api_key),
            "secret": decrypt_data(connection.secret),
        }

    def list_connections(self) -> List[Dict[str, Any]]:
        connections = self.db.query(PortfolioConnection).order_by(PortfolioConnection.created_at).all()
        result = []
        for connection in connections:
            try:
                masked = mask_secret(decrypt_data(connection.api_key))
            except ValueError:
                masked = ""
            result.append({
                "id": connection.id,
                "name": connection.name,
                "exchangeId": connection.exchange_id,
                "apiKey": masked,
                "isActive": bool(connection.is_active),
                "createdAt": connection.created_at.isoformat() if connection.created_at else None,
            })
        return result

    def delete(self, connection_id: str) -> bool:
        connection = self.db.query(PortfolioConnection).filter(PortfolioConnection.id == connection_id).first()
        if not connection:
            return False
        self.db.delete(connection)
        self.db.commit()
        logger.info(f"Deleted connection {connection_id}")
        return True


def get_connection_service(db: Session = Depends(get_db)) -> ConnectionService:
    return ConnectionService(db)
