from datetime import datetime, timezone

from fastapi import APIRouter

from app.core.database import is_database_configured
from app.core.redis_client import redis_status
from app.services.backup_service import is_backup_configured

router = APIRouter()


@router.get("/health")
def health_check():
    """Liveness plus which optional backends are configured"""
    return {
        "ok": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "databaseConfigured": is_database_configured(),
        "backupConfigured": is_backup_configured(),
        "redis": redis_status(),
    }
