from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from app.core.jwt import get_backup_user_id
from app.schemas.cloud import BackupUploadRequest
from app.services.backup_service import BackupService, get_backup_service

router = APIRouter()


@router.get("/list")
def list_backups(
    user_id: str = Depends(get_backup_user_id),
    backups: BackupService = Depends(get_backup_service),
):
    """List the caller's backups, newest first"""
    return backups.list_backups(user_id)


@router.post("/upload")
def upload_backup(
    body: BackupUploadRequest,
    user_id: str = Depends(get_backup_user_id),
    backups: BackupService = Depends(get_backup_service),
):
    """Store a backup file"""
    return backups.upload_backup(user_id, body.filename, body.data)


@router.get("/download")
def download_backup(
    file: Optional[str] = Query(None, description="Backup filename"),
    user_id: str = Depends(get_backup_user_id),
    backups: BackupService = Depends(get_backup_service),
):
    """Return the raw backup JSON with its checksum header"""
    content, checksum = backups.download_backup(user_id, file)
    return Response(content=content, media_type="application/json", headers={"X-Backup-Checksum": checksum})


@router.delete("/delete")
def delete_backup(
    file: Optional[str] = Query(None, description="Backup filename"),
    user_id: str = Depends(get_backup_user_id),
    backups: BackupService = Depends(get_backup_service),
):
    """Delete a backup file"""
    return backups.delete_backup(user_id, file)
