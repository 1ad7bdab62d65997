from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.app_setting import AppSetting

router = APIRouter()


@router.get("/{key}")
def get_setting(key: str, db: Session = Depends(get_db)):
    """Read a stored settings blob (null when unset)"""
    row = db.get(AppSetting, key)
    return {"key": key, "value": row.value if row else None}


@router.put("/{key}")
def put_setting(key: str, value: Any = Body(None, embed=True), db: Session = Depends(get_db)):
    """Create or replace a settings blob"""
    row = db.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key)
        db.add(row)
    row.value = value
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving setting {key}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to save setting: {str(e)}")
    return {"key": key, "value": value}
