from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from app.core.database import Base

class AppSetting(Base):
    """Arbitrary JSON settings blob stored by key (preferences, layouts, ...)"""
    __tablename__ = "app_settings"

    key = Column(String, primary_key=True, index=True)
    value = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
