"""
Core Module

This module contains core infrastructure components like config, database, security, etc.
"""

from .config import settings, Settings
from .database import get_db, engine, Base, SessionLocal
from .security import encrypt_data, decrypt_data, mask_secret
from .jwt import BackupTokenVerifier, get_backup_user_id
from .errors import ApiError, ApiErrorCode, register_exception_handlers

__all__ = [
    # Config
    "settings",
    "Settings",

    # Database
    "get_db",
    "engine",
    "Base",
    "SessionLocal",

    # Security
    "encrypt_data",
    "decrypt_data",
    "mask_secret",

    # JWT
    "BackupTokenVerifier",
    "get_backup_user_id",

    # Errors
    "ApiError",
    "ApiErrorCode",
    "register_exception_handlers",
]
