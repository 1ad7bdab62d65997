from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional

class Settings(BaseSettings):
    # Database - defaults to SQLite if not provided
    database_url: str = "sqlite:///./trade_marathon.db"

    # Database connection settings (PostgreSQL only)
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_pool_recycle: int = 3600
    database_connect_timeout: int = 10
    database_sslmode: str = "prefer"  # prefer, require, disable

    # Redis - falls back to an in-process store if not reachable
    redis_url: str = "redis://localhost:6379"

    # App settings
    app_name: str = "Trade Marathon API"
    debug: bool = False
    api_port: int = Field(35821, alias="API_PORT")
    api_base_url: str = "http://localhost:35821"
    cors_origins: List[str] = [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://127.0.0.1:35821",
        "http://localhost:35821",
    ]

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Secrets at rest (exchange credentials stored for order placement)
    encryption_key_seed: str = "change-this-encryption-seed-in-production"

    # Exchanges
    exchange_timeout_ms: int = 15000
    bybit_api_base_url: Optional[str] = Field(None, alias="BYBIT_API_BASE_URL")  # comma separated
    bybit_recv_window: int = 20000

    # Cloud storage OAuth
    google_drive_client_id: Optional[str] = Field(None, alias="GOOGLE_DRIVE_CLIENT_ID")
    google_drive_client_secret: Optional[str] = Field(None, alias="GOOGLE_DRIVE_CLIENT_SECRET")
    dropbox_app_key: Optional[str] = Field(None, alias="DROPBOX_APP_KEY")
    dropbox_app_secret: Optional[str] = Field(None, alias="DROPBOX_APP_SECRET")
    app_url: Optional[str] = Field(None, alias="APP_URL")  # used to build OAuth redirect URIs
    google_token_url: str = "https://oauth2.googleapis.com/token"
    dropbox_token_url: str = "https://api.dropboxapi.com/oauth2/token"

    # Cloud backup (S3 storage + HS256 user tokens)
    supabase_jwt_secret: Optional[str] = Field(None, alias="SUPABASE_JWT_SECRET")
    jwt_algorithm: str = "HS256"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    backup_bucket_name: Optional[str] = Field(None, alias="BACKUP_BUCKET_NAME")
    backup_max_per_user: int = 20

    # Server-side alert checker
    alert_checker_enabled: bool = False
    alert_check_interval_seconds: int = 60
    alert_cooldown_seconds: int = 300

    class Config:
        env_file = ".env"
        populate_by_name = True  # Allow both field name and alias to work
        case_sensitive = False  # Case-insensitive for environment variables
        extra = "ignore"

settings = Settings()
