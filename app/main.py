# main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.core.config import settings
from app.core.database import engine, Base  # Ensure Base is imported
from app.core.errors import register_exception_handlers
from app.core.logging import setup_logging
from app.api.routes import (
    accounting,
    alerts,
    app_settings,
    backup,
    binance,
    cex,
    cloud_auth,
    connections,
    health,
    journal,
    market,
    proxy,
    wallet,
)
from app import models  # noqa: F401  registers the ORM tables on Base.metadata
from app.services.scheduler_service import scheduler_service

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("--- APP STARTUP SEQUENCE INITIATED ---")
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Failed to create database tables during startup: {e}")

    if settings.alert_checker_enabled:
        try:
            await scheduler_service.start()
        except Exception as e:
            logger.error(f"Failed to start scheduler service: {e}")
    else:
        logger.info("Server-side alert checker disabled")

    logger.info("--- APP STARTUP SEQUENCE COMPLETED ---")
    yield

    # Shutdown
    await scheduler_service.stop()
    logger.info("--- APP SHUTDOWN SEQUENCE COMPLETED ---")


app = FastAPI(
    title=settings.app_name,
    description="Local API for the crypto portfolio tracker and trading journal",
    version="1.0.0",
    lifespan=lifespan
)

register_exception_handlers(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

# Include routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(cex.router, prefix="/api/cex", tags=["CEX"])
app.include_router(connections.router, prefix="/api/connections", tags=["Connections"])
app.include_router(binance.router, prefix="/api/binance", tags=["Binance"])
app.include_router(journal.router, prefix="/api/journal", tags=["Journal"])
app.include_router(accounting.router, prefix="/api/accounting", tags=["Accounting"])
app.include_router(wallet.router, prefix="/api", tags=["Wallet"])
app.include_router(market.router, prefix="/api", tags=["Market Data"])
app.include_router(cloud_auth.router, prefix="/api/auth", tags=["Cloud Auth"])
app.include_router(proxy.router, prefix="/api/proxy", tags=["Proxy"])
app.include_router(alerts.router, prefix="/api", tags=["Alerts"])
app.include_router(backup.router, prefix="/api/backup", tags=["Backup"])
app.include_router(app_settings.router, prefix="/api/settings", tags=["Settings"])


@app.get("/")
async def root():
    return {"message": "Welcome to the Trade Marathon API"}


@app.get("/api/scheduler/status")
async def get_scheduler_status():
    """Get the status of scheduled jobs"""
    return {
        "scheduler_running": scheduler_service.is_running,
        "jobs": scheduler_service.get_scheduled_jobs() if scheduler_service.is_running else [],
    }
