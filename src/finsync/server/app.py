"""FastAPI application for the FinSync server.

This module creates and configures the FastAPI application with:
- REST API for groups, memberships, invites and records
- Daily invite expiry job

Usage:
    uvicorn finsync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from finsync.server.api.router import router as api_router
from finsync.server.database import DEFAULT_INVITE_RETENTION_DAYS, Database
from finsync.server.scheduler import InviteExpiryScheduler

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("FINSYNC_DB_PATH", "finsync.db"))
LOG_PATH = Path(os.environ.get("FINSYNC_LOG_PATH", "finsync-server.log"))
INVITE_RETENTION_DAYS = int(
    os.environ.get("FINSYNC_INVITE_RETENTION_DAYS", str(DEFAULT_INVITE_RETENTION_DAYS))
)

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for finsync
    root_logger = logging.getLogger("finsync")
    root_logger.setLevel(logging.INFO)
    if root_logger.handlers:
        return  # Already configured

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


def create_app(
    db: Database,
    invite_retention_days: int = DEFAULT_INVITE_RETENTION_DAYS,
    run_scheduler: bool = False,
) -> FastAPI:
    """Create FastAPI application with a given database.

    Args:
        db: Database instance.
        invite_retention_days: Age in days after which invites expire.
        run_scheduler: Start the daily invite expiry job with the app.

    Returns:
        Configured FastAPI application.
    """
    scheduler = InviteExpiryScheduler(db, invite_retention_days) if run_scheduler else None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info("=" * 60)
        logger.info("FinSync Server Starting")
        logger.info("=" * 60)
        logger.info("  Database: %s", db.path)
        logger.info("  Invite retention: %d days", invite_retention_days)
        logger.info("=" * 60)
        if scheduler:
            scheduler.start()

        yield

        # Shutdown
        if scheduler:
            scheduler.stop()
        logger.info("FinSync Server shutting down")

    application = FastAPI(
        title="FinSync Server",
        description="Partitioned record sync for shared ledgers",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.scheduler = scheduler

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(LOG_PATH)
    return create_app(
        db=Database(DB_PATH),
        invite_retention_days=INVITE_RETENTION_DAYS,
        run_scheduler=True,
    )
