"""Scheduler for automatic maintenance tasks.

This module provides:
- Automatic daily expiry of stale invites at 3:00 AM
- Manual expiry function for CLI usage
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from finsync.server.database import DEFAULT_INVITE_RETENTION_DAYS

if TYPE_CHECKING:
    from finsync.server.database import Database

logger = logging.getLogger(__name__)


def expire_invites(db: Database, older_than_days: int = DEFAULT_INVITE_RETENTION_DAYS) -> int:
    """Delete invites older than ``older_than_days``.

    Args:
        db: Database instance.
        older_than_days: Delete invites created more than this many days ago.

    Returns:
        Number of invites deleted.
    """
    deleted = db.expire_invites(older_than_days)
    if deleted > 0:
        logger.info("Invite expiry completed: %d invite(s) deleted", deleted)
    else:
        logger.debug("Invite expiry: no invites older than %d days", older_than_days)
    return deleted


class InviteExpiryScheduler:
    """Runs the invite expiry job once a day."""

    def __init__(
        self,
        db: Database,
        retention_days: int = DEFAULT_INVITE_RETENTION_DAYS,
        hour: int = 3,
        minute: int = 0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            db: Database instance.
            retention_days: Age in days after which invites are deleted.
            hour: Hour to run the job (0-23).
            minute: Minute to run the job (0-59).
        """
        self._db = db
        self._retention_days = retention_days
        self._hour = hour
        self._minute = minute
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        """Whether the scheduler has been started."""
        return self._scheduler is not None

    def _expire_job(self) -> None:
        """Job function for scheduled invite expiry."""
        logger.info("Starting scheduled invite expiry (retention: %d days)", self._retention_days)
        try:
            expire_invites(self._db, self._retention_days)
        except Exception:
            logger.exception("Error during scheduled invite expiry")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._expire_job,
            trigger=CronTrigger(hour=self._hour, minute=self._minute),
            id="invite_expiry",
            name="Daily invite expiry",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Invite expiry scheduler started (daily at %02d:%02d, retention: %d days)",
            self._hour,
            self._minute,
            self._retention_days,
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Invite expiry scheduler stopped")

    def run_now(self) -> int:
        """Run the invite expiry immediately (manual trigger).

        Returns:
            Number of invites deleted.
        """
        return expire_invites(self._db, self._retention_days)
