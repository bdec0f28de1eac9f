import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..database.core import SessionLocal
from ..users.service import UserService

logger = logging.getLogger(__name__)


def cleanup_unverified_users(session_factory: Callable[[], Session] = SessionLocal) -> int:
    """Delete users who never verified their email; their orders cascade."""
    db = session_factory()
    try:
        removed = UserService.cleanup_unverified_users(db, settings.UNVERIFIED_USER_MAX_AGE_DAYS)
    except Exception as e:
        db.rollback()
        logger.error(f"Cleanup job failed: {e}")
        return 0
    finally:
        db.close()
    if removed:
        logger.info(f"Cleaned up {removed} unverified users")
    return removed


class CleanupScheduler:
    """Runs the unverified-user cleanup once at start and then on a fixed interval."""

    def __init__(self, interval_seconds: int = 24 * 60 * 60):
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Cleanup scheduler started (every {self.interval_seconds}s)")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup scheduler stopped")

    async def _loop(self):
        while self._running:
            await asyncio.to_thread(cleanup_unverified_users)
            await asyncio.sleep(self.interval_seconds)


cleanup_scheduler = CleanupScheduler(settings.CLEANUP_INTERVAL_SECONDS)
