"""
Best-effort side channel for response counters and analytics.

Work is scheduled as asyncio tasks that open their own DB session, so a
slow or failing write never delays or fails the reply that caused it.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Set

from sqlalchemy.orm import Session

from replyflow.db.session import SessionLocal
from replyflow.models.automation_stats import AutomationStats
from replyflow.utils.analytics import log_analytics_event_sync

logger = logging.getLogger(__name__)

DM_RESPONSE_TYPES = {"DM", "CAROUSEL"}
COMMENT_RESPONSE_TYPES = {"COMMENT", "MENTION"}


def track_response_sync(db: Session, automation_id: int, response_type: str) -> bool:
    """Increment the DM or comment counter for an automation."""
    try:
        stats = db.query(AutomationStats).filter(AutomationStats.automation_id == automation_id).first()
        if not stats:
            stats = AutomationStats(automation_id=automation_id, dm_count=0, comment_count=0)
            db.add(stats)

        if response_type in COMMENT_RESPONSE_TYPES:
            stats.comment_count = (stats.comment_count or 0) + 1
        elif response_type in DM_RESPONSE_TYPES:
            stats.dm_count = (stats.dm_count or 0) + 1
        else:
            logger.warning("⚠️ Unknown response type for tracking: %s", response_type)
            return False

        stats.last_triggered_at = datetime.utcnow()
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.error("❌ Failed to track %s response for automation %s: %s", response_type, automation_id, e)
        return False


class Tracker:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self._pending: Set[asyncio.Task] = set()

    def _spawn(self, label: str, fn, *args, **kwargs):
        async def run():
            db = self._session_factory()
            try:
                fn(db, *args, **kwargs)
            except Exception as e:
                logger.error("❌ Background %s failed: %s", label, e)
            finally:
                db.close()

        task = asyncio.create_task(run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def track_response(self, automation_id: int, response_type: str):
        return self._spawn("response tracking", track_response_sync, automation_id, response_type)

    def log_event(self, user_id: int, event_type, automation_id: Optional[int] = None,
                  media_id: Optional[str] = None, metadata: Optional[dict] = None):
        return self._spawn(
            "analytics", log_analytics_event_sync, user_id, event_type,
            automation_id=automation_id, media_id=media_id, metadata=metadata,
        )

    async def drain(self):
        """Wait for everything scheduled so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
