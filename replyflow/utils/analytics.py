"""
Analytics event logging for automation runs.
"""
import logging
from typing import Optional

from replyflow.models.analytics_event import AnalyticsEvent, EventType

logger = logging.getLogger(__name__)


def log_analytics_event_sync(
    db,
    user_id: int,
    event_type,
    automation_id: Optional[int] = None,
    media_id: Optional[str] = None,
    metadata: Optional[dict] = None
) -> Optional[int]:
    """
    Synchronously log an analytics event to the database.

    Args:
        db: SQLAlchemy database session
        user_id: Business owner user ID
        event_type: Event type (EventType or its string value)
        automation_id: Optional automation ID
        media_id: Optional Instagram media ID
        metadata: Optional additional metadata

    Returns:
        Optional[int]: Event ID if successful, None otherwise
    """
    if isinstance(event_type, str):
        try:
            event_type = EventType(event_type)
        except ValueError:
            logger.warning("⚠️ Invalid event type: %s", event_type)
            return None

    try:
        event = AnalyticsEvent(
            user_id=user_id,
            automation_id=automation_id,
            media_id=media_id,
            event_type=event_type,
            event_metadata=metadata or {}
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event.id
    except Exception as e:
        db.rollback()
        logger.error("❌ Failed to log analytics event %s: %s", event_type, e)
        return None
