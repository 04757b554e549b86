"""
Model for storing granular analytics events for automation tracking.
"""
from sqlalchemy import Column, Integer, String, JSON, ForeignKey, DateTime, Enum as SQLEnum
from datetime import datetime
from enum import Enum
from replyflow.db.base import Base


class EventType(str, Enum):
    """Types of analytics events that can be tracked."""
    TRIGGER_MATCHED = "trigger_matched"  # Inbound event resolved to an automation
    DM_SENT = "dm_sent"
    COMMENT_REPLIED = "comment_replied"  # Public comment reply sent
    CAROUSEL_SENT = "carousel_sent"
    AI_REPLY_GENERATED = "ai_reply_generated"


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=True, index=True)
    media_id = Column(String, nullable=True, index=True)

    event_type = Column(SQLEnum(EventType), nullable=False, index=True)
    event_metadata = Column(JSON, nullable=True)  # sender_id, node_id, etc.

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AnalyticsEvent(id={self.id}, type={self.event_type}, automation_id={self.automation_id})>"
