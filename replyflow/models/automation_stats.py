"""
Response counters per automation.
"""
from sqlalchemy import Column, Integer, DateTime, ForeignKey
from datetime import datetime
from replyflow.db.base import Base


class AutomationStats(Base):
    __tablename__ = "automation_stats"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)

    # Counters
    dm_count = Column(Integer, default=0, nullable=False)  # DMs and carousels
    comment_count = Column(Integer, default=0, nullable=False)

    # Timestamps
    last_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AutomationStats(automation_id={self.automation_id}, dms={self.dm_count}, comments={self.comment_count})>"
