from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, UniqueConstraint
from datetime import datetime
from enum import Enum
from replyflow.db.base import Base


class TriggerType(str, Enum):
    DM = "DM"
    COMMENT = "COMMENT"


class Automation(Base):
    __tablename__ = "automations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False, default="Untitled")
    active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Automation(id={self.id}, name={self.name}, active={self.active})>"


class Trigger(Base):
    __tablename__ = "triggers"
    __table_args__ = (
        UniqueConstraint("automation_id", "type", name="uq_trigger_automation_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)  # TriggerType value


class Keyword(Base):
    __tablename__ = "keywords"
    __table_args__ = (
        UniqueConstraint("automation_id", "word", name="uq_keyword_automation_word"),
    )

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    word = Column(String, nullable=False)


class AutomationPost(Base):
    """Media a comment automation is restricted to."""
    __tablename__ = "automation_posts"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    media_id = Column(String, nullable=False, index=True)
    caption = Column(String, nullable=True)
