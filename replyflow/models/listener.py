from sqlalchemy import Column, Integer, String, ForeignKey
from enum import Enum
from replyflow.db.base import Base


class ListenerType(str, Enum):
    MESSAGE = "MESSAGE"
    SMARTAI = "SMARTAI"
    CAROUSEL = "CAROUSEL"


class Listener(Base):
    """Single-action configuration used when an automation has no flow graph."""
    __tablename__ = "listeners"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    listener = Column(String, nullable=False, default=ListenerType.MESSAGE.value)
    prompt = Column(String, nullable=True)  # DM text, or persona prompt for SMARTAI
    comment_reply = Column(String, nullable=True)
    carousel_template_id = Column(Integer, ForeignKey("carousel_templates.id", ondelete="SET NULL"), nullable=True)
