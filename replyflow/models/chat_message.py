from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime
from datetime import datetime
from replyflow.db.base import Base


class ChatMessage(Base):
    """One turn of a SmartAI conversation between a page and a customer."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    page_id = Column(String, nullable=False, index=True)
    sender_id = Column(String, nullable=False, index=True)  # Customer IGSID
    role = Column(String, nullable=False)  # user | assistant
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
