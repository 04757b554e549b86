from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
from replyflow.db.base import Base


class Integration(Base):
    """A connected Instagram professional account (page) owned by a user."""
    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    instagram_id = Column(String, nullable=False, index=True)  # Page id webhooks are addressed to
    username = Column(String, nullable=True)
    encrypted_token = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
