from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from replyflow.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    plan_tier = Column(String, default="free", nullable=False)  # free | pro | enterprise
    encrypted_openai_key = Column(String, nullable=True)  # Optional per-user OpenAI key override
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
