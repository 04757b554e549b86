from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from datetime import datetime
from enum import Enum
from replyflow.db.base import Base


class ButtonType(str, Enum):
    WEB_URL = "WEB_URL"
    POSTBACK = "POSTBACK"


class CarouselTemplate(Base):
    __tablename__ = "carousel_templates"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CarouselElement(Base):
    __tablename__ = "carousel_elements"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("carousel_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    order = Column(Integer, nullable=False, default=0)
    title = Column(String, nullable=False)
    subtitle = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    default_action = Column(String, nullable=True)  # URL opened when the card itself is tapped


class CarouselButton(Base):
    __tablename__ = "carousel_buttons"

    id = Column(Integer, primary_key=True, index=True)
    element_id = Column(Integer, ForeignKey("carousel_elements.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False, default=ButtonType.WEB_URL.value)
    title = Column(String, nullable=False)
    payload = Column(String, nullable=True)  # URL for WEB_URL, opaque string for POSTBACK
