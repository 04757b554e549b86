from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class AutomationCreate(BaseModel):
    name: str = "Untitled"
    triggers: List[str] = []
    keywords: List[str] = []
    media_ids: List[str] = []


class AutomationActiveUpdate(BaseModel):
    active: bool


class AutomationResponse(BaseModel):
    id: int
    user_id: int
    name: str
    active: bool
    created_at: datetime
    triggers: List[str] = []
    keywords: List[str] = []
    has_flow: bool = False

    class Config:
        from_attributes = True


class CarouselButtonIn(BaseModel):
    type: str = "WEB_URL"
    title: str = ""
    payload: Optional[str] = None


class CarouselElementIn(BaseModel):
    title: str = ""
    subtitle: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    default_action: Optional[str] = Field(None, alias="defaultAction")
    buttons: List[CarouselButtonIn] = []

    class Config:
        populate_by_name = True


class CarouselSaveRequest(BaseModel):
    elements: List[CarouselElementIn]
    attach_to_listener: bool = Field(True, alias="attachToListener")

    class Config:
        populate_by_name = True


class CarouselSaveResponse(BaseModel):
    template_id: int
    element_count: int
