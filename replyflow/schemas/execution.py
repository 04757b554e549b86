from pydantic import BaseModel
from typing import List, Optional


class InboundEvent(BaseModel):
    """A webhook event normalised to what the flow engine consumes."""
    kind: str  # DM | COMMENT
    page_id: str
    sender_id: str
    text: Optional[str] = None
    comment_id: Optional[str] = None
    media_id: Optional[str] = None
    message_id: Optional[str] = None
    is_postback: bool = False


class ExecutionContext(BaseModel):
    automation_id: int
    user_id: int
    token: str
    page_id: str
    sender_id: str
    message_text: Optional[str] = None
    comment_id: Optional[str] = None
    media_id: Optional[str] = None
    trigger_type: str
    user_plan: str = "free"
    ai_api_key: Optional[str] = None


class ActionResult(BaseModel):
    success: bool
    message: str
    node_id: Optional[str] = None


class FlowResult(BaseModel):
    success: bool
    message: str
    results: List[ActionResult] = []
    execution_path: List[str] = []


class MatchResult(BaseModel):
    automation_id: int
    keyword: Optional[str] = None
    is_wildcard: bool = False
