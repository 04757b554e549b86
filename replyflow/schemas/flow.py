"""
Flow graph schemas: typed per-subType node configuration and the
runtime node/edge views the executor walks.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional


class NodeConfig(BaseModel):
    """Base for node configs. Unknown keys from the dashboard are kept."""

    class Config:
        populate_by_name = True
        extra = "allow"


class EmptyConfig(NodeConfig):
    pass


class KeywordsConfig(NodeConfig):
    keywords: List[str] = []


class HasTagConfig(NodeConfig):
    hashtags: List[str] = []
    keywords: List[str] = []

    @property
    def required_tags(self) -> List[str]:
        tags = self.hashtags or self.keywords
        return [t.lstrip("#").lower() for t in tags if t and t.strip("#")]


class MessageConfig(NodeConfig):
    message: Optional[str] = None


class ReplyCommentConfig(NodeConfig):
    comment_reply: Optional[str] = Field(None, alias="commentReply")


class ReplyMentionConfig(NodeConfig):
    message: Optional[str] = None


class DelayConfig(NodeConfig):
    delay: Optional[float] = None
    seconds: Optional[float] = None

    @property
    def duration(self) -> float:
        return max(self.delay or self.seconds or 0, 0)


class SmartAIConfig(NodeConfig):
    message: Optional[str] = None
    prompt: Optional[str] = None

    @property
    def persona(self) -> Optional[str]:
        return self.message or self.prompt


class CarouselConfig(NodeConfig):
    template_id: Optional[int] = Field(None, alias="templateId")
    message: Optional[str] = None
    prompt: Optional[str] = None

    @property
    def fallback_text(self) -> Optional[str]:
        return self.message or self.prompt


class ButtonSpec(BaseModel):
    type: str = "web_url"
    title: str
    url: Optional[str] = None
    payload: Optional[str] = None

    @field_validator("type")
    @classmethod
    def lowercase_type(cls, v: str) -> str:
        return v.lower()

    def to_wire(self) -> Dict[str, Any]:
        button = {"type": self.type, "title": self.title}
        if self.type == "web_url":
            button["url"] = self.url or self.payload
        else:
            button["payload"] = self.payload or self.title
        return button


class ButtonTemplateConfig(NodeConfig):
    text: Optional[str] = None
    message: Optional[str] = None
    buttons: List[ButtonSpec] = []

    @property
    def body(self) -> Optional[str]:
        return self.text or self.message


class ProductTemplateConfig(NodeConfig):
    product_ids: List[str] = Field(default_factory=list, alias="productIds")


class QuickReply(BaseModel):
    title: str
    payload: Optional[str] = None


class QuickRepliesConfig(NodeConfig):
    text: Optional[str] = None
    quick_replies: List[QuickReply] = Field(default_factory=list, alias="quickReplies")


class IceBreaker(BaseModel):
    question: str
    payload: Optional[str] = None


class IceBreakersConfig(NodeConfig):
    ice_breakers: List[IceBreaker] = Field(default_factory=list, alias="iceBreakers")


class PersistentMenuConfig(NodeConfig):
    menu_items: List[ButtonSpec] = Field(default_factory=list, alias="menuItems")


CONFIG_MODELS = {
    "KEYWORDS": KeywordsConfig,
    "HAS_TAG": HasTagConfig,
    "MESSAGE": MessageConfig,
    "REPLY_COMMENT": ReplyCommentConfig,
    "REPLY_MENTION": ReplyMentionConfig,
    "DELAY": DelayConfig,
    "SMARTAI": SmartAIConfig,
    "CAROUSEL": CarouselConfig,
    "BUTTON_TEMPLATE": ButtonTemplateConfig,
    "PRODUCT_TEMPLATE": ProductTemplateConfig,
    "QUICK_REPLIES": QuickRepliesConfig,
    "ICE_BREAKERS": IceBreakersConfig,
    "PERSISTENT_MENU": PersistentMenuConfig,
}


def parse_node_config(sub_type: str, raw: Optional[Dict[str, Any]]) -> NodeConfig:
    """Validate a raw config bag into the model for its subType.

    Raises pydantic.ValidationError when the bag does not fit.
    """
    model = CONFIG_MODELS.get(sub_type, EmptyConfig)
    return model.model_validate(raw or {})


class FlowNodeView(BaseModel):
    node_id: str
    type: str
    sub_type: str
    label: Optional[str] = None
    config: Dict[str, Any] = {}

    class Config:
        from_attributes = True

    @field_validator("config", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or {}

    def parsed_config(self) -> NodeConfig:
        return parse_node_config(self.sub_type, self.config)


class FlowEdgeView(BaseModel):
    edge_id: str
    source_node_id: str
    target_node_id: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None

    class Config:
        from_attributes = True


class Flow(BaseModel):
    nodes: List[FlowNodeView] = []
    edges: List[FlowEdgeView] = []


# Dashboard save payloads

class FlowNodeIn(BaseModel):
    node_id: str = Field(alias="nodeId")
    type: str
    sub_type: str = Field(alias="subType")
    label: Optional[str] = None
    config: Dict[str, Any] = {}
    position_x: float = Field(0, alias="positionX")
    position_y: float = Field(0, alias="positionY")

    class Config:
        populate_by_name = True

    @field_validator("type")
    @classmethod
    def check_type(cls, v: str) -> str:
        v = v.lower()
        if v not in ("trigger", "condition", "action"):
            raise ValueError(f"Invalid node type: {v}")
        return v


class FlowEdgeIn(BaseModel):
    edge_id: str = Field(alias="edgeId")
    source_node_id: str = Field(alias="sourceNodeId")
    target_node_id: str = Field(alias="targetNodeId")
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")

    class Config:
        populate_by_name = True


class ListenerIn(BaseModel):
    listener: str = "MESSAGE"
    prompt: Optional[str] = None
    comment_reply: Optional[str] = Field(None, alias="commentReply")

    class Config:
        populate_by_name = True


class FlowSaveRequest(BaseModel):
    nodes: List[FlowNodeIn] = []
    edges: List[FlowEdgeIn] = []
    triggers: List[str] = []
    keywords: List[str] = []
    listener: Optional[ListenerIn] = None


class FlowValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    execution_path: List[str] = []
