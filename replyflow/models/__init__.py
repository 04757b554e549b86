from replyflow.models.user import User
from replyflow.models.integration import Integration
from replyflow.models.automation import Automation, Trigger, Keyword, AutomationPost, TriggerType
from replyflow.models.listener import Listener, ListenerType
from replyflow.models.carousel import CarouselTemplate, CarouselElement, CarouselButton, ButtonType
from replyflow.models.flow import FlowNode, FlowEdge, NodeType
from replyflow.models.chat_message import ChatMessage
from replyflow.models.automation_stats import AutomationStats
from replyflow.models.analytics_event import AnalyticsEvent, EventType

__all__ = [
    "User",
    "Integration",
    "Automation",
    "Trigger",
    "Keyword",
    "AutomationPost",
    "TriggerType",
    "Listener",
    "ListenerType",
    "CarouselTemplate",
    "CarouselElement",
    "CarouselButton",
    "ButtonType",
    "FlowNode",
    "FlowEdge",
    "NodeType",
    "ChatMessage",
    "AutomationStats",
    "AnalyticsEvent",
    "EventType",
]
