"""
Persistence for automation flow graphs.
"""
import logging

from sqlalchemy.orm import Session

from replyflow.models.analytics_event import AnalyticsEvent
from replyflow.models.automation import Automation, AutomationPost, Keyword, Trigger, TriggerType
from replyflow.models.automation_stats import AutomationStats
from replyflow.models.carousel import CarouselButton, CarouselElement, CarouselTemplate
from replyflow.models.chat_message import ChatMessage
from replyflow.models.flow import FlowEdge, FlowNode
from replyflow.models.listener import Listener, ListenerType
from replyflow.schemas.flow import Flow, FlowEdgeView, FlowNodeView, FlowSaveRequest
from replyflow.exceptions import FlowConfigurationError

logger = logging.getLogger(__name__)


class GraphStore:
    def __init__(self, db: Session):
        self.db = db

    def has_flow_nodes(self, automation_id: int) -> bool:
        return self.db.query(FlowNode.id).filter(FlowNode.automation_id == automation_id).first() is not None

    def load_flow(self, automation_id: int) -> Flow:
        nodes = self.db.query(FlowNode).filter(
            FlowNode.automation_id == automation_id
        ).order_by(FlowNode.id).all()
        edges = self.db.query(FlowEdge).filter(
            FlowEdge.automation_id == automation_id
        ).order_by(FlowEdge.id).all()
        return Flow(
            nodes=[FlowNodeView.model_validate(n) for n in nodes],
            edges=[FlowEdgeView.model_validate(e) for e in edges],
        )

    def save_flow(self, automation_id: int, payload: FlowSaveRequest) -> Flow:
        """Replace the automation's graph, triggers, keywords and listener in one transaction."""
        node_ids = [n.node_id for n in payload.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise FlowConfigurationError("Duplicate node ids in flow")

        trigger_types = []
        for t in payload.triggers:
            t = t.upper()
            if t not in TriggerType.__members__:
                raise FlowConfigurationError(f"Unknown trigger type: {t}")
            if t not in trigger_types:
                trigger_types.append(t)

        try:
            self.db.query(FlowEdge).filter(FlowEdge.automation_id == automation_id).delete()
            self.db.query(FlowNode).filter(FlowNode.automation_id == automation_id).delete()
            self.db.query(Trigger).filter(Trigger.automation_id == automation_id).delete()
            self.db.query(Keyword).filter(Keyword.automation_id == automation_id).delete()

            for node in payload.nodes:
                self.db.add(FlowNode(
                    automation_id=automation_id,
                    node_id=node.node_id,
                    type=node.type,
                    sub_type=node.sub_type,
                    label=node.label,
                    config=node.config,
                    position_x=node.position_x,
                    position_y=node.position_y,
                ))
            for edge in payload.edges:
                self.db.add(FlowEdge(
                    automation_id=automation_id,
                    edge_id=edge.edge_id,
                    source_node_id=edge.source_node_id,
                    target_node_id=edge.target_node_id,
                    source_handle=edge.source_handle,
                    target_handle=edge.target_handle,
                ))
            for t in trigger_types:
                self.db.add(Trigger(automation_id=automation_id, type=t))
            seen_words = set()
            for word in payload.keywords:
                word = word.strip()
                if word and word.lower() not in seen_words:
                    seen_words.add(word.lower())
                    self.db.add(Keyword(automation_id=automation_id, word=word))

            if payload.listener is not None:
                if payload.listener.listener not in ListenerType.__members__:
                    raise FlowConfigurationError(f"Unknown listener type: {payload.listener.listener}")
                listener = self.db.query(Listener).filter(Listener.automation_id == automation_id).first()
                if not listener:
                    listener = Listener(automation_id=automation_id)
                    self.db.add(listener)
                listener.listener = payload.listener.listener
                listener.prompt = payload.listener.prompt
                listener.comment_reply = payload.listener.comment_reply

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("✅ Saved flow for automation %s: %s nodes, %s edges",
                    automation_id, len(payload.nodes), len(payload.edges))
        return self.load_flow(automation_id)

    def delete_node(self, automation_id: int, node_id: str) -> bool:
        """Delete one node and every edge touching it. Returns False if the node did not exist."""
        node = self.db.query(FlowNode).filter(
            FlowNode.automation_id == automation_id,
            FlowNode.node_id == node_id,
        ).first()
        if not node:
            return False
        self.db.query(FlowEdge).filter(
            FlowEdge.automation_id == automation_id,
            (FlowEdge.source_node_id == node_id) | (FlowEdge.target_node_id == node_id),
        ).delete(synchronize_session=False)
        self.db.delete(node)
        self.db.commit()
        return True

    def delete_automation(self, automation_id: int):
        """Remove an automation and everything hanging off it."""
        template_ids = [t.id for t in self.db.query(CarouselTemplate.id).filter(
            CarouselTemplate.automation_id == automation_id
        ).all()]
        if template_ids:
            element_ids = [e.id for e in self.db.query(CarouselElement.id).filter(
                CarouselElement.template_id.in_(template_ids)
            ).all()]
            if element_ids:
                self.db.query(CarouselButton).filter(
                    CarouselButton.element_id.in_(element_ids)
                ).delete(synchronize_session=False)
            self.db.query(CarouselElement).filter(
                CarouselElement.template_id.in_(template_ids)
            ).delete(synchronize_session=False)

        for model in (ChatMessage, AutomationStats, AnalyticsEvent, FlowEdge, FlowNode,
                      Keyword, Trigger, AutomationPost, Listener, CarouselTemplate):
            self.db.query(model).filter(model.automation_id == automation_id).delete(synchronize_session=False)
        self.db.query(Automation).filter(Automation.id == automation_id).delete(synchronize_session=False)
        self.db.commit()
        logger.info("🗑️ Deleted automation %s", automation_id)
