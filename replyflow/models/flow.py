from sqlalchemy import Column, Integer, String, JSON, Float, ForeignKey, UniqueConstraint
from enum import Enum
from replyflow.db.base import Base


class NodeType(str, Enum):
    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"


class FlowNode(Base):
    __tablename__ = "flow_nodes"
    __table_args__ = (
        UniqueConstraint("automation_id", "node_id", name="uq_flow_node_automation_node"),
    )

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    node_id = Column(String, nullable=False)  # Client-side id referenced by edges
    type = Column(String, nullable=False)  # NodeType value
    sub_type = Column(String, nullable=False)
    label = Column(String, nullable=True)
    config = Column(JSON, nullable=True)
    position_x = Column(Float, default=0)
    position_y = Column(Float, default=0)


class FlowEdge(Base):
    __tablename__ = "flow_edges"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    edge_id = Column(String, nullable=False)
    source_node_id = Column(String, nullable=False)
    target_node_id = Column(String, nullable=False)
    source_handle = Column(String, nullable=True)  # "yes" / "no" on condition outputs
    target_handle = Column(String, nullable=True)
