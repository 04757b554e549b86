"""
Pure helpers over a loaded flow graph: adjacency, BFS order, keyword gate
and branch labelling of condition outputs.
"""
import logging
from collections import deque
from typing import Dict, Iterator, List, Optional

from pydantic import ValidationError

from replyflow.schemas.flow import FlowEdgeView, FlowNodeView, KeywordsConfig

logger = logging.getLogger(__name__)

YES_HANDLES = {"yes", "true"}
NO_HANDLES = {"no", "false"}

# Condition subTypes that are not evaluated: every child is followed
PASS_THROUGH_CONDITIONS = ("YES", "NO", "DELAY")


def build_adjacency_list(edges: List[FlowEdgeView]) -> Dict[str, List[str]]:
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source_node_id, []).append(edge.target_node_id)
    return adjacency


class Traversal:
    """Breadth-first walk from a start node where the caller decides which
    children to follow.

    Iterating yields each reachable node once, so cycles terminate. Edges
    pointing at ids with no node are skipped. Call `follow` while handling
    a node to enqueue the children it enables.
    """

    def __init__(self, start_id: str, nodes: List[FlowNodeView], edges: List[FlowEdgeView]):
        self.by_id = {n.node_id: n for n in nodes}
        self.adjacency = build_adjacency_list(edges)
        self.outgoing: Dict[str, List[FlowEdgeView]] = {}
        for edge in edges:
            self.outgoing.setdefault(edge.source_node_id, []).append(edge)
        self.path: List[str] = []
        self._visited = set()
        self._queue = deque([start_id])

    def __iter__(self) -> Iterator[FlowNodeView]:
        while self._queue:
            node_id = self._queue.popleft()
            if node_id in self._visited:
                continue
            self._visited.add(node_id)
            node = self.by_id.get(node_id)
            if node is None:
                continue
            self.path.append(node_id)
            yield node

    def follow(self, node_ids: List[str]):
        for child in node_ids:
            if child not in self._visited:
                self._queue.append(child)

    def children(self, node_id: str) -> List[str]:
        return self.adjacency.get(node_id, [])

    def branch_targets(self, node_id: str, passed: bool) -> List[str]:
        """Children of a condition node for its outcome.

        True follows yes-labelled edges, or unlabelled ones when there are
        none. False follows no-labelled edges only.
        """
        labelled = [
            (edge.target_node_id, branch_of(edge, self.by_id.get(edge.target_node_id)))
            for edge in self.outgoing.get(node_id, [])
        ]
        if passed:
            yes = [target for target, branch in labelled if branch == "yes"]
            return yes or [target for target, branch in labelled if branch is None]
        return [target for target, branch in labelled if branch == "no"]


def execution_path(start_id: str, nodes: List[FlowNodeView],
                   edges: List[FlowEdgeView]) -> List[FlowNodeView]:
    """Everything reachable from start_id in breadth-first order, ignoring conditions."""
    traversal = Traversal(start_id, nodes, edges)
    path = []
    for node in traversal:
        path.append(node)
        traversal.follow(traversal.children(node.node_id))
    return path


def flow_keywords(nodes: List[FlowNodeView]) -> List[str]:
    """Keywords declared on KEYWORDS nodes. Malformed configs are ignored."""
    words = []
    for node in nodes:
        if node.sub_type != "KEYWORDS":
            continue
        try:
            config = KeywordsConfig.model_validate(node.config)
        except ValidationError:
            logger.warning("⚠️ Ignoring malformed KEYWORDS config on node %s", node.node_id)
            continue
        words.extend(k for k in config.keywords if k and k.strip())
    return words


def keyword_gate(text: Optional[str], nodes: List[FlowNodeView]) -> bool:
    """True unless the flow has KEYWORDS nodes and none of their keywords is in text."""
    if not any(n.sub_type == "KEYWORDS" for n in nodes):
        return True
    lowered = (text or "").lower()
    return any(k.lower() in lowered for k in flow_keywords(nodes))


def find_trigger_node(nodes: List[FlowNodeView], kind: str) -> Optional[FlowNodeView]:
    for node in nodes:
        if node.type == "trigger" and node.sub_type == kind:
            return node
    return None


def branch_of(edge: FlowEdgeView, target: Optional[FlowNodeView]) -> Optional[str]:
    """'yes', 'no' or None for an edge leaving a condition node."""
    if target is not None and target.sub_type in ("YES", "NO"):
        return target.sub_type.lower()
    handle = (edge.source_handle or "").lower()
    if handle in YES_HANDLES:
        return "yes"
    if handle in NO_HANDLES:
        return "no"
    return None
