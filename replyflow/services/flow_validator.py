"""
Structural checks run before a flow is saved: cycles, plan limits on
size and depth, nodes unreachable from a trigger, and nodes missing the
configuration they need to do anything.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from replyflow.core.plan_limits import get_plan_limit

WHITE, GRAY, BLACK = 0, 1, 2


@dataclass
class FlowValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _adjacency(nodes, edges) -> Dict[str, List[str]]:
    adjacency = {n.node_id: [] for n in nodes}
    for e in edges:
        adjacency.setdefault(e.source_node_id, []).append(e.target_node_id)
    return adjacency


def _label(node) -> str:
    return node.label or node.node_id


def detect_cycles(nodes, edges) -> Tuple[bool, List[str]]:
    """Iterative DFS colouring. Returns (has_cycle, ids on the first back edge found)."""
    adjacency = _adjacency(nodes, edges)
    color = {n.node_id: WHITE for n in nodes}

    for root in list(color):
        if color[root] != WHITE:
            continue
        color[root] = GRAY
        stack = [(root, iter(adjacency.get(root, [])))]
        while stack:
            node_id, children = stack[-1]
            advanced = False
            for child in children:
                state = color.get(child)
                if state == GRAY:
                    return True, [child, node_id] if child != node_id else [node_id]
                if state == WHITE:
                    color[child] = GRAY
                    stack.append((child, iter(adjacency.get(child, []))))
                    advanced = True
                    break
            if not advanced:
                color[node_id] = BLACK
                stack.pop()
    return False, []


def find_orphaned_nodes(nodes, edges) -> List[str]:
    """Node ids not reachable from any trigger node."""
    triggers = [n.node_id for n in nodes if n.type == "trigger"]
    if not triggers:
        return [n.node_id for n in nodes]

    adjacency = _adjacency(nodes, edges)
    reachable = set()
    queue = deque(triggers)
    while queue:
        node_id = queue.popleft()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        queue.extend(c for c in adjacency.get(node_id, []) if c not in reachable)
    return [n.node_id for n in nodes if n.node_id not in reachable]


def find_dead_ends(nodes, edges) -> List[str]:
    outgoing = {e.source_node_id for e in edges}
    warnings = []
    for node in nodes:
        config = node.config or {}
        if node.type == "condition" and node.sub_type not in ("YES", "NO") and node.node_id not in outgoing:
            warnings.append(f'Condition node "{_label(node)}" has no outgoing connections')
        if node.type == "action":
            if node.sub_type == "MESSAGE" and not config.get("message"):
                warnings.append(f'Send DM node "{_label(node)}" has no message configured')
            if node.sub_type == "SMARTAI" and not (config.get("message") or config.get("prompt")):
                warnings.append(f'Smart AI node "{_label(node)}" has no prompt configured')
            if node.sub_type == "REPLY_COMMENT" and not config.get("commentReply"):
                warnings.append(f'Reply Comment node "{_label(node)}" has no reply text configured')
            if node.sub_type == "REPLY_MENTION" and not config.get("message"):
                warnings.append(f'Reply Mention node "{_label(node)}" has no reply text configured')
        if node.sub_type == "KEYWORDS" and not config.get("keywords"):
            warnings.append(f'Keyword Match node "{_label(node)}" has no keywords configured')
    return warnings


def calculate_max_depth(nodes, edges) -> int:
    """Longest chain of nodes starting at a node with no incoming edge."""
    adjacency = _adjacency(nodes, edges)
    has_incoming = {e.target_node_id for e in edges}
    memo: Dict[str, int] = {}

    def depth(node_id: str, path: frozenset) -> int:
        if node_id in path:
            return 0
        if node_id in memo:
            return memo[node_id]
        path = path | {node_id}
        result = 1 + max((depth(c, path) for c in adjacency.get(node_id, [])), default=0)
        memo[node_id] = result
        return result

    return max((depth(n.node_id, frozenset()) for n in nodes if n.node_id not in has_incoming), default=0)


def validate_flow(nodes, edges, plan: str = "free") -> FlowValidationResult:
    result = FlowValidationResult()
    if not nodes:
        return result

    has_cycle, cycle_nodes = detect_cycles(nodes, edges)
    if has_cycle:
        result.errors.append(f"Flow contains a cycle involving nodes: {', '.join(cycle_nodes)}")

    max_nodes = get_plan_limit(plan, "max_flow_nodes")
    if len(nodes) > max_nodes:
        result.errors.append(
            f"Flow has {len(nodes)} nodes, but your {plan.upper()} plan allows maximum {max_nodes} nodes"
        )

    max_depth = get_plan_limit(plan, "max_flow_depth")
    depth = calculate_max_depth(nodes, edges)
    if depth > max_depth:
        result.errors.append(
            f"Flow depth is {depth}, but your {plan.upper()} plan allows maximum depth of {max_depth}"
        )

    node_ids = {n.node_id for n in nodes}
    for e in edges:
        if e.source_node_id not in node_ids or e.target_node_id not in node_ids:
            result.warnings.append(f"Edge {e.edge_id} references a node that does not exist")

    by_id = {n.node_id: n for n in nodes}
    for orphan in find_orphaned_nodes(nodes, edges):
        result.warnings.append(f'Node "{_label(by_id[orphan])}" is not connected to any trigger')

    result.warnings.extend(find_dead_ends(nodes, edges))

    if not any(n.type == "trigger" for n in nodes):
        result.errors.append(
            "Flow has no trigger node. Add a trigger (e.g., New DM, New Comment) to start the flow."
        )
    if not any(n.type == "action" for n in nodes):
        result.warnings.append("Flow has no action node, so it will never reply")
    return result
