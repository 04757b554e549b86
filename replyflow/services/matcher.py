"""
Resolve an inbound DM/comment to the automation that should handle it.
"""
import logging
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from replyflow.models.automation import Automation, Keyword, Trigger
from replyflow.models.flow import FlowNode
from replyflow.models.integration import Integration
from replyflow.schemas.execution import MatchResult
from replyflow.schemas.flow import FlowNodeView
from replyflow.services.flow_graph import flow_keywords

logger = logging.getLogger(__name__)


def keyword_match(text: Optional[str], keywords: List[str]) -> Optional[str]:
    """Longest keyword contained in text (case-insensitive), or None."""
    lowered = (text or "").lower()
    hits = [k for k in keywords if k and k.lower() in lowered]
    if not hits:
        return None
    return max(hits, key=len)


class Matcher:
    """Read-only lookup over active automations.

    Ranking among candidates: a keyword match beats a wildcard, a longer
    matched keyword beats a shorter one, then the newest automation wins,
    then the higher id.

    An automation whose flow has KEYWORDS nodes is matched against those
    nodes' keywords only, the same words the graph keyword gate checks. If
    the nodes yield no usable keyword it matches nothing.
    """

    def __init__(self, db: Session):
        self.db = db

    def _candidates(self, kind: str, page_id: Optional[str]) -> List[Automation]:
        query = self.db.query(Automation).join(
            Trigger, Trigger.automation_id == Automation.id
        ).filter(
            Automation.active.is_(True),
            Trigger.type == kind,
        )
        if page_id:
            owners = self.db.query(Integration.user_id).filter(Integration.instagram_id == page_id)
            query = query.filter(Automation.user_id.in_(owners))
        return query.all()

    def _keywords_by_automation(self, automation_ids: List[int]) -> Tuple[Dict[int, List[str]], Set[int]]:
        """Keywords per automation, plus the ids gated by KEYWORDS nodes."""
        keyword_nodes = self.db.query(FlowNode).filter(
            FlowNode.automation_id.in_(automation_ids),
            FlowNode.sub_type == "KEYWORDS",
        ).all()
        gated = {node.automation_id for node in keyword_nodes}

        keywords: Dict[int, List[str]] = {a: [] for a in automation_ids}
        for node in keyword_nodes:
            keywords[node.automation_id].extend(flow_keywords([FlowNodeView.model_validate(node)]))
        for row in self.db.query(Keyword).filter(Keyword.automation_id.in_(automation_ids)).all():
            if row.automation_id not in gated:
                keywords[row.automation_id].append(row.word)
        return keywords, gated

    def match(self, text: Optional[str], kind: str, page_id: Optional[str] = None) -> Optional[MatchResult]:
        candidates = self._candidates(kind, page_id)
        if not candidates:
            return None

        keywords, gated = self._keywords_by_automation([a.id for a in candidates])
        ranked = []
        for automation in candidates:
            words = keywords[automation.id]
            if not words and automation.id in gated:
                logger.warning("⚠️ Automation %s has KEYWORDS nodes without keywords, skipping", automation.id)
                continue
            if not words:
                # Wildcard: any text, ranked below every keyword match
                ranked.append(((0, 0, automation.created_at, automation.id), automation, None))
                continue
            hit = keyword_match(text, words)
            if hit is not None:
                ranked.append(((1, len(hit), automation.created_at, automation.id), automation, hit))

        if not ranked:
            return None

        _, automation, hit = max(ranked, key=lambda r: r[0])
        logger.info("🔍 Matched %s event to automation %s (keyword=%s)", kind, automation.id, hit)
        return MatchResult(automation_id=automation.id, keyword=hit, is_wildcard=hit is None)
