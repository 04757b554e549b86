"""
Flow orchestration: resolve an inbound event to an automation and run it
either as a node graph or through its legacy listener.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from replyflow.core.plan_limits import CHAT_HISTORY_WINDOW, is_paid_plan
from replyflow.models.analytics_event import EventType
from replyflow.models.automation import Automation, AutomationPost
from replyflow.models.integration import Integration
from replyflow.models.listener import Listener, ListenerType
from replyflow.models.user import User
from replyflow.schemas.execution import ExecutionContext, FlowResult, InboundEvent
from replyflow.services import chat_history
from replyflow.services.actions import RATE_LIMIT_APOLOGY, ActionExecutor
from replyflow.services.conditions import ConditionEvaluator
from replyflow.services.flow_graph import (
    PASS_THROUGH_CONDITIONS,
    Traversal,
    find_trigger_node,
    keyword_gate,
)
from replyflow.services.graph_store import GraphStore
from replyflow.services.legacy import LegacyExecutor
from replyflow.services.matcher import Matcher
from replyflow.services.rate_limiter import TokenBucketRateLimiter, ai_rate_limit_key
from replyflow.services.smart_ai import SmartAIService
from replyflow.services.tracking import Tracker
from replyflow.utils.encryption import decrypt_credentials
from replyflow.utils.instagram_api import InstagramAPI

logger = logging.getLogger(__name__)

NO_ACTION = "Processed, no action taken"


def inactive_result() -> FlowResult:
    return FlowResult(success=False, message="Automation is inactive")


class GraphExecutor:
    def __init__(self, store: GraphStore, conditions: ConditionEvaluator, actions: ActionExecutor):
        self.store = store
        self.conditions = conditions
        self.actions = actions

    async def execute(self, automation: Automation, context: ExecutionContext) -> FlowResult:
        if not automation.active:
            return inactive_result()

        flow = self.store.load_flow(automation.id)

        if context.message_text and not keyword_gate(context.message_text, flow.nodes):
            return FlowResult(success=False, message="Message does not match keywords")

        trigger = find_trigger_node(flow.nodes, context.trigger_type)
        if trigger is None:
            return FlowResult(success=False, message=f"No {context.trigger_type} trigger found in flow")

        # Only the part of the graph left enabled by condition outcomes is walked
        traversal = Traversal(trigger.node_id, flow.nodes, flow.edges)
        results = []
        for node in traversal:
            if node.type == "condition" and node.sub_type not in PASS_THROUGH_CONDITIONS:
                passed = await self.conditions.evaluate(node, context)
                logger.info("🔍 Condition %s (%s) -> %s", node.node_id, node.sub_type, passed)
                traversal.follow(traversal.branch_targets(node.node_id, passed))
                continue
            if node.type == "action":
                results.append(await self.actions.execute(node, context))
            traversal.follow(traversal.children(node.node_id))

        succeeded = sum(1 for r in results if r.success)
        return FlowResult(
            success=succeeded > 0 or not results,
            message=f"Executed {succeeded}/{len(results)} actions",
            results=results,
            execution_path=traversal.path,
        )


class FlowOrchestrator:
    """Entry point for inbound events. Platform, AI, limiter and tracker are
    shared across events; everything database-bound is built per call."""

    def __init__(self, instagram: Optional[InstagramAPI] = None, ai: Optional[SmartAIService] = None,
                 rate_limiter: Optional[TokenBucketRateLimiter] = None, tracker: Optional[Tracker] = None):
        self.instagram = instagram or InstagramAPI()
        self.ai = ai or SmartAIService()
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter()
        self.tracker = tracker or Tracker()

    def action_executor(self, db: Session) -> ActionExecutor:
        return ActionExecutor(db, self.instagram, self.ai, self.rate_limiter, self.tracker)

    def graph_executor(self, db: Session) -> GraphExecutor:
        return GraphExecutor(GraphStore(db), ConditionEvaluator(self.instagram), self.action_executor(db))

    def select_executor(self, db: Session, automation: Automation):
        if GraphStore(db).has_flow_nodes(automation.id):
            return self.graph_executor(db)
        return LegacyExecutor(db, self.action_executor(db))

    def build_context(self, db: Session, automation: Automation, event: InboundEvent) -> Optional[ExecutionContext]:
        integration = db.query(Integration).filter(
            Integration.user_id == automation.user_id,
            Integration.instagram_id == event.page_id,
        ).first()
        if not integration:
            logger.warning("⚠️ Automation %s owner has no integration for page %s", automation.id, event.page_id)
            return None
        user = db.query(User).filter(User.id == automation.user_id).first()
        if not user:
            return None

        return ExecutionContext(
            automation_id=automation.id,
            user_id=user.id,
            token=decrypt_credentials(integration.encrypted_token),
            page_id=event.page_id,
            sender_id=event.sender_id,
            message_text=event.text,
            comment_id=event.comment_id,
            media_id=event.media_id,
            trigger_type=event.kind,
            user_plan=user.plan_tier or "free",
            ai_api_key=decrypt_credentials(user.encrypted_openai_key) if user.encrypted_openai_key else None,
        )

    async def handle_event(self, db: Session, event: InboundEvent) -> FlowResult:
        """Never raises. Any failure becomes a no-op acknowledgement."""
        try:
            return await self._handle(db, event)
        except Exception as e:
            logger.exception("❌ Flow processing failed for %s event from %s: %s", event.kind, event.sender_id, e)
            return FlowResult(success=False, message=NO_ACTION)

    async def _handle(self, db: Session, event: InboundEvent) -> FlowResult:
        match = Matcher(db).match(event.text, event.kind, page_id=event.page_id)
        if match is None:
            if event.kind == "DM" and event.text:
                continued = await self.continue_conversation(db, event)
                if continued is not None:
                    return continued
            logger.info("No automation matched %s event from %s", event.kind, event.sender_id)
            return FlowResult(success=False, message="No matching automation")

        automation = db.query(Automation).filter(Automation.id == match.automation_id).first()
        return await self.run_automation(db, automation, event)

    async def run_automation(self, db: Session, automation: Optional[Automation], event: InboundEvent) -> FlowResult:
        if automation is None or not automation.active:
            return inactive_result()

        if event.kind == "COMMENT":
            media_ids = [p.media_id for p in db.query(AutomationPost).filter(
                AutomationPost.automation_id == automation.id
            ).all()]
            if media_ids and event.media_id not in media_ids:
                logger.info("Comment on media %s is not attached to automation %s", event.media_id, automation.id)
                return FlowResult(success=False, message="Comment is not on an attached post")

        context = self.build_context(db, automation, event)
        if context is None:
            return FlowResult(success=False, message=NO_ACTION)

        self.tracker.log_event(context.user_id, EventType.TRIGGER_MATCHED, automation_id=automation.id,
                               media_id=event.media_id,
                               metadata={"sender_id": event.sender_id, "trigger_type": event.kind})

        executor = self.select_executor(db, automation)
        result = await executor.execute(automation, context)
        logger.info("✅ Automation %s (%s): %s", automation.id, type(executor).__name__, result.message)
        return result

    async def continue_conversation(self, db: Session, event: InboundEvent) -> Optional[FlowResult]:
        """Answer an unmatched DM inside an ongoing SmartAI conversation.

        Returns None when there is no conversation to continue.
        """
        automation_id = chat_history.latest_automation_id(db, event.page_id, event.sender_id)
        if automation_id is None:
            return None
        automation = db.query(Automation).filter(Automation.id == automation_id).first()
        if not automation or not automation.active:
            return None
        listener = db.query(Listener).filter(Listener.automation_id == automation.id).first()
        if not listener or listener.listener != ListenerType.SMARTAI.value:
            return None
        context = self.build_context(db, automation, event)
        if context is None or not is_paid_plan(context.user_plan):
            return None

        actions = self.action_executor(db)
        if not await self.rate_limiter.check(ai_rate_limit_key(event.sender_id)):
            await actions.deliver_text(context, RATE_LIMIT_APOLOGY)
            return FlowResult(success=False, message="Rate limit exceeded")

        history = chat_history.get_history(db, event.page_id, event.sender_id, CHAT_HISTORY_WINDOW)
        reply = await self.ai.generate_reply(
            f"{listener.prompt}: keep responses under 2 sentences", event.text, history,
            api_key=context.ai_api_key,
        )
        if not reply:
            return FlowResult(success=False, message="AI generation failed")

        chat_history.append_exchange(db, automation.id, event.page_id, event.sender_id, event.text, reply)
        sent = await actions.deliver_text(context, reply)
        if not sent.success:
            return FlowResult(success=False, message=f"Failed to send AI reply: {sent.error}")
        actions.record(context, "DM", EventType.AI_REPLY_GENERATED, continuation=True)
        return FlowResult(success=True, message="Continued AI conversation")
