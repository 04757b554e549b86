"""
Single-listener dispatch for automations that have no flow graph.
"""
import asyncio
import logging

from sqlalchemy.orm import Session

from replyflow.core.plan_limits import is_paid_plan
from replyflow.models.analytics_event import EventType
from replyflow.models.automation import Automation
from replyflow.models.listener import Listener, ListenerType
from replyflow.schemas.execution import ActionResult, ExecutionContext, FlowResult
from replyflow.services import chat_history
from replyflow.services.actions import ActionExecutor, fail, ok
from replyflow.services.carousel import resolve_template_id

logger = logging.getLogger(__name__)


def _result(action: ActionResult) -> FlowResult:
    return FlowResult(success=action.success, message=action.message, results=[action])


class LegacyExecutor:
    def __init__(self, db: Session, actions: ActionExecutor):
        self.db = db
        self.actions = actions

    async def execute(self, automation: Automation, context: ExecutionContext) -> FlowResult:
        if not automation.active:
            return FlowResult(success=False, message="Automation is inactive")

        listener = self.db.query(Listener).filter(Listener.automation_id == automation.id).first()
        if not listener:
            return FlowResult(success=False, message="No listener configured")

        kind = listener.listener
        if kind == ListenerType.MESSAGE.value and listener.carousel_template_id:
            kind = ListenerType.CAROUSEL.value

        try:
            if kind == ListenerType.CAROUSEL.value:
                template_id = resolve_template_id(self.db, automation.id, listener.carousel_template_id)
                action = await self.actions.send_carousel_or_fallback(context, template_id, listener.prompt)
            elif kind == ListenerType.SMARTAI.value:
                action = await self._smart_ai(listener, context)
            elif context.trigger_type == "COMMENT":
                action = await self._message_on_comment(listener, context)
            else:
                action = await self._message(listener, context)
        except Exception as e:
            logger.warning("⚠️ Legacy %s listener for automation %s raised: %s", kind, automation.id, e)
            action = fail(f"Execution error: {e}")

        logger.info("Legacy %s dispatch for automation %s: %s", kind, automation.id, action.message)
        return _result(action)

    async def _message(self, listener: Listener, context: ExecutionContext) -> ActionResult:
        if not listener.prompt:
            return fail("No message configured")
        sent = await self.actions.deliver_text(context, listener.prompt)
        if not sent.success:
            return fail(f"Failed to send message: {sent.error}")
        self.actions.record(context, "DM", EventType.DM_SENT, legacy=True)
        return ok("Message sent")

    async def _message_on_comment(self, listener: Listener, context: ExecutionContext) -> ActionResult:
        """Public reply and private DM go out together; the DM decides the outcome."""
        instagram = self.actions.instagram
        tasks = []
        wants_reply = bool(listener.comment_reply and context.comment_id)
        if wants_reply:
            tasks.append(instagram.reply_to_comment(context.comment_id, listener.comment_reply, context.token))
        if listener.prompt:
            tasks.append(self.actions.deliver_text(context, listener.prompt))
        if not tasks:
            return fail("No message configured")

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        if wants_reply:
            reply = outcomes[0]
            if isinstance(reply, Exception):
                logger.warning("⚠️ Comment reply raised: %s", reply)
            elif reply.success:
                self.actions.record(context, "COMMENT", EventType.COMMENT_REPLIED, legacy=True)
            outcomes = outcomes[1:]

        if not outcomes:
            return fail("No message configured")
        dm = outcomes[0]
        if isinstance(dm, Exception):
            return fail(f"Execution error: {dm}")
        if not dm.success:
            return fail(f"Failed to send message: {dm.error}")
        self.actions.record(context, "DM", EventType.DM_SENT, legacy=True)
        return ok("Message sent")

    async def _smart_ai(self, listener: Listener, context: ExecutionContext) -> ActionResult:
        if not is_paid_plan(context.user_plan):
            return fail("SmartAI requires a PRO plan")
        if not listener.prompt:
            return fail("No AI prompt configured")

        user_text = context.message_text or ""
        reply = await self.actions.ai.complete_once(listener.prompt, user_text, api_key=context.ai_api_key)
        chat_history.append_exchange(self.db, context.automation_id, context.page_id, context.sender_id,
                                     user_text, reply)

        sent = await self.actions.deliver_text(context, reply)
        if not sent.success:
            return fail(f"Failed to send AI reply: {sent.error}")
        self.actions.record(context, "DM", EventType.AI_REPLY_GENERATED, legacy=True)
        return ok("AI reply sent")
