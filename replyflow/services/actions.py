"""
Action nodes: one handler per subType, each performing a single side
effect against Instagram and reporting an ActionResult.

Handlers never raise to the caller. Successful sends are followed by a
response-tracking update and an analytics event on the tracker.
"""
import asyncio
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from replyflow.core.plan_limits import CHAT_HISTORY_WINDOW, is_paid_plan
from replyflow.models.analytics_event import EventType
from replyflow.schemas.execution import ActionResult, ExecutionContext
from replyflow.schemas.flow import FlowNodeView
from replyflow.services import chat_history
from replyflow.services.carousel import (
    load_template_elements,
    resolve_template_id,
    to_wire_elements,
    validate_carousel,
)
from replyflow.services.rate_limiter import TokenBucketRateLimiter, ai_rate_limit_key
from replyflow.services.smart_ai import SmartAIService
from replyflow.services.tracking import Tracker
from replyflow.utils.instagram_api import InstagramAPI, SendResult

logger = logging.getLogger(__name__)

RATE_LIMIT_APOLOGY = (
    "I'm receiving a lot of messages right now. Please give me a minute and I'll get back to you!"
)


def ok(message: str) -> ActionResult:
    return ActionResult(success=True, message=message)


def fail(message: str) -> ActionResult:
    return ActionResult(success=False, message=message)


class ActionExecutor:
    def __init__(self, db: Session, instagram: InstagramAPI, ai: SmartAIService,
                 rate_limiter: TokenBucketRateLimiter, tracker: Tracker):
        self.db = db
        self.instagram = instagram
        self.ai = ai
        self.rate_limiter = rate_limiter
        self.tracker = tracker
        self.sleep = asyncio.sleep
        self._handlers = {
            "MESSAGE": self._message,
            "REPLY_COMMENT": self._reply_comment,
            "REPLY_MENTION": self._reply_mention,
            "SMARTAI": self._smart_ai,
            "CAROUSEL": self._carousel,
            "BUTTON_TEMPLATE": self._button_template,
            "PRODUCT_TEMPLATE": self._product_template,
            "QUICK_REPLIES": self._quick_replies,
            "ICE_BREAKERS": self._ice_breakers,
            "PERSISTENT_MENU": self._persistent_menu,
            "TYPING_ON": self._sender_action,
            "TYPING_OFF": self._sender_action,
            "MARK_SEEN": self._sender_action,
            "DELAY": self._delay,
        }

    async def execute(self, node: FlowNodeView, context: ExecutionContext) -> ActionResult:
        handler = self._handlers.get(node.sub_type)
        if handler is None:
            result = fail(f"Unknown action type: {node.sub_type}")
        else:
            try:
                config = node.parsed_config()
            except ValidationError as e:
                result = fail(f"Invalid configuration: {e.errors()[0]['msg'] if e.errors() else e}")
            else:
                try:
                    result = await handler(node, config, context)
                except Exception as e:
                    logger.warning("⚠️ Action %s (%s) raised: %s", node.node_id, node.sub_type, e)
                    result = fail(f"Execution error: {e}")
        result.node_id = node.node_id
        if not result.success:
            logger.warning("⚠️ Action %s (%s) failed: %s", node.node_id, node.sub_type, result.message)
        return result

    def record(self, context: ExecutionContext, response_type: Optional[str], event_type: EventType,
               **metadata):
        if response_type:
            self.tracker.track_response(context.automation_id, response_type)
        self.tracker.log_event(
            context.user_id,
            event_type,
            automation_id=context.automation_id,
            media_id=context.media_id,
            metadata={"sender_id": context.sender_id, **metadata},
        )

    async def deliver_text(self, context: ExecutionContext, text: str) -> SendResult:
        """DM the sender. Commenters can only be reached by a private reply to their comment."""
        if context.trigger_type == "COMMENT" and context.comment_id:
            return await self.instagram.send_private_reply(context.page_id, context.comment_id, text, context.token)
        return await self.instagram.send_direct_message(context.page_id, context.sender_id, text, context.token)

    async def _message(self, node, config, context):
        if not config.message:
            return fail("No message configured")
        sent = await self.deliver_text(context, config.message)
        if not sent.success:
            return fail(f"Failed to send message: {sent.error}")
        self.record(context, "DM", EventType.DM_SENT, node_id=node.node_id)
        return ok("Message sent")

    async def _reply_comment(self, node, config, context):
        if not context.comment_id:
            return fail("No comment to reply to")
        if not config.comment_reply:
            return fail("No comment reply configured")
        sent = await self.instagram.reply_to_comment(context.comment_id, config.comment_reply, context.token)
        if not sent.success:
            return fail(f"Failed to reply to comment: {sent.error}")
        self.record(context, "COMMENT", EventType.COMMENT_REPLIED, node_id=node.node_id)
        return ok("Comment reply sent")

    async def _reply_mention(self, node, config, context):
        if not context.media_id:
            return fail("No media to reply to")
        if not config.message:
            return fail("No reply text configured")
        sent = await self.instagram.reply_to_mention(
            context.page_id, context.media_id, config.message, context.token, comment_id=context.comment_id
        )
        if not sent.success:
            return fail(f"Failed to reply to mention: {sent.error}")
        self.record(context, "MENTION", EventType.COMMENT_REPLIED, node_id=node.node_id, mention=True)
        return ok("Mention reply sent")

    async def _best_effort_sender_action(self, context: ExecutionContext, action: str):
        try:
            await self.instagram.send_sender_action(context.page_id, context.sender_id, action, context.token)
        except Exception as e:
            logger.warning("⚠️ Sender action %s failed: %s", action, e)

    async def _smart_ai(self, node, config, context):
        if not is_paid_plan(context.user_plan):
            return fail("SmartAI requires a PRO plan")
        if not await self.rate_limiter.check(ai_rate_limit_key(context.sender_id)):
            logger.warning("⚠️ AI rate limit hit for sender %s", context.sender_id)
            await self.deliver_text(context, RATE_LIMIT_APOLOGY)
            return fail("Rate limit exceeded")

        persona = config.persona
        if not persona:
            return fail("No AI prompt configured")

        await self._best_effort_sender_action(context, "mark_seen")
        await self._best_effort_sender_action(context, "typing_on")

        user_text = context.message_text or ""
        history = chat_history.get_history(self.db, context.page_id, context.sender_id, CHAT_HISTORY_WINDOW)
        reply = await self.ai.generate_reply(persona, user_text, history, api_key=context.ai_api_key)
        if not reply:
            await self._best_effort_sender_action(context, "typing_off")
            return fail("AI generation failed")

        chat_history.append_exchange(self.db, context.automation_id, context.page_id, context.sender_id,
                                     user_text, reply)

        sent = await self.deliver_text(context, reply)
        if not sent.success:
            return fail(f"Failed to send AI reply: {sent.error}")
        self.record(context, "DM", EventType.AI_REPLY_GENERATED, node_id=node.node_id)
        return ok("AI reply sent")

    async def send_carousel_or_fallback(self, context: ExecutionContext, template_id: Optional[int],
                                        fallback_text: Optional[str], **metadata) -> ActionResult:
        """Send the template; if it is missing, invalid or rejected, DM the fallback text instead."""
        elements = load_template_elements(self.db, template_id) if template_id else []
        errors = validate_carousel(elements)
        if not errors:
            recipient = None
            if context.trigger_type == "COMMENT" and context.comment_id:
                recipient = {"comment_id": context.comment_id}
            sent = await self.instagram.send_carousel(
                context.page_id, context.sender_id, to_wire_elements(elements), context.token, recipient=recipient
            )
            if sent.success:
                self.record(context, "CAROUSEL", EventType.CAROUSEL_SENT, template_id=template_id, **metadata)
                return ok(f"Carousel sent ({len(elements)} elements)")
            errors = [f"Carousel send failed: {sent.error}"]
        else:
            logger.warning("⚠️ Carousel template %s not sendable: %s", template_id, "; ".join(errors))

        if not fallback_text:
            return fail("Carousel template missing or invalid: " + "; ".join(errors))

        sent = await self.deliver_text(context, fallback_text)
        if not sent.success:
            return fail(f"Failed to send fallback message: {sent.error}")
        self.record(context, "DM", EventType.DM_SENT, fallback=True, **metadata)
        return ok("Sent fallback message")

    async def _carousel(self, node, config, context):
        template_id = resolve_template_id(self.db, context.automation_id, config.template_id)
        return await self.send_carousel_or_fallback(context, template_id, config.fallback_text,
                                                    node_id=node.node_id)

    async def _button_template(self, node, config, context):
        if not config.body or not config.buttons:
            return fail("Button template needs text and at least one button")
        sent = await self.instagram.send_button_template(
            context.page_id, context.sender_id, config.body, [b.to_wire() for b in config.buttons], context.token
        )
        if not sent.success:
            return fail(f"Failed to send button template: {sent.error}")
        self.record(context, "DM", EventType.DM_SENT, node_id=node.node_id)
        return ok("Button template sent")

    async def _product_template(self, node, config, context):
        if not config.product_ids:
            return fail("No products configured")
        sent = await self.instagram.send_product_template(
            context.page_id, context.sender_id, config.product_ids, context.token
        )
        if not sent.success:
            return fail(f"Failed to send product template: {sent.error}")
        self.record(context, "DM", EventType.DM_SENT, node_id=node.node_id)
        return ok(f"Product template sent ({len(config.product_ids)} products)")

    async def _quick_replies(self, node, config, context):
        if not config.text or not config.quick_replies:
            return fail("Quick replies need text and at least one option")
        sent = await self.instagram.send_quick_replies(
            context.page_id, context.sender_id, config.text,
            [qr.model_dump() for qr in config.quick_replies], context.token
        )
        if not sent.success:
            return fail(f"Failed to send quick replies: {sent.error}")
        self.record(context, "DM", EventType.DM_SENT, node_id=node.node_id)
        return ok("Quick replies sent")

    # Profile-level settings: nothing is sent to the conversation, so no response is tracked

    async def _ice_breakers(self, node, config, context):
        if not config.ice_breakers:
            return fail("No ice breakers configured")
        sent = await self.instagram.set_ice_breakers([ib.model_dump() for ib in config.ice_breakers], context.token)
        if not sent.success:
            return fail(f"Failed to set ice breakers: {sent.error}")
        return ok("Ice breakers set")

    async def _persistent_menu(self, node, config, context):
        if not config.menu_items:
            return fail("No menu items configured")
        sent = await self.instagram.set_persistent_menu([m.to_wire() for m in config.menu_items], context.token)
        if not sent.success:
            return fail(f"Failed to set persistent menu: {sent.error}")
        return ok("Persistent menu set")

    async def _sender_action(self, node, config, context):
        action = node.sub_type.lower()
        sent = await self.instagram.send_sender_action(context.page_id, context.sender_id, action, context.token)
        if not sent.success:
            return fail(f"Failed to send {action}: {sent.error}")
        return ok(f"Sender action {action} sent")

    async def _delay(self, node, config, context):
        seconds = config.duration
        if not seconds:
            return ok("No delay configured")
        logger.info("⏳ Delaying %ss at node %s", seconds, node.node_id)
        await self.sleep(seconds)
        return ok(f"Delayed {seconds:g} seconds")
