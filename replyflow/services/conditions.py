import logging

from replyflow.schemas.execution import ExecutionContext
from replyflow.schemas.flow import FlowNodeView, HasTagConfig
from replyflow.utils.instagram_api import InstagramAPI, extract_hashtags

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    def __init__(self, instagram: InstagramAPI):
        self.instagram = instagram

    async def evaluate(self, node: FlowNodeView, context: ExecutionContext) -> bool:
        """Evaluate a condition node. Any error counts as False."""
        try:
            if node.sub_type == "IS_FOLLOWER":
                return await self.instagram.is_follower(context.page_id, context.sender_id, context.token)

            if node.sub_type == "HAS_TAG":
                required = HasTagConfig.model_validate(node.config).required_tags
                if not required:
                    return True
                found = set(extract_hashtags(context.message_text))
                if context.media_id:
                    media_tags = await self.instagram.get_media_hashtags(context.media_id, context.token)
                    found.update(t.lstrip("#").lower() for t in media_tags)
                return any(tag in found for tag in required)

            if node.sub_type in ("YES", "DELAY"):
                return True
            if node.sub_type == "NO":
                return False

            logger.info("Unknown condition type %s on node %s, treating as true", node.sub_type, node.node_id)
            return True
        except Exception as e:
            logger.warning("⚠️ Condition %s (%s) failed, treating as false: %s", node.node_id, node.sub_type, e)
            return False
