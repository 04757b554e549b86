"""
Instagram Graph API client for messages, templates, comment replies and
profile-level messaging settings.

Every send method returns a SendResult instead of raising on a non-2xx
response, so the action layer can report the failure per node. Transport
errors (timeouts, connection resets) are left to propagate.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from replyflow.exceptions import PlatformError

logger = logging.getLogger(__name__)

GRAPH_API_URL = os.getenv("INSTAGRAM_GRAPH_API_URL", "https://graph.instagram.com")
GRAPH_API_VERSION = os.getenv("INSTAGRAM_GRAPH_API_VERSION", "v21.0")

# Instagram private reply / DM text limit (conservative to avoid Meta "unknown error")
MESSAGE_MAX_LENGTH = 500
COMMENT_MAX_LENGTH = 300
MAX_QUICK_REPLIES = 13
QUICK_REPLY_TITLE_MAX_LENGTH = 20
MAX_CAROUSEL_ELEMENTS = 10
MAX_TEMPLATE_BUTTONS = 3

SENDER_ACTIONS = {"typing_on", "typing_off", "mark_seen"}

HASHTAG_PATTERN = re.compile(r"#(\w+)")


@dataclass
class SendResult:
    success: bool
    status_code: int = 0
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


def truncate_text(text: str, limit: int = MESSAGE_MAX_LENGTH) -> str:
    text = (text or "").strip()
    if len(text) > limit:
        logger.warning("⚠️ Message truncated to %s chars", limit)
        return text[:limit - 3] + "..."
    return text


def extract_hashtags(text: Optional[str]) -> List[str]:
    """Lowercased hashtags in text, without the leading #."""
    if not text:
        return []
    return [tag.lower() for tag in HASHTAG_PATTERN.findall(text)]


class InstagramAPI:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 15.0):
        self._client = client
        self._timeout = timeout
        self.base_url = f"{GRAPH_API_URL.rstrip('/')}/{GRAPH_API_VERSION}"

    async def _request(self, method: str, path: str, token: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {token}"}
        if self._client is not None:
            return await self._client.request(method, url, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, headers=headers, **kwargs)

    async def _post(self, path: str, payload: dict, token: str) -> SendResult:
        response = await self._request("POST", path, token, json=payload)
        if response.status_code >= 300:
            logger.error("❌ Graph API POST %s failed (%s): %s", path, response.status_code, response.text)
            return SendResult(success=False, status_code=response.status_code, error=response.text)
        try:
            data = response.json()
        except ValueError:
            data = {}
        return SendResult(success=True, status_code=response.status_code, data=data)

    async def _send_message(self, page_id: str, recipient: dict, message: dict, token: str) -> SendResult:
        endpoint = f"{page_id}/messages" if page_id else "me/messages"
        return await self._post(endpoint, {"recipient": recipient, "message": message}, token)

    async def send_direct_message(self, page_id: str, recipient_id: str, text: str, token: str) -> SendResult:
        logger.info("📤 Sending DM to %s from page %s", recipient_id, page_id)
        return await self._send_message(page_id, {"id": recipient_id}, {"text": truncate_text(text) or " "}, token)

    async def send_private_reply(self, page_id: str, comment_id: str, text: str, token: str) -> SendResult:
        """DM a commenter. The recipient is addressed by comment id, which is the
        only way a page may open a conversation with someone who commented."""
        logger.info("📤 Sending private reply for comment %s", comment_id)
        return await self._send_message(page_id, {"comment_id": comment_id}, {"text": truncate_text(text) or " "}, token)

    async def reply_to_comment(self, comment_id: str, text: str, token: str) -> SendResult:
        """Public reply under the comment (visible on the post/reel)."""
        logger.info("💬 Replying publicly to comment %s", comment_id)
        return await self._post(f"{comment_id}/replies", {"message": text}, token)

    async def reply_to_mention(self, page_id: str, media_id: str, text: str, token: str,
                               comment_id: Optional[str] = None) -> SendResult:
        """Comment on the media where the page was mentioned, optionally under a specific comment."""
        logger.info("💬 Replying to mention on media %s", media_id)
        payload = {"message": truncate_text(text, COMMENT_MAX_LENGTH), "media_id": media_id}
        if comment_id:
            payload["comment_id"] = comment_id
        return await self._post(f"{page_id}/mentions", payload, token)

    async def send_carousel(self, page_id: str, recipient_id: str, elements: List[dict], token: str,
                            recipient: Optional[dict] = None) -> SendResult:
        message = {
            "attachment": {
                "type": "template",
                "payload": {
                    "template_type": "generic",
                    "elements": elements[:MAX_CAROUSEL_ELEMENTS],
                },
            }
        }
        return await self._send_message(page_id, recipient or {"id": recipient_id}, message, token)

    async def send_button_template(self, page_id: str, recipient_id: str, text: str, buttons: List[dict],
                                   token: str) -> SendResult:
        message = {
            "attachment": {
                "type": "template",
                "payload": {
                    "template_type": "button",
                    "text": truncate_text(text, 640),
                    "buttons": buttons[:MAX_TEMPLATE_BUTTONS],
                },
            }
        }
        return await self._send_message(page_id, {"id": recipient_id}, message, token)

    async def send_product_template(self, page_id: str, recipient_id: str, product_ids: List[str],
                                    token: str) -> SendResult:
        message = {
            "attachment": {
                "type": "template",
                "payload": {
                    "template_type": "product",
                    "elements": [{"id": pid} for pid in product_ids[:MAX_CAROUSEL_ELEMENTS]],
                },
            }
        }
        return await self._send_message(page_id, {"id": recipient_id}, message, token)

    async def send_quick_replies(self, page_id: str, recipient_id: str, text: str, quick_replies: List[dict],
                                 token: str) -> SendResult:
        replies = []
        for qr in quick_replies[:MAX_QUICK_REPLIES]:
            title = (qr.get("title") or "").strip()[:QUICK_REPLY_TITLE_MAX_LENGTH]
            if not title:
                continue
            replies.append({
                "content_type": "text",
                "title": title,
                "payload": qr.get("payload") or title,
            })
        message = {"text": truncate_text(text), "quick_replies": replies}
        return await self._send_message(page_id, {"id": recipient_id}, message, token)

    async def set_ice_breakers(self, ice_breakers: List[dict], token: str) -> SendResult:
        payload = {
            "platform": "instagram",
            "ice_breakers": [
                {
                    "call_to_actions": [
                        {"question": ib["question"], "payload": ib.get("payload") or ib["question"]}
                        for ib in ice_breakers
                    ],
                    "locale": "default",
                }
            ],
        }
        return await self._post("me/messenger_profile", payload, token)

    async def set_persistent_menu(self, menu_items: List[dict], token: str) -> SendResult:
        payload = {
            "platform": "instagram",
            "persistent_menu": [
                {"locale": "default", "call_to_actions": menu_items},
            ],
        }
        return await self._post("me/messenger_profile", payload, token)

    async def send_sender_action(self, page_id: str, recipient_id: str, action: str, token: str) -> SendResult:
        if action not in SENDER_ACTIONS:
            raise ValueError(f"Unsupported sender action: {action}")
        endpoint = f"{page_id}/messages" if page_id else "me/messages"
        return await self._post(endpoint, {"recipient": {"id": recipient_id}, "sender_action": action}, token)

    async def is_follower(self, page_id: str, sender_id: str, token: str) -> bool:
        response = await self._request("GET", sender_id, token, params={"fields": "is_user_follow_business"})
        if response.status_code != 200:
            raise PlatformError(f"Follower lookup failed: {response.text}", response.status_code)
        return bool(response.json().get("is_user_follow_business", False))

    async def get_media_hashtags(self, media_id: str, token: str) -> List[str]:
        response = await self._request("GET", media_id, token, params={"fields": "caption"})
        if response.status_code != 200:
            raise PlatformError(f"Media lookup failed: {response.text}", response.status_code)
        return extract_hashtags(response.json().get("caption"))
