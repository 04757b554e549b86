"""
Turn Meta webhook payloads into InboundEvents.

Echoes of our own messages, comments written by the page itself, replies
inside comment threads and redelivered ids are dropped here so they
never reach the flow engine.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from replyflow.schemas.execution import InboundEvent

logger = logging.getLogger(__name__)

DEDUP_TTL_SECONDS = 3600
_MAX_CACHE_SIZE = 10000


class DedupCache:
    """Ids seen within the last `ttl` seconds."""

    def __init__(self, ttl: float = DEDUP_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._seen: Dict[str, float] = {}

    def check_and_add(self, key: str) -> bool:
        """True if key was already seen (and is still fresh)."""
        now = self._clock()
        if len(self._seen) > _MAX_CACHE_SIZE:
            self._seen = {k: t for k, t in self._seen.items() if now - t < self.ttl}
        seen_at = self._seen.get(key)
        if seen_at is not None and now - seen_at < self.ttl:
            return True
        self._seen[key] = now
        return False

    def clear(self):
        self._seen.clear()


def _messaging_event(page_id: str, event: Dict[str, Any]) -> Optional[InboundEvent]:
    sender_id = (event.get("sender") or {}).get("id")
    if not sender_id:
        return None

    if "postback" in event:
        postback = event["postback"] or {}
        text = postback.get("payload") or postback.get("title")
        return InboundEvent(kind="DM", page_id=page_id, sender_id=sender_id, text=text,
                            message_id=postback.get("mid"), is_postback=True)

    message = event.get("message")
    if not message:
        # message_edit, reactions, reads: nothing to answer
        return None
    if message.get("is_echo") or sender_id == page_id:
        return None
    quick_reply = message.get("quick_reply") or {}
    text = message.get("text") or quick_reply.get("payload")
    return InboundEvent(kind="DM", page_id=page_id, sender_id=sender_id, text=text,
                        message_id=message.get("mid"))


def _comment_event(page_id: str, value: Dict[str, Any]) -> Optional[InboundEvent]:
    sender_id = (value.get("from") or {}).get("id")
    if not sender_id or sender_id == page_id:
        return None
    if value.get("parent_id"):
        return None
    return InboundEvent(
        kind="COMMENT",
        page_id=page_id,
        sender_id=sender_id,
        text=value.get("text"),
        comment_id=value.get("id"),
        media_id=(value.get("media") or {}).get("id"),
    )


def parse_webhook(body: Dict[str, Any], dedup: Optional[DedupCache] = None) -> List[InboundEvent]:
    if body.get("object") != "instagram":
        return []

    events = []
    for entry in body.get("entry", []):
        page_id = str(entry.get("id", ""))
        for messaging in entry.get("messaging", []):
            event = _messaging_event(page_id, messaging)
            if event:
                events.append(event)
        for change in entry.get("changes", []):
            if change.get("field") not in ("comments", "live_comments"):
                continue
            event = _comment_event(page_id, change.get("value") or {})
            if event:
                events.append(event)

    if dedup is None:
        return events

    fresh = []
    for event in events:
        key = event.comment_id or event.message_id
        if key and dedup.check_and_add(key):
            logger.info("⚠️ Skipping duplicate event %s", key)
            continue
        fresh.append(event)
    return fresh
