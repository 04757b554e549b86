import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from replyflow.db.session import get_db
from replyflow.services.flow_executor import FlowOrchestrator
from replyflow.services.webhook_parser import DedupCache, parse_webhook

logger = logging.getLogger(__name__)

router = APIRouter()

_orchestrator = None
_dedup = DedupCache()


def get_orchestrator() -> FlowOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = FlowOrchestrator()
    return _orchestrator


def get_dedup_cache() -> DedupCache:
    return _dedup


@router.get("/instagram")
async def verify_webhook(
    hub_mode: str = Query(alias="hub.mode"),
    hub_challenge: str = Query(alias="hub.challenge"),
    hub_verify_token: str = Query(alias="hub.verify_token")
):
    """
    Meta subscription handshake. The challenge must come back as plain text.
    """
    verify_token = os.getenv("INSTAGRAM_WEBHOOK_VERIFY_TOKEN")
    if hub_mode == "subscribe" and verify_token and hub_verify_token == verify_token:
        logger.info("✅ Webhook verification successful")
        return Response(content=hub_challenge, media_type="text/plain")

    logger.warning("❌ Webhook verification failed: token mismatch or invalid mode")
    raise HTTPException(status_code=403, detail="Invalid verify token")


@router.post("/instagram")
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: FlowOrchestrator = Depends(get_orchestrator),
    dedup: DedupCache = Depends(get_dedup_cache),
):
    """
    Receive DM and comment events. Always answers 200 so Meta does not
    redeliver and cause duplicate replies.
    """
    try:
        body = await request.json()
        events = parse_webhook(body, dedup)
        logger.info("📥 Webhook with %s actionable event(s)", len(events))
        for event in events:
            result = await orchestrator.handle_event(db, event)
            logger.info("%s event from %s: %s", event.kind, event.sender_id, result.message)
    except Exception as e:
        logger.exception("❌ Error processing webhook: %s", e)
    return {"status": "success"}
