from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from replyflow.models.chat_message import ChatMessage


def get_history(db: Session, page_id: str, sender_id: str, limit: int = 10) -> List[Dict[str, str]]:
    """Most recent `limit` turns between page and sender, oldest first."""
    rows = db.query(ChatMessage).filter(
        ChatMessage.page_id == page_id,
        ChatMessage.sender_id == sender_id,
    ).order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit).all()
    return [{"role": row.role, "content": row.message} for row in reversed(rows)]


def latest_automation_id(db: Session, page_id: str, sender_id: str) -> Optional[int]:
    row = db.query(ChatMessage).filter(
        ChatMessage.page_id == page_id,
        ChatMessage.sender_id == sender_id,
    ).order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).first()
    return row.automation_id if row else None


def append_exchange(db: Session, automation_id: int, page_id: str, sender_id: str,
                    user_text: str, reply: str) -> None:
    """Store the customer's message and the generated reply as two turns."""
    db.add(ChatMessage(automation_id=automation_id, page_id=page_id, sender_id=sender_id,
                       role="user", message=user_text or ""))
    db.add(ChatMessage(automation_id=automation_id, page_id=page_id, sender_id=sender_id,
                       role="assistant", message=reply))
    db.commit()
