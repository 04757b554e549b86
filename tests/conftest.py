import os

from cryptography.fernet import Fernet

# Must be set before replyflow modules read them at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["JWT_SECRET"] = "test-secret"
os.environ["INSTAGRAM_WEBHOOK_VERIFY_TOKEN"] = "verify-me"
os.environ["AI_RATE_LIMIT_PER_MINUTE"] = "2"
os.environ.pop("DISABLE_RATE_LIMIT", None)

import pytest
import pytest_asyncio

from replyflow.db.base import Base
from replyflow.db.session import SessionLocal, engine
import replyflow.models  # noqa: F401
from replyflow.models import (
    Automation,
    AutomationPost,
    CarouselButton,
    CarouselElement,
    CarouselTemplate,
    FlowEdge,
    FlowNode,
    Integration,
    Keyword,
    Listener,
    Trigger,
    User,
)
from replyflow.schemas.execution import ExecutionContext
from replyflow.services.actions import ActionExecutor
from replyflow.services.flow_executor import FlowOrchestrator
from replyflow.services.rate_limiter import TokenBucketRateLimiter
from replyflow.services.tracking import Tracker
from replyflow.utils.encryption import encrypt_credentials
from replyflow.utils.instagram_api import SendResult

PAGE_ID = "page-1"
SENDER_ID = "sender-1"
TOKEN = "ig-token"


class FakeInstagramAPI:
    """Records every call. Methods listed in `failing` return a failed SendResult,
    methods listed in `raising` raise."""

    def __init__(self):
        self.calls = []
        self.follower = True
        self.media_hashtags = []
        self.failing = set()
        self.raising = set()

    def _result(self, name, *args):
        self.calls.append((name, args))
        if name in self.raising:
            raise RuntimeError(f"{name} exploded")
        if name in self.failing:
            return SendResult(success=False, status_code=400, error=f"{name} rejected")
        return SendResult(success=True, status_code=200, data={"id": "x"})

    def named(self, name):
        return [args for n, args in self.calls if n == name]

    async def send_direct_message(self, page_id, recipient_id, text, token):
        return self._result("send_direct_message", page_id, recipient_id, text, token)

    async def send_private_reply(self, page_id, comment_id, text, token):
        return self._result("send_private_reply", page_id, comment_id, text, token)

    async def reply_to_comment(self, comment_id, text, token):
        return self._result("reply_to_comment", comment_id, text, token)

    async def reply_to_mention(self, page_id, media_id, text, token, comment_id=None):
        return self._result("reply_to_mention", page_id, media_id, text, token, comment_id)

    async def send_carousel(self, page_id, recipient_id, elements, token, recipient=None):
        return self._result("send_carousel", page_id, recipient_id, elements, token, recipient)

    async def send_button_template(self, page_id, recipient_id, text, buttons, token):
        return self._result("send_button_template", page_id, recipient_id, text, buttons, token)

    async def send_product_template(self, page_id, recipient_id, product_ids, token):
        return self._result("send_product_template", page_id, recipient_id, product_ids, token)

    async def send_quick_replies(self, page_id, recipient_id, text, quick_replies, token):
        return self._result("send_quick_replies", page_id, recipient_id, text, quick_replies, token)

    async def set_ice_breakers(self, ice_breakers, token):
        return self._result("set_ice_breakers", ice_breakers, token)

    async def set_persistent_menu(self, menu_items, token):
        return self._result("set_persistent_menu", menu_items, token)

    async def send_sender_action(self, page_id, recipient_id, action, token):
        return self._result("send_sender_action", page_id, recipient_id, action, token)

    async def is_follower(self, page_id, sender_id, token):
        self.calls.append(("is_follower", (page_id, sender_id, token)))
        if "is_follower" in self.raising:
            raise RuntimeError("lookup failed")
        return self.follower

    async def get_media_hashtags(self, media_id, token):
        self.calls.append(("get_media_hashtags", (media_id, token)))
        return list(self.media_hashtags)


class FakeAI:
    def __init__(self, reply="Thanks for reaching out!"):
        self.reply = reply
        self.calls = []

    async def generate_reply(self, system_prompt, user_text, history=None, api_key=None):
        self.calls.append(("generate_reply", system_prompt, user_text, list(history or []), api_key))
        return self.reply

    async def complete_once(self, system_prompt, user_text, api_key=None):
        self.calls.append(("complete_once", system_prompt, user_text, [], api_key))
        if not self.reply:
            raise RuntimeError("no completion")
        return self.reply


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def instagram():
    return FakeInstagramAPI()


@pytest.fixture
def ai():
    return FakeAI()


@pytest_asyncio.fixture
async def tracker():
    tracker = Tracker(session_factory=SessionLocal)
    yield tracker
    await tracker.drain()


@pytest.fixture
def rate_limiter():
    return TokenBucketRateLimiter(enabled=True)


@pytest.fixture
def actions(db, instagram, ai, rate_limiter, tracker):
    return ActionExecutor(db, instagram, ai, rate_limiter, tracker)


@pytest.fixture
def orchestrator(instagram, ai, rate_limiter, tracker):
    return FlowOrchestrator(instagram=instagram, ai=ai, rate_limiter=rate_limiter, tracker=tracker)


class Factory:
    def __init__(self, db):
        self.db = db

    def user(self, plan="free", email=None, openai_key=None):
        user = User(
            email=email or f"user{self.db.query(User).count() + 1}@example.com",
            plan_tier=plan,
            encrypted_openai_key=encrypt_credentials(openai_key) if openai_key else None,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def integration(self, user, page_id=PAGE_ID, token=TOKEN):
        integration = Integration(user_id=user.id, instagram_id=page_id, encrypted_token=encrypt_credentials(token))
        self.db.add(integration)
        self.db.commit()
        return integration

    def automation(self, user, triggers=("DM",), keywords=(), active=True, name="Auto", media_ids=()):
        automation = Automation(user_id=user.id, name=name, active=active)
        self.db.add(automation)
        self.db.flush()
        for t in triggers:
            self.db.add(Trigger(automation_id=automation.id, type=t))
        for k in keywords:
            self.db.add(Keyword(automation_id=automation.id, word=k))
        for media_id in media_ids:
            self.db.add(AutomationPost(automation_id=automation.id, media_id=media_id))
        self.db.commit()
        return automation

    def node(self, automation, node_id, type, sub_type, config=None, label=None):
        node = FlowNode(automation_id=automation.id, node_id=node_id, type=type, sub_type=sub_type,
                        config=config or {}, label=label)
        self.db.add(node)
        self.db.commit()
        return node

    def edge(self, automation, source, target, source_handle=None):
        edge = FlowEdge(automation_id=automation.id, edge_id=f"{source}->{target}",
                        source_node_id=source, target_node_id=target, source_handle=source_handle)
        self.db.add(edge)
        self.db.commit()
        return edge

    def listener(self, automation, listener="MESSAGE", prompt=None, comment_reply=None, template=None):
        row = Listener(automation_id=automation.id, listener=listener, prompt=prompt,
                       comment_reply=comment_reply, carousel_template_id=template.id if template else None)
        self.db.add(row)
        self.db.commit()
        return row

    def carousel(self, automation, elements):
        """elements: list of (title, [(type, title, payload), ...])"""
        template = CarouselTemplate(automation_id=automation.id)
        self.db.add(template)
        self.db.flush()
        for order, (title, buttons) in enumerate(elements):
            element = CarouselElement(template_id=template.id, order=order, title=title)
            self.db.add(element)
            self.db.flush()
            for button_type, button_title, payload in buttons:
                self.db.add(CarouselButton(element_id=element.id, type=button_type, title=button_title,
                                           payload=payload))
        self.db.commit()
        return template


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def make_context():
    def _make(automation, user, trigger_type="DM", text="hello", plan=None, **kwargs):
        return ExecutionContext(
            automation_id=automation.id,
            user_id=user.id,
            token=TOKEN,
            page_id=PAGE_ID,
            sender_id=SENDER_ID,
            message_text=text,
            trigger_type=trigger_type,
            user_plan=plan or user.plan_tier,
            **kwargs,
        )
    return _make
