import pytest

from replyflow.models import AutomationStats, ChatMessage
from replyflow.schemas.execution import InboundEvent
from replyflow.services.legacy import LegacyExecutor
from tests.conftest import PAGE_ID, SENDER_ID, TOKEN


@pytest.fixture
def owner(factory):
    user = factory.user(plan="pro")
    factory.integration(user)
    return user


@pytest.fixture
def legacy(db, orchestrator):
    return LegacyExecutor(db, orchestrator.action_executor(db))


@pytest.mark.asyncio
async def test_carousel_listener_without_template_falls_back_to_prompt(db, orchestrator, instagram, tracker,
                                                                       factory, owner):
    automation = factory.automation(owner)
    factory.listener(automation, listener="CAROUSEL", prompt="Check our catalog")

    result = await orchestrator.handle_event(
        db, InboundEvent(kind="DM", page_id=PAGE_ID, sender_id=SENDER_ID, text="hi")
    )
    await tracker.drain()

    assert result.success
    assert instagram.named("send_carousel") == []
    assert instagram.named("send_direct_message") == [(PAGE_ID, SENDER_ID, "Check our catalog", TOKEN)]
    db.expire_all()
    assert db.query(AutomationStats).filter_by(automation_id=automation.id).one().dm_count == 1


@pytest.mark.asyncio
async def test_message_listener_with_template_sends_carousel(legacy, instagram, factory, owner, make_context):
    automation = factory.automation(owner)
    template = factory.carousel(automation, [("Card", [("POSTBACK", "Info", "INFO")])])
    factory.listener(automation, listener="MESSAGE", prompt="fallback", template=template)

    result = await legacy.execute(automation, make_context(automation, owner))

    assert result.success
    assert len(instagram.named("send_carousel")) == 1
    assert instagram.named("send_direct_message") == []


@pytest.mark.asyncio
async def test_carousel_on_comment_is_addressed_to_comment(legacy, instagram, factory, owner, make_context):
    automation = factory.automation(owner, triggers=["COMMENT"])
    factory.carousel(automation, [("Card", [("POSTBACK", "Info", "INFO")])])
    factory.listener(automation, listener="CAROUSEL")
    context = make_context(automation, owner, trigger_type="COMMENT", comment_id="c-7")

    result = await legacy.execute(automation, context)

    assert result.success
    assert instagram.named("send_carousel")[0][4] == {"comment_id": "c-7"}


@pytest.mark.asyncio
async def test_carousel_send_failure_falls_back(legacy, instagram, factory, owner, make_context):
    automation = factory.automation(owner)
    factory.carousel(automation, [("Card", [("POSTBACK", "Info", "INFO")])])
    factory.listener(automation, listener="CAROUSEL", prompt="See our catalog")
    instagram.failing.add("send_carousel")

    result = await legacy.execute(automation, make_context(automation, owner))

    assert result.success
    assert result.message == "Sent fallback message"
    assert instagram.named("send_direct_message")[0][2] == "See our catalog"


@pytest.mark.asyncio
async def test_message_listener_dm(legacy, instagram, factory, owner, make_context):
    automation = factory.automation(owner)
    factory.listener(automation, listener="MESSAGE", prompt="Hello there")

    result = await legacy.execute(automation, make_context(automation, owner))

    assert result.success
    assert instagram.named("send_direct_message") == [(PAGE_ID, SENDER_ID, "Hello there", TOKEN)]


@pytest.mark.asyncio
async def test_comment_sends_public_reply_and_private_message(legacy, instagram, tracker, db, factory, owner,
                                                              make_context):
    automation = factory.automation(owner, triggers=["COMMENT"])
    factory.listener(automation, listener="MESSAGE", prompt="Sent you a DM", comment_reply="Check your inbox!")
    context = make_context(automation, owner, trigger_type="COMMENT", comment_id="c-1")

    result = await legacy.execute(automation, context)
    await tracker.drain()

    assert result.success
    assert instagram.named("reply_to_comment") == [("c-1", "Check your inbox!", TOKEN)]
    assert instagram.named("send_private_reply") == [(PAGE_ID, "c-1", "Sent you a DM", TOKEN)]
    db.expire_all()
    stats = db.query(AutomationStats).filter_by(automation_id=automation.id).one()
    assert (stats.dm_count, stats.comment_count) == (1, 1)


@pytest.mark.asyncio
async def test_failed_public_reply_does_not_fail_dm(legacy, instagram, factory, owner, make_context):
    automation = factory.automation(owner, triggers=["COMMENT"])
    factory.listener(automation, listener="MESSAGE", prompt="Sent you a DM", comment_reply="Check your inbox!")
    instagram.raising.add("reply_to_comment")
    context = make_context(automation, owner, trigger_type="COMMENT", comment_id="c-1")

    result = await legacy.execute(automation, context)

    assert result.success
    assert len(instagram.named("send_private_reply")) == 1


@pytest.mark.asyncio
async def test_smart_ai_listener_on_free_plan(legacy, instagram, ai, factory, make_context):
    user = factory.user(plan="free")
    automation = factory.automation(user)
    factory.listener(automation, listener="SMARTAI", prompt="You sell shoes")

    result = await legacy.execute(automation, make_context(automation, user))

    assert not result.success
    assert ai.calls == []
    assert instagram.calls == []


@pytest.mark.asyncio
async def test_smart_ai_listener_replies_and_starts_conversation(db, legacy, instagram, ai, factory, owner,
                                                                 make_context):
    automation = factory.automation(owner)
    factory.listener(automation, listener="SMARTAI", prompt="You sell shoes")

    result = await legacy.execute(automation, make_context(automation, owner, text="sizes?"))

    assert result.success
    assert ai.calls[0][:3] == ("complete_once", "You sell shoes", "sizes?")
    assert instagram.named("send_direct_message")[0][2] == "Thanks for reaching out!"
    roles = [m.role for m in db.query(ChatMessage).order_by(ChatMessage.id).all()]
    assert roles == ["user", "assistant"]


@pytest.mark.asyncio
async def test_smart_ai_generation_error_is_reported(legacy, instagram, ai, factory, owner, make_context):
    automation = factory.automation(owner)
    factory.listener(automation, listener="SMARTAI", prompt="You sell shoes")
    ai.reply = None

    result = await legacy.execute(automation, make_context(automation, owner))

    assert not result.success
    assert result.message.startswith("Execution error:")
    assert instagram.calls == []


@pytest.mark.asyncio
async def test_missing_listener(legacy, factory, owner, make_context):
    automation = factory.automation(owner)

    result = await legacy.execute(automation, make_context(automation, owner))

    assert not result.success
    assert result.message == "No listener configured"


@pytest.mark.asyncio
async def test_inactive_automation(legacy, instagram, factory, owner, make_context):
    automation = factory.automation(owner, active=False)
    factory.listener(automation, listener="MESSAGE", prompt="Hello")

    result = await legacy.execute(automation, make_context(automation, owner))

    assert result.message == "Automation is inactive"
    assert instagram.calls == []
