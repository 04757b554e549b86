import pytest

from replyflow.models import AnalyticsEvent, AutomationStats, ChatMessage
from replyflow.schemas.flow import FlowNodeView
from replyflow.services.actions import RATE_LIMIT_APOLOGY
from tests.conftest import PAGE_ID, SENDER_ID, TOKEN


def action(sub_type, config=None, node_id="a1"):
    return FlowNodeView(node_id=node_id, type="action", sub_type=sub_type, config=config or {})


@pytest.fixture
def setup(db, factory):
    user = factory.user(plan="pro")
    automation = factory.automation(user)
    return user, automation


@pytest.mark.asyncio
async def test_message_sends_dm_and_tracks(db, actions, instagram, tracker, setup, make_context):
    user, automation = setup

    result = await actions.execute(action("MESSAGE", {"message": "Our price is $10"}), make_context(automation, user))
    await tracker.drain()

    assert result.success
    assert result.node_id == "a1"
    assert instagram.named("send_direct_message") == [(PAGE_ID, SENDER_ID, "Our price is $10", TOKEN)]
    stats = db.query(AutomationStats).filter_by(automation_id=automation.id).one()
    assert stats.dm_count == 1
    assert db.query(AnalyticsEvent).filter_by(automation_id=automation.id).count() == 1


@pytest.mark.asyncio
async def test_message_without_text_fails_without_network(actions, instagram, setup, make_context):
    user, automation = setup

    result = await actions.execute(action("MESSAGE", {}), make_context(automation, user))

    assert not result.success
    assert instagram.calls == []


@pytest.mark.asyncio
async def test_message_on_comment_goes_out_as_private_reply(actions, instagram, setup, make_context):
    user, automation = setup
    context = make_context(automation, user, trigger_type="COMMENT", comment_id="c-9")

    result = await actions.execute(action("MESSAGE", {"message": "Check your DMs"}), context)

    assert result.success
    assert instagram.named("send_private_reply") == [(PAGE_ID, "c-9", "Check your DMs", TOKEN)]


@pytest.mark.asyncio
async def test_reply_comment_needs_comment_id(actions, instagram, tracker, db, setup, make_context):
    user, automation = setup
    node = action("REPLY_COMMENT", {"commentReply": "Thanks!"})

    dm_result = await actions.execute(node, make_context(automation, user))
    comment_result = await actions.execute(node, make_context(automation, user, trigger_type="COMMENT",
                                                             comment_id="c-1"))
    await tracker.drain()

    assert not dm_result.success
    assert comment_result.success
    assert instagram.named("reply_to_comment") == [("c-1", "Thanks!", TOKEN)]
    assert db.query(AutomationStats).filter_by(automation_id=automation.id).one().comment_count == 1


@pytest.mark.asyncio
async def test_platform_failure_is_reported(actions, instagram, setup, make_context):
    user, automation = setup
    instagram.failing.add("send_direct_message")

    result = await actions.execute(action("MESSAGE", {"message": "hi"}), make_context(automation, user))

    assert not result.success
    assert "rejected" in result.message


@pytest.mark.asyncio
async def test_exception_becomes_execution_error(actions, instagram, setup, make_context):
    user, automation = setup
    instagram.raising.add("send_direct_message")

    result = await actions.execute(action("MESSAGE", {"message": "hi"}), make_context(automation, user))

    assert not result.success
    assert result.message.startswith("Execution error:")


@pytest.mark.asyncio
async def test_unknown_action_type(actions, setup, make_context):
    user, automation = setup

    result = await actions.execute(action("SEND_FAX"), make_context(automation, user))

    assert not result.success
    assert result.message == "Unknown action type: SEND_FAX"


@pytest.mark.asyncio
async def test_malformed_config_is_rejected(actions, instagram, setup, make_context):
    user, automation = setup

    result = await actions.execute(action("BUTTON_TEMPLATE", {"buttons": "nope"}), make_context(automation, user))

    assert not result.success
    assert result.message.startswith("Invalid configuration")
    assert instagram.calls == []


@pytest.mark.asyncio
async def test_smart_ai_requires_paid_plan(actions, instagram, ai, factory, make_context):
    user = factory.user(plan="free")
    automation = factory.automation(user)

    result = await actions.execute(action("SMARTAI", {"prompt": "Be nice"}), make_context(automation, user))

    assert not result.success
    assert instagram.calls == []
    assert ai.calls == []


@pytest.mark.asyncio
async def test_smart_ai_replies_with_history(db, actions, instagram, ai, setup, make_context):
    user, automation = setup
    db.add(ChatMessage(automation_id=automation.id, page_id=PAGE_ID, sender_id=SENDER_ID, role="user", message="hi"))
    db.add(ChatMessage(automation_id=automation.id, page_id=PAGE_ID, sender_id=SENDER_ID, role="assistant",
                       message="hello!"))
    db.commit()

    result = await actions.execute(action("SMARTAI", {"message": "You sell shoes"}),
                                   make_context(automation, user, text="do you ship?"))

    assert result.success
    _, persona, text, history, _ = ai.calls[0]
    assert persona == "You sell shoes"
    assert text == "do you ship?"
    assert history == [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello!"}]
    assert [a[2] for a in instagram.named("send_sender_action")] == ["mark_seen", "typing_on"]
    assert instagram.named("send_direct_message")[-1][2] == "Thanks for reaching out!"
    assert db.query(ChatMessage).filter_by(automation_id=automation.id).count() == 4


@pytest.mark.asyncio
async def test_smart_ai_rate_limit_sends_apology(actions, instagram, ai, setup, make_context):
    user, automation = setup
    node = action("SMARTAI", {"prompt": "Be nice"})
    context = make_context(automation, user)

    # Quota is 2 per minute in tests
    assert (await actions.execute(node, context)).success
    assert (await actions.execute(node, context)).success
    limited = await actions.execute(node, context)

    assert not limited.success
    assert limited.message == "Rate limit exceeded"
    assert len(ai.calls) == 2
    assert instagram.named("send_direct_message")[-1][2] == RATE_LIMIT_APOLOGY


@pytest.mark.asyncio
async def test_smart_ai_without_reply_fails(actions, ai, instagram, setup, make_context):
    user, automation = setup
    ai.reply = None

    result = await actions.execute(action("SMARTAI", {"prompt": "Be nice"}), make_context(automation, user))

    assert not result.success
    assert instagram.named("send_direct_message") == []


@pytest.mark.asyncio
async def test_carousel_sends_ordered_elements_with_lowercase_buttons(actions, instagram, factory, setup,
                                                                      make_context):
    user, automation = setup
    factory.carousel(automation, [
        ("First", [("WEB_URL", "Shop", "https://shop.example.com")]),
        ("Second", [("POSTBACK", "More", "MORE_INFO")]),
    ])

    result = await actions.execute(action("CAROUSEL"), make_context(automation, user))

    assert result.success
    elements = instagram.named("send_carousel")[0][2]
    assert [e["title"] for e in elements] == ["First", "Second"]
    assert elements[0]["buttons"] == [{"type": "web_url", "title": "Shop", "url": "https://shop.example.com"}]
    assert elements[1]["buttons"] == [{"type": "postback", "title": "More", "payload": "MORE_INFO"}]


@pytest.mark.asyncio
async def test_invalid_carousel_is_never_sent(actions, instagram, factory, setup, make_context):
    user, automation = setup
    factory.carousel(automation, [("Card", [("WEB_URL", "Go", "notaurl")])])

    result = await actions.execute(action("CAROUSEL"), make_context(automation, user))

    assert not result.success
    assert instagram.named("send_carousel") == []


@pytest.mark.asyncio
async def test_empty_carousel_falls_back_to_prompt(actions, instagram, factory, setup, make_context):
    user, automation = setup
    factory.carousel(automation, [])

    result = await actions.execute(action("CAROUSEL", {"prompt": "Check our catalog"}),
                                   make_context(automation, user))

    assert result.success
    assert instagram.named("send_carousel") == []
    assert instagram.named("send_direct_message")[0][2] == "Check our catalog"


@pytest.mark.asyncio
async def test_templates_require_content(actions, instagram, setup, make_context):
    user, automation = setup
    context = make_context(automation, user)

    assert not (await actions.execute(action("BUTTON_TEMPLATE", {"text": "Pick"}), context)).success
    assert not (await actions.execute(action("PRODUCT_TEMPLATE", {"productIds": []}), context)).success
    assert not (await actions.execute(action("QUICK_REPLIES", {"text": "Pick"}), context)).success
    assert not (await actions.execute(action("ICE_BREAKERS", {}), context)).success
    assert not (await actions.execute(action("PERSISTENT_MENU", {}), context)).success
    assert instagram.calls == []


@pytest.mark.asyncio
async def test_templates_send(actions, instagram, setup, make_context):
    user, automation = setup
    context = make_context(automation, user)

    button = await actions.execute(action("BUTTON_TEMPLATE", {
        "text": "Pick one",
        "buttons": [{"type": "WEB_URL", "title": "Site", "url": "https://example.com"}],
    }), context)
    products = await actions.execute(action("PRODUCT_TEMPLATE", {"productIds": ["p1", "p2"]}), context)
    quick = await actions.execute(action("QUICK_REPLIES", {
        "text": "Size?", "quickReplies": [{"title": "S"}, {"title": "M", "payload": "SIZE_M"}],
    }), context)
    ice = await actions.execute(action("ICE_BREAKERS", {"iceBreakers": [{"question": "Hours?"}]}), context)
    menu = await actions.execute(action("PERSISTENT_MENU", {
        "menuItems": [{"type": "postback", "title": "Help", "payload": "HELP"}],
    }), context)

    assert all(r.success for r in (button, products, quick, ice, menu))
    assert instagram.named("send_button_template")[0][3] == [
        {"type": "web_url", "title": "Site", "url": "https://example.com"}
    ]
    assert instagram.named("send_product_template")[0][2] == ["p1", "p2"]
    assert instagram.named("set_persistent_menu")[0][0] == [{"type": "postback", "title": "Help", "payload": "HELP"}]


@pytest.mark.asyncio
async def test_sender_actions(actions, instagram, setup, make_context):
    user, automation = setup
    context = make_context(automation, user)

    for sub_type in ("TYPING_ON", "TYPING_OFF", "MARK_SEEN"):
        assert (await actions.execute(action(sub_type), context)).success

    assert [a[2] for a in instagram.named("send_sender_action")] == ["typing_on", "typing_off", "mark_seen"]


@pytest.mark.asyncio
async def test_smart_ai_rate_limit_is_checked_before_prompt(actions, instagram, ai, setup, make_context):
    user, automation = setup
    context = make_context(automation, user)
    unconfigured = action("SMARTAI", {})

    assert (await actions.execute(unconfigured, context)).message == "No AI prompt configured"
    assert (await actions.execute(unconfigured, context)).message == "No AI prompt configured"
    limited = await actions.execute(action("SMARTAI", {"prompt": "Be nice"}), context)

    assert limited.message == "Rate limit exceeded"
    assert ai.calls == []


@pytest.mark.asyncio
async def test_reply_mention_comments_on_media_and_tracks(db, actions, instagram, tracker, setup, make_context):
    user, automation = setup
    context = make_context(automation, user, trigger_type="COMMENT", media_id="media-3", comment_id="c-4")

    result = await actions.execute(action("REPLY_MENTION", {"message": "Thanks for the shoutout!"}), context)
    await tracker.drain()

    assert result.success
    assert result.message == "Mention reply sent"
    assert instagram.named("reply_to_mention") == [(PAGE_ID, "media-3", "Thanks for the shoutout!", TOKEN, "c-4")]
    db.expire_all()
    stats = db.query(AutomationStats).filter_by(automation_id=automation.id).one()
    assert (stats.dm_count, stats.comment_count) == (0, 1)


@pytest.mark.asyncio
async def test_reply_mention_needs_media_and_text(actions, instagram, setup, make_context):
    user, automation = setup

    no_media = await actions.execute(action("REPLY_MENTION", {"message": "hi"}), make_context(automation, user))
    no_text = await actions.execute(action("REPLY_MENTION"), make_context(automation, user, media_id="media-3"))

    assert no_media.message == "No media to reply to"
    assert no_text.message == "No reply text configured"
    assert instagram.calls == []


@pytest.mark.asyncio
async def test_delay_waits_for_configured_seconds(actions, setup, make_context):
    user, automation = setup
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    actions.sleep = fake_sleep
    context = make_context(automation, user)

    delayed = await actions.execute(action("DELAY", {"delay": 2}), context)
    aliased = await actions.execute(action("DELAY", {"seconds": 1.5}), context)
    skipped = await actions.execute(action("DELAY"), context)

    assert delayed.message == "Delayed 2 seconds"
    assert aliased.message == "Delayed 1.5 seconds"
    assert skipped.success
    assert skipped.message == "No delay configured"
    assert slept == [2, 1.5]
