from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlmodel import select

from bizreply.core.config import OpenAISettings, RelaySettings
from bizreply.core.db import Business, Conversation, MessageLog, UsageRecord
from bizreply.core.domain import ChannelType, ConversationMode, EventKind, MessageDirection
from bizreply.core.errors import DeliveryFailed, StoreWriteFailed
from bizreply.relay import RelayOrchestrator, RelayOutcome, ReplyGenerator
from bizreply.relay.store import ConversationStore

pytestmark = pytest.mark.unit

FALLBACK = "Thanks for reaching out! A team member will get back to you shortly."


@pytest.fixture
def orchestrator(session_factory, adapter, provider) -> RelayOrchestrator:
    generator = ReplyGenerator(
        provider, OpenAISettings(_env_file=None), fallback_message=FALLBACK
    )
    return RelayOrchestrator(
        session_factory=session_factory,
        adapters={ChannelType.WHATSAPP: adapter},
        generator=generator,
        settings=RelaySettings(_env_file=None, fallback_message=FALLBACK),
    )


def _messages(session_factory) -> list[MessageLog]:
    with session_factory() as session:
        statement = select(MessageLog).order_by(MessageLog.sent_at, MessageLog.created_at)
        return list(session.exec(statement).all())


def _business(session_factory, business_id) -> Business:
    with session_factory() as session:
        return session.get(Business, business_id)


@pytest.mark.asyncio
async def test_reply_is_sent_and_both_messages_recorded(
    orchestrator, session_factory, make_business, event_factory, adapter, provider
) -> None:
    business = make_business()

    outcome = await orchestrator.handle_event(event_factory())

    assert outcome is RelayOutcome.REPLIED
    assert len(adapter.replies) == 1
    assert adapter.replies[0][1] == "Yes, we have it in medium!"
    assert adapter.typing == ["16505551234"]

    messages = _messages(session_factory)
    assert [m.direction for m in messages] == [
        MessageDirection.INCOMING.value,
        MessageDirection.OUTGOING.value,
    ]
    assert messages[0].content == "Do you have the linen shirt in medium?"
    assert messages[0].external_id == "wamid.in-1"
    assert messages[1].sent_by == "ai"
    assert messages[1].external_id == "out-1"
    assert messages[1].metadata_json["in_reply_to"] == "wamid.in-1"
    assert _business(session_factory, business.id).message_count == 1

    with session_factory() as session:
        usage = list(session.exec(select(UsageRecord)).all())
        conversation = session.exec(select(Conversation)).one()
    assert len(usage) == 1
    assert usage[0].tokens_input == 120
    assert usage[0].cost_input > 0
    assert conversation.customer_name == "Dana Ortiz"
    assert conversation.mode == ConversationMode.AI.value


@pytest.mark.asyncio
async def test_unknown_routing_key_is_dropped(
    orchestrator, session_factory, make_business, event_factory, adapter
) -> None:
    make_business()

    outcome = await orchestrator.handle_event(event_factory(routing_key="999"))

    assert outcome is RelayOutcome.ROUTING_NOT_FOUND
    assert adapter.replies == []
    assert _messages(session_factory) == []


@pytest.mark.asyncio
async def test_business_own_messages_are_not_answered(
    orchestrator, session_factory, make_business, event_factory, adapter
) -> None:
    make_business()

    outcome = await orchestrator.handle_event(event_factory(sender="106540352242922"))

    assert outcome is RelayOutcome.OWN_ECHO
    assert adapter.replies == []
    assert _messages(session_factory) == []


@pytest.mark.asyncio
async def test_provider_failure_sends_fallback(
    orchestrator, session_factory, make_business, event_factory, adapter, provider
) -> None:
    business = make_business()
    provider.error = RuntimeError("upstream timeout")

    outcome = await orchestrator.handle_event(event_factory())

    assert outcome is RelayOutcome.FALLBACK_REPLIED
    assert adapter.replies[0][1] == FALLBACK
    messages = _messages(session_factory)
    assert len(messages) == 2
    assert messages[1].content == FALLBACK
    assert messages[1].metadata_json["fallback"] is True
    assert _business(session_factory, business.id).message_count == 1
    with session_factory() as session:
        assert session.exec(select(UsageRecord)).all() == []


@pytest.mark.asyncio
async def test_delivery_failure_keeps_inbound_only(
    orchestrator, session_factory, make_business, event_factory, adapter
) -> None:
    business = make_business()
    adapter.fail = DeliveryFailed(
        "(#131047) Re-engagement message", channel="whatsapp", vendor_status=400
    )

    outcome = await orchestrator.handle_event(event_factory())

    assert outcome is RelayOutcome.DELIVERY_FAILED
    messages = _messages(session_factory)
    assert [m.direction for m in messages] == [MessageDirection.INCOMING.value]
    assert _business(session_factory, business.id).message_count == 0


def _fail_append_for(monkeypatch, failing: MessageDirection) -> None:
    real_append = ConversationStore.append

    def append(self, conversation, direction, text, **kwargs):
        if direction is failing:
            raise StoreWriteFailed("failed to append message")
        return real_append(self, conversation, direction, text, **kwargs)

    monkeypatch.setattr(ConversationStore, "append", append)


@pytest.mark.asyncio
async def test_inbound_store_failure_still_replies(
    orchestrator, session_factory, make_business, event_factory, adapter, monkeypatch
) -> None:
    make_business()
    _fail_append_for(monkeypatch, MessageDirection.INCOMING)

    outcome = await orchestrator.handle_event(event_factory())

    assert outcome is RelayOutcome.REPLIED
    assert len(adapter.replies) == 1
    assert [m.direction for m in _messages(session_factory)] == [
        MessageDirection.OUTGOING.value
    ]


@pytest.mark.asyncio
async def test_outbound_store_failure_keeps_delivered_reply(
    orchestrator, session_factory, make_business, event_factory, adapter, monkeypatch
) -> None:
    business = make_business()
    _fail_append_for(monkeypatch, MessageDirection.OUTGOING)

    outcome = await orchestrator.handle_event(event_factory())

    assert outcome is RelayOutcome.REPLIED
    assert len(adapter.replies) == 1
    assert [m.direction for m in _messages(session_factory)] == [
        MessageDirection.INCOMING.value
    ]
    assert _business(session_factory, business.id).message_count == 0


@pytest.mark.asyncio
async def test_ai_disabled_records_without_reply(
    orchestrator, session_factory, make_business, event_factory, adapter, provider
) -> None:
    make_business(ai_enabled=False)

    outcome = await orchestrator.handle_event(event_factory())

    assert outcome is RelayOutcome.AI_DISABLED
    assert adapter.replies == []
    assert provider.calls == []
    assert len(_messages(session_factory)) == 1


@pytest.mark.asyncio
async def test_inactive_business_is_not_answered(
    orchestrator, make_business, event_factory, adapter
) -> None:
    make_business(is_active=False)

    assert await orchestrator.handle_event(event_factory()) is RelayOutcome.AI_DISABLED
    assert adapter.replies == []


@pytest.mark.asyncio
async def test_human_mode_conversation_is_left_to_agent(
    orchestrator, session_factory, make_business, event_factory, adapter
) -> None:
    make_business()
    await orchestrator.handle_event(event_factory())
    with session_factory() as session:
        conversation = session.exec(select(Conversation)).one()
        conversation.mode = ConversationMode.HUMAN.value
        session.add(conversation)
        session.commit()

    outcome = await orchestrator.handle_event(
        event_factory("Are you there?", external_id="wamid.in-2")
    )

    assert outcome is RelayOutcome.HUMAN_MODE
    assert len(adapter.replies) == 1
    assert len(_messages(session_factory)) == 3


@pytest.mark.asyncio
async def test_escalation_keyword_flags_conversation(
    orchestrator, session_factory, make_business, event_factory
) -> None:
    make_business(escalation_keywords=["refund", "manager"])

    outcome = await orchestrator.handle_event(event_factory("I want to talk to a MANAGER now"))

    assert outcome is RelayOutcome.REPLIED
    with session_factory() as session:
        conversation = session.exec(select(Conversation)).one()
    assert conversation.escalation_requested is True
    assert conversation.escalation_reason == "keyword:manager"
    assert conversation.escalation_count == 1


@pytest.mark.asyncio
async def test_comments_ignored_unless_enabled(
    orchestrator, session_factory, make_business, event_factory, adapter
) -> None:
    make_business()
    comment = event_factory(kind=EventKind.COMMENT, external_id="comment-1")

    outcome = await orchestrator.handle_event(comment)

    assert outcome is RelayOutcome.COMMENTS_DISABLED
    assert adapter.replies == []
    assert _messages(session_factory) == []


@pytest.mark.asyncio
async def test_comment_reply_when_enabled_skips_typing(
    orchestrator, session_factory, make_business, event_factory, adapter
) -> None:
    make_business(auto_reply_comments=True)
    comment = event_factory(kind=EventKind.COMMENT, external_id="comment-1")

    outcome = await orchestrator.handle_event(comment)

    assert outcome is RelayOutcome.REPLIED
    assert adapter.typing == []
    assert [m.message_type for m in _messages(session_factory)] == ["comment", "comment"]


@pytest.mark.asyncio
async def test_history_excludes_current_message(
    orchestrator, make_business, event_factory, provider
) -> None:
    make_business()
    now = datetime.now(tz=UTC)

    await orchestrator.handle_event(
        event_factory("Hi", external_id="wamid.1", timestamp=now - timedelta(minutes=10))
    )
    await orchestrator.handle_event(
        event_factory(
            "Medium please", external_id="wamid.2", timestamp=now - timedelta(minutes=5)
        )
    )

    second_call = provider.calls[1]
    assert [message["role"] for message in second_call] == ["system", "user", "assistant", "user"]
    assert second_call[1]["content"] == "Hi"
    assert second_call[-1]["content"] == "Medium please"


@pytest.mark.asyncio
async def test_greeting_only_for_new_conversations(
    orchestrator, make_business, event_factory, provider
) -> None:
    make_business(ai_greeting_message="Welcome to Linen House!")

    await orchestrator.handle_event(event_factory("Hi", external_id="wamid.1"))
    await orchestrator.handle_event(event_factory("Hello again", external_id="wamid.2"))

    assert "Welcome to Linen House!" in provider.calls[0][0]["content"]
    assert "Welcome to Linen House!" not in provider.calls[1][0]["content"]


@pytest.mark.asyncio
async def test_unexpected_error_is_contained(
    orchestrator, make_business, event_factory, adapter
) -> None:
    make_business()

    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    adapter.send_reply = explode

    assert await orchestrator.handle_event(event_factory()) is RelayOutcome.ERROR


@pytest.mark.asyncio
async def test_handle_payload_relays_every_event_in_order(
    orchestrator, make_business, event_factory, adapter
) -> None:
    make_business()
    events = [
        event_factory("first", external_id="wamid.1"),
        event_factory("second", external_id="wamid.2", sender="16505559999"),
    ]

    outcomes = await orchestrator.handle_payload(ChannelType.WHATSAPP, events)

    assert outcomes == [RelayOutcome.REPLIED, RelayOutcome.REPLIED]
    assert [reply[0].text for reply in adapter.replies] == ["first", "second"]


@pytest.mark.asyncio
async def test_handle_payload_with_no_events(orchestrator) -> None:
    assert await orchestrator.handle_payload(ChannelType.WHATSAPP, {"object": "unknown"}) == []
