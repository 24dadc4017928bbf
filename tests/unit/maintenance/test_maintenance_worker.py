"""Maintenance worker job tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlmodel import select

from bizreply.core.config import AppSettings, RelaySettings, TelemetrySettings
from bizreply.core.db import Conversation, MessageLog, Product
from bizreply.core.domain import ChannelType, ConversationMode
from bizreply.core.errors import DeliveryFailed
from bizreply.maintenance import MaintenanceWorker
from bizreply.relay import ConversationStore

pytestmark = pytest.mark.unit


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        relay=RelaySettings(conversation_timeout_minutes=30, product_sync_interval_seconds=5),
        telemetry=TelemetrySettings(metrics_port=None),
    )


def _human_conversation(session, business_id, customer: str, last_message_at: datetime):
    store = ConversationStore(session)
    conversation = store.find_or_create_conversation(business_id, customer, ChannelType.WHATSAPP)
    store.set_mode(conversation, ConversationMode.HUMAN, assigned_to="sam")
    conversation.last_message_at = last_message_at
    session.add(conversation)
    session.commit()
    return conversation.id


@pytest.mark.asyncio
async def test_idle_human_conversations_return_to_ai(
    settings, session_factory, session, make_business, adapter
) -> None:
    business = make_business()
    now = datetime.now(tz=UTC)
    idle_id = _human_conversation(session, business.id, "111", now - timedelta(hours=2))
    active_id = _human_conversation(session, business.id, "222", now - timedelta(minutes=5))

    worker = MaintenanceWorker(
        settings,
        session_factory=session_factory,
        adapters={ChannelType.WHATSAPP: adapter},
    )
    released = await worker.release_idle_conversations()

    assert released == 1
    session.expire_all()
    idle = session.get(Conversation, idle_id)
    assert idle.mode == ConversationMode.AI.value
    assert idle.assigned_to is None
    assert session.get(Conversation, active_id).mode == ConversationMode.HUMAN.value

    assert [(customer, text) for _, customer, text in adapter.texts] == [
        ("111", settings.relay.handback_message)
    ]
    notices = session.exec(select(MessageLog).where(MessageLog.conversation_id == idle_id)).all()
    assert [(m.direction, m.sent_by) for m in notices] == [("outgoing", "system")]


@pytest.mark.asyncio
async def test_release_survives_handback_delivery_failure(
    settings, session_factory, session, make_business, adapter
) -> None:
    business = make_business()
    idle_id = _human_conversation(
        session, business.id, "111", datetime.now(tz=UTC) - timedelta(hours=2)
    )
    adapter.fail = DeliveryFailed("window closed", channel="whatsapp", vendor_status=400)

    worker = MaintenanceWorker(
        settings,
        session_factory=session_factory,
        adapters={ChannelType.WHATSAPP: adapter},
    )

    assert await worker.release_idle_conversations() == 1
    session.expire_all()
    assert session.get(Conversation, idle_id).mode == ConversationMode.AI.value
    assert session.exec(select(MessageLog)).all() == []


@pytest.mark.asyncio
async def test_release_without_adapters_is_silent(
    settings, session_factory, session, make_business
) -> None:
    business = make_business()
    _human_conversation(session, business.id, "111", datetime.now(tz=UTC) - timedelta(hours=2))

    worker = MaintenanceWorker(settings, session_factory=session_factory)

    assert await worker.release_idle_conversations() == 1


@pytest.mark.asyncio
async def test_sync_embeddings_embeds_pending_products(
    settings, session_factory, session, make_business, embeddings
) -> None:
    business = make_business()
    session.add(Product(business_id=business.id, name="Wool Scarf", price=30.0))
    session.commit()

    worker = MaintenanceWorker(
        settings, session_factory=session_factory, embedding_service=embeddings
    )
    report = await worker.sync_embeddings()

    assert report.embedded == 1
    session.expire_all()
    assert session.exec(select(Product)).one().embedding_model == "keyword-test"


@pytest.mark.asyncio
async def test_sync_is_a_no_op_without_embedding_backend(settings, session_factory) -> None:
    worker = MaintenanceWorker(settings, session_factory=session_factory)

    report = await worker.sync_embeddings()

    assert report.attempted == 0


@pytest.mark.asyncio
async def test_start_schedules_jobs_until_stopped(settings, session_factory, embeddings) -> None:
    worker = MaintenanceWorker(
        settings, session_factory=session_factory, embedding_service=embeddings
    )

    task = asyncio.create_task(worker.start())
    await asyncio.sleep(0.05)
    jobs = worker._scheduler.get_jobs()
    await worker.stop()
    await asyncio.wait_for(task, timeout=1)

    assert {job.func.__name__ for job in jobs} == {
        "sync_embeddings",
        "release_idle_conversations",
    }
