from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from typing import Any

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from bizreply.core.db import Business, session_factory_for
from bizreply.core.db.session import SessionFactory
from bizreply.core.domain import ChannelType, DeliveryResult, EventKind, NormalizedEvent
from bizreply.core.errors import DeliveryFailed
from bizreply.relay.generator import Completion

PHONE_NUMBER_ID = "106540352242922"
PAGE_ID = "112233445566778"
INSTAGRAM_ID = "17841400000000000"


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> SessionFactory:
    return session_factory_for(engine)


@pytest.fixture
def session(session_factory: SessionFactory) -> Iterator[Session]:
    with session_factory() as session:
        yield session


@pytest.fixture
def make_business(session_factory: SessionFactory) -> Callable[..., Business]:
    def _make(**overrides: Any) -> Business:
        values: dict[str, Any] = {
            "business_name": "Linen House",
            "description": "Natural fibre clothing",
            "phone_number_id": PHONE_NUMBER_ID,
            "facebook_page_id": PAGE_ID,
            "instagram_account_id": INSTAGRAM_ID,
            "page_access_token": "page-token",
        }
        values.update(overrides)
        with session_factory() as session:
            business = Business(**values)
            session.add(business)
            session.commit()
            session.refresh(business)
            session.expunge(business)
        return business

    return _make


def make_event(
    text: str = "Do you have the linen shirt in medium?",
    *,
    channel: ChannelType = ChannelType.WHATSAPP,
    routing_key: str = PHONE_NUMBER_ID,
    sender: str = "16505551234",
    kind: EventKind = EventKind.MESSAGE,
    external_id: str | None = "wamid.in-1",
    sender_name: str | None = "Dana Ortiz",
    timestamp: datetime | None = None,
) -> NormalizedEvent:
    return NormalizedEvent(
        channel=channel,
        kind=kind,
        routing_key=routing_key,
        sender_address=sender,
        text=text,
        timestamp=timestamp or datetime.now(tz=UTC),
        external_id=external_id,
        sender_name=sender_name,
    )


class StubAdapter:
    """Channel adapter double recording sends; parses payloads as pre-built events."""

    def __init__(
        self, channel: ChannelType = ChannelType.WHATSAPP, *, fail: DeliveryFailed | None = None
    ) -> None:
        self.channel = channel
        self.fail = fail
        self.replies: list[tuple[NormalizedEvent, str, str | None]] = []
        self.texts: list[tuple[str, str, str]] = []
        self.typing: list[str] = []

    def parse_inbound(self, payload: Any) -> list[NormalizedEvent]:
        if isinstance(payload, list):
            return [item for item in payload if isinstance(item, NormalizedEvent)]
        return []

    async def send_text(
        self, routing_key: str, recipient: str, text: str, *, access_token: str | None = None
    ) -> DeliveryResult:
        if self.fail is not None:
            raise self.fail
        self.texts.append((routing_key, recipient, text))
        return DeliveryResult(channel=self.channel, recipient=recipient, external_id="out-text")

    async def send_reply(
        self, event: NormalizedEvent, text: str, *, access_token: str | None = None
    ) -> DeliveryResult:
        if self.fail is not None:
            raise self.fail
        self.replies.append((event, text, access_token))
        return DeliveryResult(
            channel=self.channel,
            recipient=event.sender_address,
            external_id=f"out-{len(self.replies)}",
        )

    async def send_typing(self, recipient: str, *, access_token: str | None = None) -> None:
        self.typing.append(recipient)


class StubProvider:
    """Completion provider returning a canned reply or raising."""

    def __init__(self, text: str = "Yes, we have it in medium!", *, error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, messages, *, model: str, temperature: float, max_tokens: int):
        self.calls.append([dict(message) for message in messages])
        if self.error is not None:
            raise self.error
        return Completion(text=self.text, model=model, prompt_tokens=120, completion_tokens=30)

    async def close(self) -> None:
        return None


@pytest.fixture
def event_factory() -> Callable[..., NormalizedEvent]:
    return make_event


@pytest.fixture
def adapter() -> StubAdapter:
    return StubAdapter()


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


class KeywordEmbeddings:
    """Embedding double placing each known keyword on its own axis."""

    KEYWORDS = ("shirt", "linen", "mug", "ceramic", "scarf", "wool")

    def __init__(self, *, dimensions: int = 1536, error: Exception | None = None) -> None:
        self.dimensions = dimensions
        self.error = error
        self.calls: list[list[str]] = []

    @property
    def model_name(self) -> str:
        return "keyword-test"

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.dimensions
        lowered = text.lower()
        for axis, keyword in enumerate(self.KEYWORDS):
            if keyword in lowered:
                values[axis] = 1.0
        if not any(values):
            values[-1] = 1.0
        return values

    async def embed(self, texts):
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        return [self.vector(text) for text in texts]

    async def embed_one(self, text: str) -> list[float]:
        vectors = await self.embed([text])
        return vectors[0]


@pytest.fixture
def embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()
