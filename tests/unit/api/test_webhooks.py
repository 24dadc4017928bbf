from __future__ import annotations

import hashlib
import hmac
import json
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from bizreply.api import dependencies
from bizreply.api.app import create_app
from bizreply.core.config import AppSettings, MetaSettings
from bizreply.core.db import Business, Conversation, MessageLog, UsageRecord

pytestmark = pytest.mark.unit

ACK = {"status": "received"}

FIXTURE_DIR = Path(__file__).parent.parent / "channels" / "fixtures"


def load_fixture(name: str) -> dict[str, Any]:
    return json.loads((FIXTURE_DIR / f"{name}.json").read_text())


def _sign(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def test_verify_handshake_echoes_challenge(client) -> None:
    response = client.get(
        "/webhook/whatsapp",
        params={
            "hub.mode": "subscribe",
            "hub.verify_token": "verify-me",
            "hub.challenge": "1158201444",
        },
    )

    assert response.status_code == 200
    assert response.text == "1158201444"


def test_app_routes_use_settings_given_to_factory() -> None:
    settings = AppSettings(meta=MetaSettings(verify_token="factory-token"))
    client = TestClient(create_app(settings, validate=False))

    response = client.get(
        "/webhook/whatsapp",
        params={
            "hub.mode": "subscribe",
            "hub.verify_token": "factory-token",
            "hub.challenge": "42",
        },
    )

    assert response.status_code == 200
    assert response.text == "42"


def test_verify_handshake_rejects_wrong_token(client) -> None:
    response = client.get(
        "/webhook/messenger",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
    )

    assert response.status_code == 403
    assert response.json()["code"] == "verification_failed"


def test_verify_handshake_requires_parameters(client) -> None:
    response = client.get("/webhook/instagram", params={"hub.challenge": "1"})

    assert response.status_code == 400


def test_unknown_channel_is_rejected(client) -> None:
    response = client.post("/webhook/telegram", json={})

    assert response.status_code == 422


def test_malformed_body_is_acknowledged(client, graph) -> None:
    response = client.post(
        "/webhook/whatsapp", content=b"{not json", headers={"content-type": "application/json"}
    )

    assert response.status_code == 200
    assert response.json() == ACK
    assert graph.requests == []


@pytest.mark.parametrize(
    "body",
    [b"[" * 200_000 + b"]" * 200_000, b"\xff\xfe\x00", b"NaN-ish {"],
    ids=["deeply-nested", "not-utf8", "garbage"],
)
def test_unparseable_body_is_acknowledged(client, graph, body: bytes) -> None:
    response = client.post(
        "/webhook/whatsapp", content=body, headers={"content-type": "application/json"}
    )

    assert response.status_code == 200
    assert response.json() == ACK
    assert graph.requests == []


def test_whatsapp_message_is_answered_and_persisted(
    client, graph, make_business, session, provider
) -> None:
    business = make_business()

    response = client.post("/webhook/whatsapp", json=load_fixture("whatsapp_message"))

    assert response.status_code == 200
    assert response.json() == ACK

    assert [request.url.path for request in graph.requests] == [
        "/v18.0/106540352242922/messages"
    ]
    sent = graph.bodies()[0]
    assert sent["to"] == "16505551234"
    assert sent["text"]["body"] == provider.text
    assert graph.requests[0].headers["Authorization"] == "Bearer wa-token"

    messages = session.exec(select(MessageLog).order_by(MessageLog.sent_at)).all()
    assert [(m.direction, m.sent_by) for m in messages] == [
        ("incoming", "customer"),
        ("outgoing", "ai"),
    ]
    assert messages[1].external_id == "wamid.out-1"

    conversation = session.exec(select(Conversation)).one()
    assert conversation.customer_address == "16505551234"
    assert conversation.customer_name == "Dana Ortiz"
    assert session.get(Business, business.id).message_count == 1
    assert len(session.exec(select(UsageRecord)).all()) == 1


def test_status_callbacks_produce_no_reply(client, graph, make_business, session) -> None:
    make_business()

    response = client.post("/webhook/whatsapp", json=load_fixture("whatsapp_status"))

    assert response.json() == ACK
    assert graph.requests == []
    assert session.exec(select(MessageLog)).all() == []


def test_unknown_routing_key_is_dropped(client, graph, session) -> None:
    response = client.post("/webhook/whatsapp", json=load_fixture("whatsapp_message"))

    assert response.status_code == 200
    assert graph.requests == []
    assert session.exec(select(Conversation)).all() == []


def test_completion_failure_sends_fallback(client, graph, make_business, provider, settings):
    make_business()
    provider.error = RuntimeError("upstream timeout")

    client.post("/webhook/whatsapp", json=load_fixture("whatsapp_message"))

    assert graph.bodies()[0]["text"]["body"] == settings.relay.fallback_message


def test_messenger_echo_of_page_is_ignored(client, graph, make_business, session) -> None:
    make_business()

    client.post("/webhook/messenger", json=load_fixture("messenger_message"))

    # The fixture carries one customer message plus an echo and a delivery receipt.
    replies = [body for body in graph.bodies() if "message" in body]
    assert len(replies) == 1
    assert replies[0]["recipient"] == {"id": "6543210987654321"}
    assert replies[0]["message"]["text"] == "Yes, we have it in medium!"


def test_signed_webhooks(api_app, client, graph, make_business, session, settings) -> None:
    make_business()
    signed = AppSettings(
        meta=MetaSettings(
            verify_token="verify-me",
            app_secret="app-secret",
            whatsapp_access_token="wa-token",
        ),
        openai=settings.openai,
    )
    api_app.dependency_overrides[dependencies.get_settings] = lambda: signed
    body = json.dumps(load_fixture("whatsapp_message")).encode("utf-8")

    rejected = client.post(
        "/webhook/whatsapp",
        content=body,
        headers={"content-type": "application/json", "X-Hub-Signature-256": "sha256=bad"},
    )
    assert rejected.status_code == 200
    assert rejected.json() == ACK
    assert graph.requests == []

    accepted = client.post(
        "/webhook/whatsapp",
        content=body,
        headers={
            "content-type": "application/json",
            "X-Hub-Signature-256": _sign(body, "app-secret"),
        },
    )
    assert accepted.status_code == 200
    assert len(graph.requests) == 1
