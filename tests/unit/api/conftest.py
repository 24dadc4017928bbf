from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from bizreply.api import dependencies
from bizreply.api.app import create_app
from bizreply.catalog import WooCommerceClient
from bizreply.channels import GraphAPIClient
from bizreply.core.config import AppSettings, CatalogSettings, MetaSettings, OpenAISettings
from bizreply.relay import ReplyGenerator


class GraphRecorder:
    """MockTransport handler recording Graph API sends."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(
                self.status_code, json={"error": {"message": "recipient unavailable"}}
            )
        count = len(self.requests)
        return httpx.Response(
            200,
            json={"messages": [{"id": f"wamid.out-{count}"}], "message_id": f"m_out-{count}"},
        )

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


class StoreRecorder:
    """MockTransport handler serving WooCommerce product pages."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.pages: list[list[dict[str, Any]]] = [[]]
        self.status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"code": "woocommerce_rest_cannot_view"})
        page = int(request.url.params.get("page", "1"))
        items = self.pages[page - 1] if page <= len(self.pages) else []
        return httpx.Response(
            200, json=items, headers={"X-WP-TotalPages": str(len(self.pages))}
        )


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        meta=MetaSettings(
            verify_token="verify-me",
            app_secret=None,
            whatsapp_access_token="wa-token",
            page_access_token=None,
        ),
        openai=OpenAISettings(api_key="sk-test"),
    )


@pytest.fixture
def graph() -> GraphRecorder:
    return GraphRecorder()


@pytest.fixture
def store() -> StoreRecorder:
    return StoreRecorder()


@pytest.fixture
def api_app(settings, session_factory, graph, provider, embeddings, store) -> Iterator[FastAPI]:
    graph_client = GraphAPIClient(settings.meta, transport=httpx.MockTransport(graph))
    catalog_client = WooCommerceClient(
        CatalogSettings(page_size=2), transport=httpx.MockTransport(store)
    )
    generator = ReplyGenerator(
        provider, settings.openai, fallback_message=settings.relay.fallback_message
    )

    app = create_app(settings, validate=False)
    app.dependency_overrides[dependencies.get_session_factory] = lambda: session_factory
    app.dependency_overrides[dependencies.get_adapters] = lambda: dependencies.build_adapters(
        settings, graph_client
    )
    app.dependency_overrides[dependencies.get_reply_generator] = lambda: generator
    app.dependency_overrides[dependencies.get_embedding_service] = lambda: embeddings
    app.dependency_overrides[dependencies.get_catalog_client] = lambda: catalog_client

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(api_app: FastAPI) -> TestClient:
    return TestClient(api_app)
