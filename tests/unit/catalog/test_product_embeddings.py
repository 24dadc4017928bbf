from __future__ import annotations

from types import SimpleNamespace

import pytest

from bizreply.catalog import EmbeddingService, EmbeddingUnavailable
from bizreply.core.config import EmbeddingProvider, EmbeddingSettings, OpenAISettings

pytestmark = pytest.mark.unit


class _StubModel:
    def encode(self, texts, convert_to_numpy=False, normalize_embeddings=True):  # noqa: ANN001, ANN202
        return [[float(len(text))] for text in texts]


class _FakeEmbeddings:
    def __init__(self, size: int) -> None:
        self.size = size
        self.requests: list[dict] = []

    async def create(self, **kwargs):  # noqa: ANN003, ANN201
        self.requests.append(kwargs)
        return SimpleNamespace(
            data=[SimpleNamespace(embedding=[0.5] * self.size) for _ in kwargs["input"]]
        )


def _settings(**overrides) -> EmbeddingSettings:
    values = {"provider": EmbeddingProvider.OPENAI, "dimensions": 8, "fallback_to_local": False}
    values.update(overrides)
    return EmbeddingSettings(**values)


@pytest.mark.asyncio
async def test_openai_embeddings_request_column_dimensions() -> None:
    fake = _FakeEmbeddings(size=8)
    service = EmbeddingService(
        _settings(),
        OpenAISettings(api_key="sk-test", embedding_model="text-embedding-3-small"),
        client=SimpleNamespace(embeddings=fake),
    )

    vectors = await service.embed(["linen shirt", "mug"])

    assert vectors == [[0.5] * 8, [0.5] * 8]
    assert fake.requests == [
        {"input": ["linen shirt", "mug"], "model": "text-embedding-3-small", "dimensions": 8}
    ]
    assert service.model_name == "text-embedding-3-small"


@pytest.mark.asyncio
async def test_legacy_model_vectors_are_padded_without_dimensions_option() -> None:
    fake = _FakeEmbeddings(size=4)
    service = EmbeddingService(
        _settings(),
        OpenAISettings(api_key="sk-test", embedding_model="text-embedding-ada-002"),
        client=SimpleNamespace(embeddings=fake),
    )

    vector = await service.embed_one("scarf")

    assert vector == [0.5] * 4 + [0.0] * 4
    assert "dimensions" not in fake.requests[0]


@pytest.mark.asyncio
async def test_oversized_vectors_are_rejected() -> None:
    service = EmbeddingService(
        _settings(),
        OpenAISettings(api_key="sk-test"),
        client=SimpleNamespace(embeddings=_FakeEmbeddings(size=16)),
    )

    with pytest.raises(EmbeddingUnavailable, match="16 dimensions"):
        await service.embed(["scarf"])


@pytest.mark.asyncio
async def test_missing_api_key_without_fallback_raises() -> None:
    service = EmbeddingService(_settings(), OpenAISettings(api_key=None))

    with pytest.raises(EmbeddingUnavailable, match="OPENAI_API_KEY"):
        await service.embed(["scarf"])


@pytest.mark.asyncio
async def test_openai_failure_falls_back_to_sentence_transformer(monkeypatch) -> None:
    monkeypatch.setattr(
        EmbeddingService, "_load_sentence_transformer", lambda self: _StubModel()
    )
    service = EmbeddingService(_settings(fallback_to_local=True), OpenAISettings(api_key=None))

    vectors = await service.embed(["wool"])

    assert vectors == [[4.0] + [0.0] * 7]


@pytest.mark.asyncio
async def test_local_provider_reports_its_model(monkeypatch) -> None:
    monkeypatch.setattr(
        EmbeddingService, "_load_sentence_transformer", lambda self: _StubModel()
    )
    service = EmbeddingService(
        _settings(provider=EmbeddingProvider.LOCAL), OpenAISettings(api_key=None)
    )

    assert await service.embed([]) == []
    assert await service.embed_one("mug") == [3.0] + [0.0] * 7
    assert service.model_name == "sentence-transformers/all-MiniLM-L6-v2"
