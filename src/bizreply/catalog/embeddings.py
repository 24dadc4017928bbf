"""Embedding service with OpenAI and sentence-transformers backends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from openai import AsyncOpenAI

from bizreply.core.config import EmbeddingProvider, EmbeddingSettings, OpenAISettings

logger = logging.getLogger(__name__)


class EmbeddingUnavailable(RuntimeError):
    """Raised when no embedding backend can serve a request."""


class EmbeddingService:
    """Async embedding interface producing vectors sized for the product column.

    Local sentence-transformer vectors are shorter than the column; they are
    zero-padded, which leaves cosine similarity between them unchanged.
    """

    def __init__(
        self,
        settings: EmbeddingSettings,
        openai: OpenAISettings,
        *,
        client: Any | None = None,
    ) -> None:
        self._settings = settings
        self._openai = openai
        self._openai_client = client
        self._st_model: Any | None = None

    @property
    def model_name(self) -> str:
        if self._settings.provider is EmbeddingProvider.OPENAI:
            return self._openai.embedding_model
        return self._settings.sentence_transformer_model

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []

        if self._settings.provider is EmbeddingProvider.OPENAI:
            try:
                return await self._embed_with_openai(texts)
            except Exception as exc:
                if not self._settings.fallback_to_local:
                    raise EmbeddingUnavailable(str(exc) or exc.__class__.__name__) from exc
                logger.warning(
                    "openai embeddings unavailable; using sentence-transformer fallback",
                    extra={"error": str(exc)},
                )

        return await self._embed_with_sentence_transformer(texts)

    async def embed_one(self, text: str) -> list[float]:
        vectors = await self.embed([text])
        if not vectors:
            raise EmbeddingUnavailable("embedding backend returned no vector")
        return vectors[0]

    async def _embed_with_openai(self, texts: Sequence[str]) -> list[list[float]]:
        client = self._load_openai_client()
        options: dict[str, Any] = {}
        if self._openai.embedding_model.startswith("text-embedding-3"):
            options["dimensions"] = self._settings.dimensions
        response = await client.embeddings.create(
            input=list(texts),
            model=self._openai.embedding_model,
            **options,
        )
        return [self._fit(item.embedding) for item in response.data]

    async def _embed_with_sentence_transformer(self, texts: Sequence[str]) -> list[list[float]]:
        loop = asyncio.get_running_loop()
        model = self._load_sentence_transformer()
        vectors = await loop.run_in_executor(
            None,
            lambda: model.encode(list(texts), convert_to_numpy=False, normalize_embeddings=True),
        )
        return [self._fit(vector) for vector in vectors]

    def _fit(self, vector: Sequence[float]) -> list[float]:
        values = [float(value) for value in vector]
        size = self._settings.dimensions
        if len(values) > size:
            raise EmbeddingUnavailable(
                f"embedding has {len(values)} dimensions; column holds {size}"
            )
        return values + [0.0] * (size - len(values))

    def _load_openai_client(self) -> Any:
        if self._openai_client is None:
            if not self._openai.api_key:
                raise EmbeddingUnavailable("OPENAI_API_KEY must be set for OpenAI embeddings")
            self._openai_client = AsyncOpenAI(
                api_key=self._openai.api_key, timeout=self._openai.timeout_seconds
            )
        return self._openai_client

    def _load_sentence_transformer(self) -> Any:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise EmbeddingUnavailable(
                "install the 'local' extra (sentence-transformers) for offline embeddings"
            ) from exc

        if self._st_model is None:
            logger.info(
                "loading sentence-transformer model",
                extra={"model": self._settings.sentence_transformer_model},
            )
            self._st_model = SentenceTransformer(self._settings.sentence_transformer_model)
        return self._st_model
