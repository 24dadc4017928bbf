"""Dependency wiring for the relay FastAPI application."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.engine import Engine
from sqlmodel import Session

from bizreply.businesses import BusinessService, IntegrationService
from bizreply.catalog import (
    CatalogImporter,
    EmbeddingService,
    ProductRecommender,
    ProductService,
    ProductSyncService,
    WooCommerceClient,
)
from bizreply.channels import (
    ChannelAdapter,
    GraphAPIClient,
    InstagramAdapter,
    MessengerAdapter,
    WhatsAppAdapter,
)
from bizreply.core.config import AppSettings, EmbeddingProvider
from bizreply.core.db import (
    SessionFactory,
    create_engine_from_settings,
    init_db,
    session_factory_for,
)
from bizreply.core.domain import ChannelType
from bizreply.relay import (
    ConversationStore,
    HandoffService,
    OpenAICompletionProvider,
    RelayOrchestrator,
    ReplyGenerator,
)

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> AppSettings:
    """Return cached ``AppSettings`` instance."""

    return AppSettings.load()


SettingsDep = Annotated[AppSettings, Depends(get_settings)]


@lru_cache
def get_engine() -> Engine:
    """Create (or reuse) the SQLModel engine and ensure the schema exists."""

    engine = create_engine_from_settings(get_settings())
    init_db(engine)
    return engine


def get_session_factory() -> SessionFactory:
    return session_factory_for(get_engine())


SessionFactoryDep = Annotated[SessionFactory, Depends(get_session_factory)]


def get_session(factory: SessionFactoryDep) -> Iterator[Session]:
    """Provide a SQLModel session per-request."""

    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


SessionDep = Annotated[Session, Depends(get_session)]


@lru_cache
def get_graph_client() -> GraphAPIClient:
    """Return the process-wide Graph API client."""

    return GraphAPIClient(get_settings().meta)


def build_adapters(
    settings: AppSettings, graph: GraphAPIClient
) -> dict[ChannelType, ChannelAdapter]:
    return {
        ChannelType.WHATSAPP: WhatsAppAdapter(
            graph, default_access_token=settings.meta.whatsapp_access_token
        ),
        ChannelType.MESSENGER: MessengerAdapter(
            graph, default_access_token=settings.meta.page_access_token
        ),
        ChannelType.INSTAGRAM: InstagramAdapter(
            graph, default_access_token=settings.meta.page_access_token
        ),
    }


def get_adapters(settings: SettingsDep) -> dict[ChannelType, ChannelAdapter]:
    return build_adapters(settings, get_graph_client())


AdaptersDep = Annotated[dict[ChannelType, ChannelAdapter], Depends(get_adapters)]


@lru_cache
def get_completion_provider() -> OpenAICompletionProvider | None:
    """Instantiate the OpenAI completion provider when an api key is configured."""

    settings = get_settings()
    if not settings.openai.api_key:
        logger.warning("openai api key missing; every reply will use the fallback message")
        return None
    return OpenAICompletionProvider(settings.openai)


def get_reply_generator(settings: SettingsDep) -> ReplyGenerator:
    return ReplyGenerator(
        get_completion_provider(),
        settings.openai,
        fallback_message=settings.relay.fallback_message,
    )


@lru_cache
def get_embedding_service() -> EmbeddingService | None:
    """Instantiate the embedding service when a backend is usable."""

    settings = get_settings()
    if (
        settings.embedding.provider is EmbeddingProvider.OPENAI
        and not settings.openai.api_key
        and not settings.embedding.fallback_to_local
    ):
        logger.info("skipping embedding service initialisation; openai api key missing")
        return None
    return EmbeddingService(settings.embedding, settings.openai)


EmbeddingServiceDep = Annotated[EmbeddingService | None, Depends(get_embedding_service)]


def get_recommender(
    settings: SettingsDep, embeddings: EmbeddingServiceDep
) -> ProductRecommender:
    return ProductRecommender(
        embeddings,
        limit=settings.relay.product_match_count,
        threshold=settings.relay.product_match_threshold,
    )


RecommenderDep = Annotated[ProductRecommender, Depends(get_recommender)]


def get_orchestrator(
    settings: SettingsDep,
    factory: SessionFactoryDep,
    adapters: AdaptersDep,
    generator: Annotated[ReplyGenerator, Depends(get_reply_generator)],
    recommender: RecommenderDep,
) -> RelayOrchestrator:
    return RelayOrchestrator(
        session_factory=factory,
        adapters=adapters,
        generator=generator,
        settings=settings.relay,
        recommender=recommender,
    )


OrchestratorDep = Annotated[RelayOrchestrator, Depends(get_orchestrator)]


def get_store(session: SessionDep) -> ConversationStore:
    return ConversationStore(session)


StoreDep = Annotated[ConversationStore, Depends(get_store)]


def get_handoff_service(
    settings: SettingsDep, store: StoreDep, adapters: AdaptersDep
) -> HandoffService:
    return HandoffService(store, adapters, handoff_message=settings.relay.handoff_message)


HandoffServiceDep = Annotated[HandoffService, Depends(get_handoff_service)]


def get_business_service(session: SessionDep) -> BusinessService:
    return BusinessService(session)


BusinessServiceDep = Annotated[BusinessService, Depends(get_business_service)]


def get_integration_service(session: SessionDep) -> IntegrationService:
    return IntegrationService(session)


IntegrationServiceDep = Annotated[IntegrationService, Depends(get_integration_service)]


def get_product_service(session: SessionDep) -> ProductService:
    return ProductService(session)


ProductServiceDep = Annotated[ProductService, Depends(get_product_service)]


def get_product_sync_service(
    settings: SettingsDep, factory: SessionFactoryDep, embeddings: EmbeddingServiceDep
) -> ProductSyncService | None:
    if embeddings is None:
        return None
    return ProductSyncService(
        factory,
        embeddings,
        batch_size=settings.relay.product_sync_batch_size,
        limit=settings.relay.product_sync_limit,
    )


ProductSyncServiceDep = Annotated[ProductSyncService | None, Depends(get_product_sync_service)]


@lru_cache
def get_catalog_client() -> WooCommerceClient:
    """Return the process-wide store platform client."""

    return WooCommerceClient(get_settings().catalog)


def get_catalog_importer(
    session: SessionDep,
    client: Annotated[WooCommerceClient, Depends(get_catalog_client)],
) -> CatalogImporter:
    return CatalogImporter(session, client)


CatalogImporterDep = Annotated[CatalogImporter, Depends(get_catalog_importer)]
