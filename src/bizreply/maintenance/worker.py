"""Background maintenance: product embedding sync and idle handoff release."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from prometheus_client import Counter, Histogram, start_http_server

from bizreply.catalog import EmbeddingService, ProductSyncService, SyncReport
from bizreply.channels.base import ChannelAdapter
from bizreply.core.config import AppSettings
from bizreply.core.db import SessionFactory, session_scope
from bizreply.core.domain import ChannelType
from bizreply.relay import ConversationStore, HandoffService

logger = logging.getLogger(__name__)

MAINTENANCE_LATENCY = Histogram(
    "bizreply_maintenance_latency_seconds",
    "Execution latency of maintenance jobs.",
    ["job"],
)

CONVERSATIONS_RELEASED = Counter(
    "bizreply_conversations_auto_released_total",
    "Human-mode conversations handed back to the AI after going idle.",
)


class MaintenanceWorker:
    """Runs periodic jobs on an APScheduler loop until stopped."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        session_factory: SessionFactory,
        embedding_service: EmbeddingService | None = None,
        adapters: Mapping[ChannelType, ChannelAdapter] | None = None,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._adapters = dict(adapters or {})
        self._sync_service = (
            ProductSyncService(
                session_factory,
                embedding_service,
                batch_size=settings.relay.product_sync_batch_size,
                limit=settings.relay.product_sync_limit,
            )
            if embedding_service is not None
            else None
        )
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._shutdown = asyncio.Event()

    async def start(self) -> None:
        logger.info("maintenance worker starting")
        interval = self._settings.relay.product_sync_interval_seconds
        if self._sync_service is not None:
            self._scheduler.add_job(
                self.sync_embeddings, "interval", seconds=interval, max_instances=1
            )
        else:
            logger.warning("product embedding sync disabled; no embedding backend configured")
        self._scheduler.add_job(
            self.release_idle_conversations, "interval", seconds=60, max_instances=1
        )
        self._scheduler.start()
        if self._settings.telemetry.metrics_port:
            start_http_server(
                self._settings.telemetry.metrics_port,
                addr=self._settings.telemetry.metrics_host,
            )
        try:
            await self._shutdown.wait()
        finally:
            self._scheduler.shutdown(wait=False)
            logger.info("maintenance worker stopped")

    async def stop(self) -> None:
        self._shutdown.set()

    async def sync_embeddings(self) -> SyncReport:
        if self._sync_service is None:
            return SyncReport()
        with MAINTENANCE_LATENCY.labels("sync_embeddings").time():
            self._sync_service.invalidate_stale()
            return await self._sync_service.sync_pending()

    async def release_idle_conversations(self) -> int:
        """Return conversations nobody answered within the timeout to AI mode.

        Each customer is told the assistant is back; a failed notice does not
        undo the release.
        """

        relay = self._settings.relay
        idle_since = datetime.now(tz=UTC) - timedelta(minutes=relay.conversation_timeout_minutes)
        with MAINTENANCE_LATENCY.labels("release_idle").time():
            with session_scope(self._session_factory) as session:
                handoff = HandoffService(
                    ConversationStore(session),
                    self._adapters,
                    handoff_message=relay.handoff_message,
                    handback_message=relay.handback_message,
                )
                results = await handoff.release_idle(idle_since)
        released = len(results)
        if released:
            CONVERSATIONS_RELEASED.inc(released)
            logger.info(
                "idle conversations released to ai",
                extra={
                    "count": released,
                    "notified": sum(1 for result in results if result.notice_sent),
                },
            )
        return released
