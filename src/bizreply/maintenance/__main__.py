"""Entry point: ``python -m bizreply.maintenance``."""

from __future__ import annotations

import asyncio

from bizreply.api.dependencies import (
    build_adapters,
    get_embedding_service,
    get_graph_client,
    get_session_factory,
    get_settings,
)
from bizreply.core.logging import configure_logging

from .worker import MaintenanceWorker


async def _main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    graph = get_graph_client()
    worker = MaintenanceWorker(
        settings,
        session_factory=get_session_factory(),
        embedding_service=get_embedding_service(),
        adapters=build_adapters(settings, graph),
    )
    try:
        await worker.start()
    finally:
        await graph.close()


if __name__ == "__main__":
    asyncio.run(_main())
