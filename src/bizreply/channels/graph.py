"""Thin async client for the Meta Graph API send endpoints."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from prometheus_client import Counter

from bizreply.core.config import MetaSettings
from bizreply.core.errors import DeliveryFailed

logger = logging.getLogger(__name__)

GRAPH_REQUESTS = Counter(
    "bizreply_graph_requests_total",
    "Graph API send calls by channel and result.",
    ["channel", "result"],
)


class GraphAPIClient:
    """POSTs JSON to Graph API paths and turns failures into ``DeliveryFailed``.

    One instance is shared by all channel adapters of a process; requests are
    never retried here.
    """

    def __init__(
        self,
        settings: MetaSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.graph_base_url,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def post(
        self,
        path: str,
        payload: Mapping[str, Any],
        *,
        access_token: str | None,
        channel: str,
    ) -> dict[str, Any]:
        if not access_token:
            GRAPH_REQUESTS.labels(channel, "no_token").inc()
            raise DeliveryFailed("no access token configured", channel=channel)

        try:
            response = await self._client.post(
                path,
                json=dict(payload),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            GRAPH_REQUESTS.labels(channel, "transport_error").inc()
            logger.warning(
                "graph api request failed",
                extra={"channel": channel, "path": path, "error": str(exc)},
            )
            raise DeliveryFailed(str(exc) or exc.__class__.__name__, channel=channel) from exc

        if response.is_error:
            GRAPH_REQUESTS.labels(channel, "rejected").inc()
            reason = _error_reason(response)
            logger.error(
                "graph api rejected send",
                extra={
                    "channel": channel,
                    "path": path,
                    "status": response.status_code,
                    "reason": reason,
                },
            )
            raise DeliveryFailed(reason, channel=channel, vendor_status=response.status_code)

        GRAPH_REQUESTS.labels(channel, "ok").inc()
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}


def _error_reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"
