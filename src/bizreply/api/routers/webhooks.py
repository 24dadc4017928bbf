"""Meta webhook endpoints: subscription handshake and event delivery."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Request, status
from fastapi.responses import PlainTextResponse

from bizreply.channels.security import SIGNATURE_HEADER, validate_signature, verify_subscription
from bizreply.core.domain import ChannelType
from bizreply.core.errors import SignatureMismatch

from ..dependencies import OrchestratorDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])

ACKNOWLEDGED = {"status": "received"}


@router.get("/{channel}", response_class=PlainTextResponse)
def verify_webhook(channel: ChannelType, request: Request, settings: SettingsDep) -> str:
    """Echo ``hub.challenge`` when the verify token matches."""

    challenge = verify_subscription(request.query_params, settings.meta.verify_token)
    logger.info("webhook subscription verified", extra={"channel": channel.value})
    return challenge


@router.post("/{channel}", status_code=status.HTTP_200_OK)
async def receive_webhook(
    channel: ChannelType,
    request: Request,
    background_tasks: BackgroundTasks,
    settings: SettingsDep,
    orchestrator: OrchestratorDep,
) -> dict[str, str]:
    """Acknowledge immediately; events are relayed after the response is sent.

    Meta retries any non-200 answer, so malformed, unsigned or unroutable
    bodies are acknowledged as well and simply produce no events.
    """

    raw_body = await request.body()

    if settings.meta.app_secret:
        try:
            validate_signature(
                raw_body, request.headers.get(SIGNATURE_HEADER), settings.meta.app_secret
            )
        except SignatureMismatch as exc:
            logger.warning(
                "webhook signature rejected",
                extra={"channel": channel.value, "reason": exc.message},
            )
            return ACKNOWLEDGED

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (ValueError, RecursionError):
        logger.warning(
            "webhook body is not valid JSON",
            extra={"channel": channel.value, "size": len(raw_body)},
        )
        return ACKNOWLEDGED

    background_tasks.add_task(orchestrator.handle_payload, channel, payload)
    return ACKNOWLEDGED
