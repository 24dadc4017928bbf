"""Webhook subscription handshake and payload signature checks."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

from bizreply.core.errors import (
    SignatureMismatch,
    VerificationFailed,
    VerificationParametersMissing,
)

SIGNATURE_HEADER = "X-Hub-Signature-256"


def verify_subscription(params: Mapping[str, str], expected_token: str | None) -> str:
    """Return ``hub.challenge`` when the handshake matches the configured token.

    Raises ``VerificationParametersMissing`` when ``hub.mode`` or
    ``hub.verify_token`` is absent and ``VerificationFailed`` on any mismatch.
    """

    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    if not mode or not token:
        raise VerificationParametersMissing()
    if mode != "subscribe" or not expected_token:
        raise VerificationFailed()
    if not hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        raise VerificationFailed()
    return params.get("hub.challenge", "")


def validate_signature(payload: bytes, header_value: str | None, app_secret: str) -> None:
    """Validate a ``sha256=<hexdigest>`` HMAC of the raw request body."""

    if not header_value:
        raise SignatureMismatch("missing signature header")

    algorithm, _, signature = header_value.partition("=")
    if algorithm != "sha256" or not signature:
        raise SignatureMismatch("unsupported signature format")

    computed = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(computed, signature):
        raise SignatureMismatch()
