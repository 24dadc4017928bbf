"""Shared exception hierarchy for the relay services.

``CoreError`` subclasses render as problem-details JSON at the HTTP boundary.
The relay-specific errors form the taxonomy the orchestrator reacts to: each
one maps to a single, documented outcome instead of a generic failure.
"""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus
from typing import Any


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing."""


class CoreError(Exception):
    """Base exception capturing rich problem details."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        code: str = "core_error",
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """FastAPI/JSON-serializable representation of the error."""

        payload: dict[str, Any] = {
            "type": f"https://docs.bizreply.dev/errors/{self.code}",
            "title": self.message,
            "status": self.status_code,
            "code": self.code,
        }
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class NotFoundError(CoreError):
    """Raised when a resource cannot be located."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.NOT_FOUND,
            code="not_found",
            details=details,
        )


class ValidationError(CoreError):
    """Raised when a request fails validation."""

    def __init__(
        self,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            code="validation_error",
            details=details,
        )


class ConflictError(CoreError):
    """Raised when a request conflicts with existing state."""

    def __init__(
        self,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.CONFLICT,
            code="conflict",
            details=details,
        )


class VerificationFailed(CoreError):
    """Webhook handshake token did not match the configured secret."""

    def __init__(self, message: str = "verification token mismatch") -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.FORBIDDEN,
            code="verification_failed",
        )


class VerificationParametersMissing(CoreError):
    """Webhook handshake request lacked ``hub.mode`` or ``hub.verify_token``."""

    def __init__(self, message: str = "missing verification parameters") -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.BAD_REQUEST,
            code="verification_parameters_missing",
        )


class RoutingNotFound(NotFoundError):
    """No business owns the routing key of an inbound event."""

    def __init__(self, channel: str, routing_key: str) -> None:
        super().__init__(
            f"no business configured for {channel} routing key {routing_key}",
            details={"channel": channel, "routing_key": routing_key},
        )
        self.code = "routing_not_found"
        self.channel = channel
        self.routing_key = routing_key


class ReplyGenerationFailed(CoreError):
    """The completion provider failed or returned an unusable answer."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.BAD_GATEWAY,
            code="reply_generation_failed",
            details=details,
        )


class DeliveryFailed(CoreError):
    """A vendor send API call did not succeed.

    ``vendor_status`` is the HTTP status returned by the vendor, or ``None``
    when the request never produced a response (timeouts, connection errors).
    """

    def __init__(
        self,
        reason: str,
        *,
        channel: str,
        vendor_status: int | None = None,
    ) -> None:
        super().__init__(
            message=reason,
            status_code=HTTPStatus.BAD_GATEWAY,
            code="delivery_failed",
            details={"channel": channel, "vendor_status": vendor_status},
        )
        self.reason = reason
        self.channel = channel
        self.vendor_status = vendor_status


class StoreWriteFailed(CoreError):
    """Persisting a conversation record failed."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="store_write_failed",
            details=details,
        )


class SignatureMismatch(CoreError):
    """Webhook body did not carry a valid ``X-Hub-Signature-256``."""

    def __init__(self, message: str = "signature mismatch") -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.UNAUTHORIZED,
            code="signature_mismatch",
        )


class ServiceUnavailable(CoreError):
    """A backing service the request depends on is not configured or reachable."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            code="service_unavailable",
            details=details,
        )


class CatalogImportFailed(CoreError):
    """Pulling products from an external catalog platform failed."""

    def __init__(
        self,
        reason: str,
        *,
        platform: str,
        vendor_status: int | None = None,
    ) -> None:
        super().__init__(
            message=reason,
            status_code=HTTPStatus.BAD_GATEWAY,
            code="catalog_import_failed",
            details={"platform": platform, "vendor_status": vendor_status},
        )
        self.platform = platform
        self.vendor_status = vendor_status
