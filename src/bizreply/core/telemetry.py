"""OpenTelemetry wiring for the API app and outbound vendor calls."""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .config import TelemetrySettings

logger = logging.getLogger(__name__)

_TRACING_INITIALISED = False


def parse_exporter_headers(header_value: str | None) -> dict[str, str] | None:
    """Parse ``key=value,key2=value2`` into a header dict, skipping bad segments."""

    if not header_value:
        return None

    headers: dict[str, str] = {}
    for segment in (part.strip() for part in header_value.split(",")):
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep:
            logger.warning("ignoring malformed OTLP header segment", extra={"segment": segment})
            continue
        headers[key.strip()] = value.strip()
    return headers or None


def init_tracing(service_name: str, settings: TelemetrySettings) -> bool:
    """Install an OTLP tracer provider; returns whether tracing is active."""

    global _TRACING_INITIALISED
    if _TRACING_INITIALISED:
        return True

    endpoint = (
        settings.exporter_endpoint
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
    )
    if not endpoint:
        logger.warning(
            "distributed tracing disabled; no OTLP endpoint configured",
            extra={"service_name": service_name},
        )
        return False

    try:
        exporter = OTLPSpanExporter(
            endpoint=endpoint,
            headers=parse_exporter_headers(settings.exporter_headers),
        )
    except Exception:  # pragma: no cover - exporter misconfiguration
        logger.exception("failed to initialise OTLP span exporter; tracing disabled")
        return False

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    HTTPXClientInstrumentor().instrument()
    _TRACING_INITIALISED = True
    logger.info(
        "tracing initialised",
        extra={"service_name": service_name, "endpoint": endpoint},
    )
    return True


def is_tracing_enabled() -> bool:
    return _TRACING_INITIALISED


def instrument_fastapi_app(app: FastAPI) -> None:
    """Attach FastAPI instrumentation when a real tracer provider is installed."""

    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
