"""Configuration loaders for the relay services.

Runtime configuration is hydrated by pydantic-settings from environment
variables, an optional ``.env`` file, or defaults. Each nested settings class
owns one infrastructure concern and its own environment prefix.
"""

from __future__ import annotations

from enum import Enum
from functools import cached_property
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


def _settings_config(prefix: str = "") -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class BaseAppSettings(BaseSettings):
    """Base settings that looks at environment variables and an optional .env file."""

    model_config = _settings_config()


class PostgresSettings(BaseAppSettings):
    """Postgres (with pgvector) connection details."""

    model_config = _settings_config("postgres_")

    url: str | None = None
    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = "bizreply"
    user: str = "bizreply"
    password: str | None = None
    sslmode: str = "prefer"

    @cached_property
    def dsn(self) -> str:
        """Return a SQLAlchemy compatible DSN, preferring an explicit URL."""

        if self.url:
            return self.url
        return (
            f"postgresql+psycopg2://{self.user}:{self.password or ''}@{self.host}:{self.port}"
            f"/{self.database}?sslmode={self.sslmode}"
        )


class OpenAISettings(BaseAppSettings):
    """Completion provider configuration."""

    model_config = _settings_config("openai_")

    api_key: str | None = None
    model: str = Field(default="gpt-4o-mini")
    embedding_model: str = Field(default="text-embedding-3-small")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, ge=1)
    timeout_seconds: float = Field(default=30.0, ge=0.1)


class EmbeddingProvider(str, Enum):
    """Backends able to produce product embeddings."""

    OPENAI = "openai"
    LOCAL = "local"


class EmbeddingSettings(BaseAppSettings):
    """Product embedding configuration."""

    model_config = _settings_config("embedding_")

    provider: EmbeddingProvider = EmbeddingProvider.OPENAI
    dimensions: int = Field(default=1536, ge=1)
    sentence_transformer_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    fallback_to_local: bool = False


class MetaSettings(BaseAppSettings):
    """Credentials and endpoints for the Meta Graph API channels."""

    model_config = _settings_config("meta_")

    verify_token: str | None = None
    app_secret: str | None = None
    graph_api_url: str = "https://graph.facebook.com"
    graph_api_version: str = "v18.0"
    whatsapp_access_token: str | None = None
    page_access_token: str | None = None
    timeout_seconds: float = Field(default=10.0, ge=0.1)

    @property
    def graph_base_url(self) -> str:
        return f"{self.graph_api_url.rstrip('/')}/{self.graph_api_version}"


class RelaySettings(BaseAppSettings):
    """Tunables of the inbound-to-reply pipeline."""

    model_config = _settings_config("relay_")

    history_limit: int = Field(default=10, ge=0)
    product_match_count: int = Field(default=5, ge=0)
    product_match_threshold: float = Field(default=0.35, ge=0.0, le=1.0)
    search_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    fallback_message: str = (
        "Thanks for reaching out! We're having trouble right now, "
        "but a team member will get back to you shortly."
    )
    handoff_message: str = (
        "Thanks for your patience! A team member is now handling your conversation."
    )
    handback_message: str = (
        "Thank you for your patience! Our AI assistant will continue helping you. "
        "Feel free to request human assistance anytime if needed."
    )
    conversation_timeout_minutes: int = Field(default=30, ge=1)
    product_sync_interval_seconds: int = Field(default=300, ge=1)
    product_sync_batch_size: int = Field(default=10, ge=1)
    product_sync_limit: int = Field(default=100, ge=1)


class CatalogSettings(BaseAppSettings):
    """External catalog import (WooCommerce REST API)."""

    model_config = _settings_config("catalog_")

    timeout_seconds: float = Field(default=20.0, ge=0.1)
    page_size: int = Field(default=100, ge=1, le=100)
    max_pages: int = Field(default=20, ge=1)


class TelemetrySettings(BaseAppSettings):
    """Shared telemetry configuration."""

    model_config = _settings_config("otel_")

    exporter_endpoint: str | None = None
    exporter_headers: str | None = None
    metrics_host: str = "0.0.0.0"
    metrics_port: int | None = None


class AppSettings(BaseAppSettings):
    """Top level settings object used by services."""

    app_version: str = "0.1.0"
    log_level: str = "INFO"

    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    meta: MetaSettings = Field(default_factory=MetaSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    @classmethod
    def load(cls, **kwargs: Any) -> AppSettings:
        """Helper factory that mirrors BaseSettings semantics."""

        return cls(**kwargs)

    def missing_required(self) -> list[str]:
        """Return the environment names of required secrets that are unset."""

        missing: list[str] = []
        if not self.meta.verify_token:
            missing.append("META_VERIFY_TOKEN")
        if not self.meta.whatsapp_access_token:
            missing.append("META_WHATSAPP_ACCESS_TOKEN")
        if not self.openai.api_key:
            missing.append("OPENAI_API_KEY")
        if not (self.postgres.url or self.postgres.password):
            missing.append("POSTGRES_URL or POSTGRES_PASSWORD")
        return missing

    def validate_required(self) -> None:
        """Raise ``ConfigurationError`` when a required secret is absent."""

        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                "missing required configuration: " + ", ".join(missing)
            )
