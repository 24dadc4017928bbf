"""Business profile, policy and integration management."""

from .service import BusinessService, IntegrationService

__all__ = ["BusinessService", "IntegrationService"]
