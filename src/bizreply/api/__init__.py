"""HTTP surface of the relay: webhooks and admin endpoints."""

from .app import create_app

__all__ = ["create_app"]
