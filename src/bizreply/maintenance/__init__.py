"""Scheduled maintenance jobs."""

from .worker import MaintenanceWorker

__all__ = ["MaintenanceWorker"]
