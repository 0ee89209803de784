"""
Services layer for the production billing service.

This module contains the business logic services:
- BillingStore: Thread-safe in-memory records (orders, contexts, snapshots)
- RunService: Run creation and configuration
- BillingService: Order snapshots and billing groups

Thread Model:
    Flask request threads share one BillingStore. The store serializes
    record writes; BillingService serializes finalize per billing group.
"""

from .store import BillingStore
from .run_service import RunService
from .billing_service import BillingService

__all__ = [
    "BillingStore",
    "RunService",
    "BillingService",
]
