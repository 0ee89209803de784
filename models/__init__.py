"""
Data models for the production billing service.

This module contains dataclasses for:
- Order / Process / ProcessRun: the production hierarchy and run values bag
- Layout items, drafts and totals per process kind
- BillingSnapshot / BillingContext / BillingDraft: billing state

Drafts, items, totals and snapshots are frozen so they can be handed to
calculators and across threads without copying.
"""

from .run import Order, Process, ProcessRun, ProcessKind, ConfigStatus
from .layouts import (
    AlloverSublimationItem,
    AlloverSublimationDraft,
    AlloverSublimationTotals,
    DTFItem,
    DTFRow,
    DTFDraft,
    DTFTotals,
    SublimationItem,
    SublimationRow,
    SublimationDraft,
    SublimationTotals,
)
from .billing import (
    BillingContext,
    BillingDraft,
    BillingSnapshot,
    CalculationType,
    ContextType,
    RunBillingInput,
    SnapshotIntent,
)

__all__ = [
    # Production models
    "Order",
    "Process",
    "ProcessRun",
    "ProcessKind",
    "ConfigStatus",
    # Layout models
    "AlloverSublimationItem",
    "AlloverSublimationDraft",
    "AlloverSublimationTotals",
    "DTFItem",
    "DTFRow",
    "DTFDraft",
    "DTFTotals",
    "SublimationItem",
    "SublimationRow",
    "SublimationDraft",
    "SublimationTotals",
    # Billing models
    "BillingContext",
    "BillingDraft",
    "BillingSnapshot",
    "CalculationType",
    "ContextType",
    "RunBillingInput",
    "SnapshotIntent",
]
