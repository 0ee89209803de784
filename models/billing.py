"""
Billing data models.

A BillingContext groups the orders billed together. Each context owns a
series of versioned BillingSnapshots; exactly one snapshot per context is
flagged ``is_latest``. Order-level contexts (type ORDER) hold one order's
per-run rate inputs; group contexts (type GROUP) hold the aggregate.

Lifecycle of a snapshot intent:
    DRAFT -> FINAL  (one-way; re-finalizing writes a new FINAL version)

BillingDraft is the operator's unsaved rate edits. It is replaced wholesale
on every edit and discarded only after a finalize succeeds, so a failed
finalize leaves the typed overrides intact for a retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Mapping, Optional


class SnapshotIntent(Enum):
    """Whether a snapshot is still editable."""

    DRAFT = "DRAFT"
    FINAL = "FINAL"


class ContextType(Enum):
    ORDER = "ORDER"
    """Per-order context, created on first billing computation."""

    GROUP = "GROUP"
    """Operator-created group of completed orders."""


class CalculationType(Enum):
    INITIAL = "INITIAL"
    """Baseline computed from run totals."""

    RECALCULATED = "RECALCULATED"
    """Recomputed after operator rate overrides."""


@dataclass(frozen=True)
class RunBillingInput:
    """Billed rate and quantity for one run."""

    new_rate: float = 0.0
    quantity: float = 0.0

    @property
    def amount(self) -> float:
        return self.new_rate * self.quantity

    def to_dict(self) -> Dict[str, float]:
        return {"new_rate": self.new_rate, "quantity": self.quantity}


@dataclass(frozen=True)
class BillingSnapshot:
    """
    Persisted, authoritative billed amount for one context at one version.

    For ORDER contexts ``inputs`` maps runId -> RunBillingInput.
    For GROUP contexts ``order_inputs`` maps orderId -> runId -> RunBillingInput
    and ``order_results`` carries each order's billed amount.
    """

    id: str
    billing_context_id: str
    version: int
    intent: SnapshotIntent
    result: float
    currency: str = "INR"
    inputs: Dict[str, RunBillingInput] = field(default_factory=dict)
    order_inputs: Dict[str, Dict[str, RunBillingInput]] = field(default_factory=dict)
    order_results: Dict[str, float] = field(default_factory=dict)
    is_latest: bool = True
    calculation_type: CalculationType = CalculationType.INITIAL
    reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_draft(self) -> bool:
        return self.intent == SnapshotIntent.DRAFT

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "billingContextId": self.billing_context_id,
            "version": self.version,
            "intent": self.intent.value,
            "isDraft": self.is_draft,
            "isLatest": self.is_latest,
            "result": self.result,
            "currency": self.currency,
            "calculationType": self.calculation_type.value,
            "reason": self.reason,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
        }
        if self.order_inputs:
            data["inputs"] = {
                order_id: {run_id: i.to_dict() for run_id, i in runs.items()}
                for order_id, runs in self.order_inputs.items()
            }
            data["orderResults"] = dict(self.order_results)
        else:
            data["inputs"] = {run_id: i.to_dict() for run_id, i in self.inputs.items()}
        return data


@dataclass
class BillingContext:
    """A named set of orders billed together."""

    id: str
    type: ContextType
    name: str
    order_ids: List[str] = field(default_factory=list)
    description: str = ""
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "orderIds": list(self.order_ids),
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class BillingDraft:
    """
    Unsaved rate overrides typed by an operator: orderId -> runId -> new_rate.

    Immutable: ``with_rate`` returns a new draft.
    """

    overrides: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def with_rate(self, order_id: str, run_id: str, new_rate: float) -> "BillingDraft":
        updated = {o: dict(runs) for o, runs in self.overrides.items()}
        updated.setdefault(order_id, {})[run_id] = new_rate
        return BillingDraft(updated)

    def to_request(self) -> Dict[str, Dict[str, Dict[str, float]]]:
        """Finalize request body: orderId -> runId -> {new_rate}."""
        return {
            order_id: {run_id: {"new_rate": rate} for run_id, rate in runs.items()}
            for order_id, runs in self.overrides.items()
        }
