"""
Billing snapshot and billing group service.

Every billed figure lives in a versioned BillingSnapshot. Each order gets
its own ORDER context holding per-run ``{new_rate, quantity}`` inputs. A
GROUP context collects completed orders and holds their aggregate.

Lifecycle of a group:

    create_group_context  -> group snapshot v1 (DRAFT)
    add_orders / remove_order  (DRAFT only) -> new DRAFT version
    finalize_group        -> order snapshots + group snapshot (FINAL)
    finalize_group again  -> new FINAL version (if re-finalize is allowed)

The persisted snapshot ``result`` is the billed amount of record.
``preview_context_total`` recomputes a total from unsaved overrides for
display only and never writes.

Concurrency:
    - BillingStore serializes individual record writes
    - A per-context lock serializes finalize and membership changes for one
      group, and manual saves for one order, inside this process
    - ``expected_version`` (finalize_group, save_order_billing) lets a caller
      detect that someone else wrote a newer version since it last read the
      context (StaleSnapshotError)
"""

from __future__ import annotations

import math
import threading
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from core.exceptions import (
    BillingInputError,
    ContextFinalizedError,
    OrderNotFoundError,
    StaleSnapshotError,
)
from core.numbers import round_half_up
from models.billing import (
    BillingContext,
    BillingDraft,
    BillingSnapshot,
    CalculationType,
    ContextType,
    RunBillingInput,
    SnapshotIntent,
)
from models.run import Order
from modules.run_metrics import run_billing_metrics
from services.store import BillingStore
from logging_config import get_logger, get_context_logger


logger = get_logger(__name__)

GROUP_CODE_PREFIX = "R"

# orderId -> runId -> {"new_rate": ...}
OverrideRequest = Mapping[str, Mapping[str, Mapping[str, Any]]]


# =============================================================================
# Pure billing arithmetic
# =============================================================================

def baseline_inputs(order: Order) -> Dict[str, RunBillingInput]:
    """
    Initial per-run billing inputs derived from each run's saved totals.

    The rate is the run's amount per billable unit, rounded to 4 places.
    """
    inputs = {}
    for _, run in order.iter_runs():
        metrics = run_billing_metrics(run.values, run.process_kind, order.quantity)
        inputs[run.id] = RunBillingInput(
            new_rate=round_half_up(metrics.rate_per_pc, 4),
            quantity=metrics.quantity,
        )
    return inputs


def effective_run_input(
    run_id: str,
    stored_inputs: Optional[Mapping[str, RunBillingInput]],
    draft_overrides: Optional[Mapping[str, float]] = None,
) -> RunBillingInput:
    """
    Rate and quantity used to bill one run.

    rate: the operator's unsaved override, else the stored rate, else 0
    quantity: the stored quantity, else 0
    """
    stored = (stored_inputs or {}).get(run_id)
    override = (draft_overrides or {}).get(run_id)

    if override is not None:
        rate = float(override)
    elif stored is not None:
        rate = stored.new_rate
    else:
        rate = 0.0

    quantity = stored.quantity if stored is not None else 0.0
    return RunBillingInput(new_rate=rate, quantity=quantity)


def order_amount(
    order: Order,
    stored_inputs: Optional[Mapping[str, RunBillingInput]],
    draft_overrides: Optional[Mapping[str, float]] = None,
) -> float:
    """Sum of rate x quantity over the order's runs, rounded to 2 places."""
    total = sum(
        effective_run_input(run_id, stored_inputs, draft_overrides).amount
        for run_id in order.run_ids()
    )
    return round_half_up(total, 2)


def _parse_amount(value: Any) -> Optional[float]:
    """Finite, non-negative number or None."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


class BillingService:
    """
    Builds order snapshots and manages billing groups.

    Args:
        store: Shared BillingStore
        currency: Currency stamped on every snapshot
        allow_refinalize: Whether a FINAL group may be finalized again
    """

    def __init__(
        self,
        store: BillingStore,
        currency: str = "INR",
        allow_refinalize: bool = True,
    ):
        self._store = store
        self._currency = currency
        self._allow_refinalize = allow_refinalize

        self._context_locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()
        self._order_context_lock = threading.Lock()

        logger.info(
            f"BillingService initialized (currency={currency}, "
            f"allow_refinalize={allow_refinalize})"
        )

    def _lock_for(self, context_id: str) -> threading.Lock:
        with self._locks_lock:
            return self._context_locks.setdefault(context_id, threading.Lock())

    def _check_version(
        self,
        context_id: str,
        expected_version: Optional[int],
        latest: Optional[BillingSnapshot],
    ) -> None:
        """Raise StaleSnapshotError when the caller read an older version."""
        actual_version = latest.version if latest else 0
        if expected_version is not None and int(expected_version) != actual_version:
            get_context_logger(context_id).warning(
                f"Stale write: expected v{expected_version}, latest v{actual_version}"
            )
            raise StaleSnapshotError(context_id, int(expected_version), actual_version)

    # =========================================================================
    # Order snapshots
    # =========================================================================

    def _order_context_id(self, order: Order) -> str:
        """Resolve the order's ORDER context, creating it on first use."""
        with self._order_context_lock:
            context_id = self._store.order_context_id(order.id)
            if context_id is None:
                context = self._store.add_context(
                    ContextType.ORDER,
                    name=order.code or order.id,
                    order_ids=[order.id],
                )
                context_id = context.id
                logger.debug(f"Created ORDER context {context_id[:8]} for order {order.id[:8]}")
            return context_id

    def _latest_order_snapshot(self, order_id: str) -> Optional[BillingSnapshot]:
        context_id = self._store.order_context_id(order_id)
        return self._store.latest_snapshot(context_id) if context_id else None

    def _write_order_snapshot(
        self,
        order: Order,
        inputs: Dict[str, RunBillingInput],
        intent: SnapshotIntent,
        calculation_type: CalculationType,
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> BillingSnapshot:
        context_id = self._order_context_id(order)
        result = order_amount(order, inputs)

        snapshot = self._store.append_snapshot(
            context_id,
            lambda version: BillingSnapshot(
                id=str(uuid.uuid4()),
                billing_context_id=context_id,
                version=version,
                intent=intent,
                result=result,
                currency=self._currency,
                inputs=dict(inputs),
                calculation_type=calculation_type,
                reason=reason,
                created_by=created_by,
            ),
        )
        get_context_logger(context_id).info(
            f"Order {order.id[:8]} snapshot v{snapshot.version} "
            f"{intent.value} result={result}"
        )
        return snapshot

    def build_order_snapshot(
        self,
        order_id: str,
        created_by: Optional[str] = None,
    ) -> BillingSnapshot:
        """
        Write a DRAFT order snapshot from the runs' current totals.

        Creates the ORDER context the first time; later calls write a new
        version and clear the previous ``is_latest``.
        """
        order = self._store.get_order(order_id)
        return self._write_order_snapshot(
            order,
            baseline_inputs(order),
            SnapshotIntent.DRAFT,
            CalculationType.INITIAL,
            reason="BASELINE",
            created_by=created_by,
        )

    def _order_inputs_or_baseline(self, order: Order) -> Dict[str, RunBillingInput]:
        latest = self._latest_order_snapshot(order.id)
        if latest is not None:
            return dict(latest.inputs)
        return baseline_inputs(order)

    def save_order_billing(
        self,
        order_id: str,
        inputs: Mapping[str, Mapping[str, Any]],
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> BillingSnapshot:
        """
        Save operator rates (and optionally quantities) for one order.

        Args:
            inputs: runId -> {"new_rate": ..., "quantity"?: ...}
            expected_version: Order snapshot version the caller last read
                (0 when the order has never been billed)

        Raises:
            BillingInputError: unknown run or invalid number (nothing saved)
            StaleSnapshotError: a newer order snapshot exists
        """
        order = self._store.get_order(order_id)
        run_ids = set(order.run_ids())
        errors: List[str] = []
        parsed: Dict[str, Dict[str, Optional[float]]] = {}

        if not isinstance(inputs, Mapping):
            raise BillingInputError("Billing inputs must map run IDs to rates")

        for run_id, payload in inputs.items():
            if run_id not in run_ids:
                errors.append(f"Run {run_id} does not belong to order {order_id}")
                continue
            if not isinstance(payload, Mapping):
                errors.append(f"Run {run_id}: expected an object with new_rate")
                continue
            rate = _parse_amount(payload.get("new_rate"))
            if rate is None:
                errors.append(f"Run {run_id}: new_rate must be a non-negative number")
            quantity = None
            if payload.get("quantity") is not None:
                quantity = _parse_amount(payload.get("quantity"))
                if quantity is None:
                    errors.append(f"Run {run_id}: quantity must be a non-negative number")
            parsed[run_id] = {"new_rate": rate, "quantity": quantity}

        if errors:
            logger.warning(f"Rejected billing inputs for order {order_id[:8]}: {errors}")
            raise BillingInputError("Invalid billing inputs", details={"errors": errors})

        context_id = self._order_context_id(order)
        with self._lock_for(context_id):
            self._check_version(context_id, expected_version, self._store.latest_snapshot(context_id))

            merged = self._order_inputs_or_baseline(order)
            for run_id, values in parsed.items():
                current = merged.get(run_id, RunBillingInput())
                merged[run_id] = RunBillingInput(
                    new_rate=values["new_rate"],
                    quantity=values["quantity"] if values["quantity"] is not None else current.quantity,
                )

            return self._write_order_snapshot(
                order,
                merged,
                SnapshotIntent.DRAFT,
                CalculationType.RECALCULATED,
                reason=reason or "MANUAL_RATE_UPDATE",
                created_by=created_by,
            )

    # =========================================================================
    # Group snapshots
    # =========================================================================

    def _require_group(self, context_id: str) -> BillingContext:
        context = self._store.get_context(context_id)
        if context.type != ContextType.GROUP:
            raise BillingInputError(
                f"Billing context {context_id} is not a billing group",
                details={"context_id": context_id, "type": context.type.value},
            )
        return context

    def _require_draft(self, context: BillingContext, operation: str) -> None:
        latest = self._store.latest_snapshot(context.id)
        if latest is not None and not latest.is_draft:
            raise ContextFinalizedError(context.id, operation)

    def _validate_orders(self, order_ids: Iterable[str]) -> List[Order]:
        """Load orders, requiring every run of each to be configured."""
        orders = []
        errors = []
        for order_id in order_ids:
            try:
                order = self._store.get_order(order_id)
            except OrderNotFoundError:
                errors.append(f"Order {order_id} does not exist")
                continue
            if not order.is_complete:
                errors.append(f"Order {order.code or order_id} has unconfigured runs")
                continue
            orders.append(order)
        if errors:
            raise BillingInputError("Invalid orderIds provided", details={"errors": errors})
        return orders

    def _write_group_snapshot(
        self,
        context: BillingContext,
        intent: SnapshotIntent,
        calculation_type: CalculationType,
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> BillingSnapshot:
        order_inputs: Dict[str, Dict[str, RunBillingInput]] = {}
        order_results: Dict[str, float] = {}

        for order_id in context.order_ids:
            snapshot = self._latest_order_snapshot(order_id)
            if snapshot is None:
                snapshot = self.build_order_snapshot(order_id, created_by=created_by)
            order_inputs[order_id] = dict(snapshot.inputs)
            order_results[order_id] = snapshot.result

        result = round_half_up(sum(order_results.values()), 2)

        snapshot = self._store.append_snapshot(
            context.id,
            lambda version: BillingSnapshot(
                id=str(uuid.uuid4()),
                billing_context_id=context.id,
                version=version,
                intent=intent,
                result=result,
                currency=self._currency,
                order_inputs=order_inputs,
                order_results=order_results,
                calculation_type=calculation_type,
                reason=reason,
                created_by=created_by,
            ),
        )
        get_context_logger(context.id).info(
            f"Group {context.name} snapshot v{snapshot.version} "
            f"{intent.value} result={result}"
        )
        return snapshot

    def create_group_context(
        self,
        order_ids: Iterable[str],
        description: str = "",
        created_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a billing group over completed orders.

        The group is named with the next fiscal code (e.g. ``R1/26-27``) and
        starts with a DRAFT snapshot summing its orders.

        Raises:
            BillingInputError: no orders, unknown orders, or unconfigured runs
        """
        unique_ids = list(dict.fromkeys(order_ids or []))
        if not unique_ids:
            raise BillingInputError("A billing group needs at least one order")

        self._validate_orders(unique_ids)

        name = self._store.next_fiscal_code(GROUP_CODE_PREFIX)
        context = self._store.add_context(
            ContextType.GROUP,
            name=name,
            order_ids=unique_ids,
            description=description,
            created_by=created_by,
        )
        logger.info(f"Created billing group {name} ({len(unique_ids)} orders)")

        with self._lock_for(context.id):
            self._write_group_snapshot(
                context,
                SnapshotIntent.DRAFT,
                CalculationType.INITIAL,
                created_by=created_by,
            )
        return self.get_context(context.id)

    def _validate_overrides(
        self,
        context: BillingContext,
        inputs: OverrideRequest,
    ) -> Dict[str, Dict[str, float]]:
        """
        Check a whole override request before anything is written.

        Returns:
            orderId -> runId -> new_rate
        """
        if not isinstance(inputs, Mapping):
            raise BillingInputError("Finalize inputs must map order IDs to run rates")

        errors: List[str] = []
        overrides: Dict[str, Dict[str, float]] = {}

        for order_id, runs in inputs.items():
            if order_id not in context.order_ids:
                errors.append(f"Order {order_id} is not part of group {context.name}")
                continue
            if not isinstance(runs, Mapping):
                errors.append(f"Order {order_id}: expected runId -> {{new_rate}}")
                continue
            run_ids = set(self._store.get_order(order_id).run_ids())
            for run_id, payload in runs.items():
                if run_id not in run_ids:
                    errors.append(f"Run {run_id} does not belong to order {order_id}")
                    continue
                raw = payload.get("new_rate") if isinstance(payload, Mapping) else None
                rate = _parse_amount(raw)
                if rate is None:
                    errors.append(f"Run {run_id}: new_rate must be a non-negative number")
                    continue
                overrides.setdefault(order_id, {})[run_id] = rate

        if errors:
            raise BillingInputError("Invalid finalize inputs", details={"errors": errors})
        return overrides

    def finalize_group(
        self,
        context_id: str,
        inputs: Union[OverrideRequest, BillingDraft, None] = None,
        created_by: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Apply rate overrides and finalize a billing group.

        Each override replaces the run's stored ``new_rate`` and keeps its
        stored quantity, so finalizing twice with the same inputs gives the
        same result. Every order of the group gets a FINAL snapshot, then a
        FINAL group snapshot is written.

        Args:
            inputs: orderId -> runId -> {"new_rate": ...}, or a BillingDraft
            expected_version: Group snapshot version the caller last read

        Returns:
            The updated context (see get_context)

        Raises:
            BillingInputError: invalid request (nothing written)
            StaleSnapshotError: expected_version is not the latest version
            ContextFinalizedError: group is FINAL and re-finalize is disabled
        """
        if isinstance(inputs, BillingDraft):
            inputs = inputs.to_request()
        inputs = inputs if inputs is not None else {}
        context_logger = get_context_logger(context_id)

        with self._lock_for(context_id):
            context = self._require_group(context_id)
            latest = self._store.latest_snapshot(context_id)
            self._check_version(context_id, expected_version, latest)

            refinalize = latest is not None and not latest.is_draft
            if refinalize and not self._allow_refinalize:
                raise ContextFinalizedError(context_id, "finalize")

            overrides = self._validate_overrides(context, inputs)

            for order_id in context.order_ids:
                order = self._store.get_order(order_id)
                order_overrides = overrides.get(order_id, {})

                # group lock, then order lock; order saves take only the latter
                with self._lock_for(self._order_context_id(order)):
                    stored = self._order_inputs_or_baseline(order)
                    latest_order = self._latest_order_snapshot(order_id)
                    if not order_overrides and latest_order is not None and not latest_order.is_draft:
                        continue

                    run_ids = list(stored) + [r for r in order_overrides if r not in stored]
                    updated = {
                        run_id: effective_run_input(run_id, stored, order_overrides)
                        for run_id in run_ids
                    }
                    self._write_order_snapshot(
                        order,
                        updated,
                        SnapshotIntent.FINAL,
                        CalculationType.RECALCULATED,
                        reason="GROUP_RECALCULATION",
                        created_by=created_by,
                    )

            self._write_group_snapshot(
                context,
                SnapshotIntent.FINAL,
                CalculationType.RECALCULATED,
                reason="REFINALIZE" if refinalize else "FINALIZE",
                created_by=created_by,
            )
            context_logger.info(
                f"{'Re-finalized' if refinalize else 'Finalized'} group {context.name} "
                f"({len(overrides)} orders with rate overrides)"
            )

        return self.get_context(context_id)

    def add_orders(self, context_id: str, order_ids: Iterable[str]) -> Dict[str, int]:
        """
        Add completed orders to a DRAFT group.

        Returns:
            {"added": <number of orders newly added>}
        """
        with self._lock_for(context_id):
            context = self._require_group(context_id)
            self._require_draft(context, "add orders")

            new_ids = [
                order_id for order_id in dict.fromkeys(order_ids or [])
                if order_id not in context.order_ids
            ]
            if not new_ids:
                logger.info(f"No new orders to add to group {context.name}")
                return {"added": 0}

            self._validate_orders(new_ids)
            context.order_ids.extend(new_ids)
            context = self._store.save_context(context)
            self._write_group_snapshot(
                context,
                SnapshotIntent.DRAFT,
                CalculationType.INITIAL,
                reason="ORDERS_ADDED",
            )
        return {"added": len(new_ids)}

    def remove_order(self, context_id: str, order_id: str) -> Dict[str, Any]:
        """Remove one order from a DRAFT group (the last order cannot be removed)."""
        with self._lock_for(context_id):
            context = self._require_group(context_id)
            self._require_draft(context, "remove order")

            if order_id not in context.order_ids:
                raise BillingInputError(
                    f"Order {order_id} is not part of group {context.name}",
                    details={"context_id": context_id, "order_id": order_id},
                )
            if len(context.order_ids) == 1:
                raise BillingInputError("A billing group needs at least one order")

            context.order_ids.remove(order_id)
            context = self._store.save_context(context)
            self._write_group_snapshot(
                context,
                SnapshotIntent.DRAFT,
                CalculationType.INITIAL,
                reason="ORDER_REMOVED",
            )
        return {"removed": order_id}

    # =========================================================================
    # Reads
    # =========================================================================

    def preview_context_total(
        self,
        context_id: str,
        draft: Optional[BillingDraft] = None,
    ) -> Dict[str, Any]:
        """
        Display total for a group with the operator's unsaved overrides.

        Returned beside the persisted ``result``; never written.
        """
        context = self._require_group(context_id)
        draft = draft or BillingDraft()
        latest = self._store.latest_snapshot(context_id)

        orders = {}
        for order_id in context.order_ids:
            order = self._store.get_order(order_id)
            order_snapshot = self._latest_order_snapshot(order_id)
            stored = order_snapshot.inputs if order_snapshot else {}
            orders[order_id] = {
                "result": order_snapshot.result if order_snapshot else None,
                "preview": order_amount(order, stored, draft.overrides.get(order_id)),
            }

        return {
            "result": latest.result if latest else None,
            "preview": round_half_up(sum(o["preview"] for o in orders.values()), 2),
            "orders": orders,
        }

    def get_context(self, context_id: str) -> Dict[str, Any]:
        """Context with nested orders, runs and each order's latest billing."""
        context = self._store.get_context(context_id)
        latest = self._store.latest_snapshot(context_id)

        orders = []
        for order_id in context.order_ids:
            order = self._store.get_order(order_id)
            order_snapshot = self._latest_order_snapshot(order_id)
            data = order.to_dict()
            data["billing"] = (
                {
                    "id": order_snapshot.id,
                    "version": order_snapshot.version,
                    "intent": order_snapshot.intent.value,
                    "result": order_snapshot.result,
                    "currency": order_snapshot.currency,
                    "inputs": {k: v.to_dict() for k, v in order_snapshot.inputs.items()},
                }
                if order_snapshot
                else None
            )
            orders.append(data)

        data = context.to_dict()
        data["orders"] = orders
        data["latestSnapshot"] = latest.to_dict() if latest else None
        return data

    def list_contexts(
        self,
        page: int = 1,
        limit: int = 12,
        search: str = "",
    ) -> Dict[str, Any]:
        """
        Page through billing groups, newest first.

        ``search`` matches the group name or any member order's code,
        case-insensitively. ``meta`` totals cover every matching group.
        """
        page = max(int(page or 1), 1)
        limit = max(int(limit or 12), 1)
        needle = (search or "").strip().lower()

        matching = []
        for context in self._store.list_contexts(ContextType.GROUP):
            orders = [self._store.get_order(oid) for oid in context.order_ids]
            if needle and needle not in context.name.lower() and not any(
                needle in (order.code or "").lower() for order in orders
            ):
                continue
            matching.append((context, orders))

        total_quantity = 0
        total_amount = 0.0
        for context, orders in matching:
            total_quantity += sum(order.quantity for order in orders)
            latest = self._store.latest_snapshot(context.id)
            if latest is not None:
                total_amount += latest.result

        start = (page - 1) * limit
        data = []
        for context, orders in matching[start:start + limit]:
            latest = self._store.latest_snapshot(context.id)
            data.append({
                "id": context.id,
                "type": context.type.value,
                "name": context.name,
                "description": context.description,
                "ordersCount": len(orders),
                "orderCodes": ", ".join(dict.fromkeys(o.code for o in orders if o.code)),
                "latestSnapshot": (
                    {
                        "id": latest.id,
                        "version": latest.version,
                        "intent": latest.intent.value,
                        "isDraft": latest.is_draft,
                        "result": latest.result,
                        "currency": latest.currency,
                        "calculationType": latest.calculation_type.value,
                        "createdAt": latest.created_at.isoformat(),
                    }
                    if latest
                    else None
                ),
            })

        total = len(matching)
        return {
            "data": data,
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
                "totalQuantity": total_quantity,
                "totalEstimatedAmount": round_half_up(total_amount, 2),
            },
        }

    def get_latest_snapshot(
        self,
        billing_context_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> Optional[BillingSnapshot]:
        """
        Latest snapshot of a context, or of an order's ORDER context.

        Raises:
            BillingInputError: neither id given
        """
        if billing_context_id:
            self._store.get_context(billing_context_id)
            return self._store.latest_snapshot(billing_context_id)
        if order_id:
            self._store.get_order(order_id)
            return self._latest_order_snapshot(order_id)
        raise BillingInputError("billingContextId or orderId is required")
