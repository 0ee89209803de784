"""
In-memory record store for orders, billing contexts and snapshots.

Thread Safety:
    - One threading.Lock guards every map
    - Reads hand out deep copies; an edit to a copy never touches the store
    - Order edits go through update_order, which applies the edit to the
      stored record inside the lock, so edits to different runs of one order
      never overwrite each other
    - Snapshot versioning (next version, clearing the previous ``is_latest``)
      happens inside the lock, so two writers can never produce the same
      version for one context

Usage:
    store = BillingStore()
    order = store.add_order(quantity=100, code="ORD1/26-27", process_names=["DTF"])

    order = store.get_order(order.id)    # private copy
    store.update_order(order.id, lambda o: o.processes.append(process))
"""

from __future__ import annotations

import copy
import dataclasses
import threading
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from core.exceptions import (
    BillingContextNotFoundError,
    BillingInputError,
    OrderNotFoundError,
    RunNotFoundError,
)
from models.billing import BillingContext, BillingSnapshot, ContextType
from models.run import Order, Process, ProcessRun
from logging_config import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


def fiscal_year(today: Optional[date] = None) -> str:
    """
    Fiscal year in YY-YY form (April to March).

    Example:
        fiscal_year(date(2026, 10, 19))  # "26-27"
        fiscal_year(date(2027, 2, 1))    # "26-27"
    """
    today = today or datetime.now(timezone.utc).date()
    start = today.year if today.month >= 4 else today.year - 1
    return f"{start % 100:02d}-{(start + 1) % 100:02d}"


def new_id() -> str:
    return str(uuid.uuid4())


class BillingStore:
    """
    Thread-safe storage for orders, billing contexts and their snapshots.

    Snapshots are kept per context in version order. The last one in each
    list is the only one flagged ``is_latest``.
    """

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._contexts: Dict[str, BillingContext] = {}
        self._snapshots: Dict[str, List[BillingSnapshot]] = {}
        self._order_contexts: Dict[str, str] = {}
        self._fiscal_sequences: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Orders
    # =========================================================================

    def add_order(
        self,
        quantity: int,
        code: str = "",
        process_names: Iterable[str] = (),
    ) -> Order:
        """
        Create an order with one empty process per technique name.

        Raises:
            BillingInputError: quantity is not a positive number
        """
        if quantity is None or quantity <= 0:
            raise BillingInputError(
                "Order quantity must be greater than zero",
                details={"quantity": quantity},
            )

        order = Order(
            id=new_id(),
            quantity=quantity,
            code=code,
            processes=[Process(id=new_id(), name=name) for name in process_names],
        )
        with self._lock:
            self._orders[order.id] = order
            logger.debug(f"Stored order {order.id[:8]} ({len(order.processes)} processes)")
            return copy.deepcopy(order)

    def get_order(self, order_id: str) -> Order:
        """
        Get a private copy of an order.

        Raises:
            OrderNotFoundError: no such order
        """
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            return copy.deepcopy(order)

    def update_order(self, order_id: str, mutate: Callable[[Order], T]) -> T:
        """
        Edit the stored order in place, atomically.

        ``mutate`` receives a working copy of the current record and runs
        inside the store lock. The copy replaces the record only if
        ``mutate`` returns normally; if it raises, nothing is written. It
        must not call back into the store.

        Returns:
            A copy of whatever ``mutate`` returned

        Raises:
            OrderNotFoundError: no such order
        """
        with self._lock:
            stored = self._orders.get(order_id)
            if stored is None:
                raise OrderNotFoundError(order_id)
            order = copy.deepcopy(stored)
            result = mutate(order)
            self._orders[order_id] = order
            return copy.deepcopy(result)

    def find_run(self, run_id: str) -> Tuple[Order, Process, ProcessRun]:
        """
        Locate a run by id across all orders.

        Returns:
            (order, process, run), all from one private copy of the order

        Raises:
            RunNotFoundError: no order contains the run
        """
        with self._lock:
            for order in self._orders.values():
                for process, run in order.iter_runs():
                    if run.id == run_id:
                        found = copy.deepcopy(order)
                        process_copy = found.find_process(process.id)
                        return found, process_copy, process_copy.find_run(run_id)
        raise RunNotFoundError(run_id)

    # =========================================================================
    # Billing contexts
    # =========================================================================

    def add_context(
        self,
        context_type: ContextType,
        name: str,
        order_ids: Iterable[str] = (),
        description: str = "",
        created_by: Optional[str] = None,
    ) -> BillingContext:
        context = BillingContext(
            id=new_id(),
            type=context_type,
            name=name,
            order_ids=list(order_ids),
            description=description,
            created_by=created_by,
        )
        with self._lock:
            self._contexts[context.id] = context
            self._snapshots[context.id] = []
            if context_type == ContextType.ORDER:
                for order_id in context.order_ids:
                    self._order_contexts[order_id] = context.id
            return copy.deepcopy(context)

    def get_context(self, context_id: str) -> BillingContext:
        """
        Raises:
            BillingContextNotFoundError: no such context
        """
        with self._lock:
            context = self._contexts.get(context_id)
            if context is None:
                raise BillingContextNotFoundError(context_id)
            return copy.deepcopy(context)

    def save_context(self, context: BillingContext) -> BillingContext:
        with self._lock:
            if context.id not in self._contexts:
                raise BillingContextNotFoundError(context.id)
            self._contexts[context.id] = copy.deepcopy(context)
            return copy.deepcopy(context)

    def list_contexts(self, context_type: Optional[ContextType] = None) -> List[BillingContext]:
        """All contexts of a type, newest first."""
        with self._lock:
            contexts = [
                c for c in self._contexts.values()
                if context_type is None or c.type == context_type
            ]
            contexts.sort(key=lambda c: c.created_at, reverse=True)
            return copy.deepcopy(contexts)

    def order_context_id(self, order_id: str) -> Optional[str]:
        """ID of the order's ORDER context, if one was created."""
        with self._lock:
            return self._order_contexts.get(order_id)

    def next_fiscal_code(self, prefix: str, today: Optional[date] = None) -> str:
        """
        Issue the next code in a per-(prefix, fiscal year) sequence.

        Example:
            store.next_fiscal_code("R")  # "R1/26-27", then "R2/26-27", ...
        """
        year = fiscal_year(today)
        with self._lock:
            value = self._fiscal_sequences.get((prefix, year), 0) + 1
            self._fiscal_sequences[(prefix, year)] = value
        return f"{prefix}{value}/{year}"

    # =========================================================================
    # Snapshots
    # =========================================================================

    def append_snapshot(
        self,
        context_id: str,
        build: Callable[[int], BillingSnapshot],
    ) -> BillingSnapshot:
        """
        Write the next snapshot version for a context.

        ``build`` receives the new version number and returns the snapshot.
        It runs inside the store lock and must not call back into the store.

        Raises:
            BillingContextNotFoundError: no such context
        """
        with self._lock:
            if context_id not in self._contexts:
                raise BillingContextNotFoundError(context_id)
            history = self._snapshots[context_id]
            version = history[-1].version + 1 if history else 1
            snapshot = build(version)
            if history:
                history[-1] = dataclasses.replace(history[-1], is_latest=False)
            history.append(dataclasses.replace(snapshot, is_latest=True))
            logger.debug(f"Stored snapshot v{version} for context {context_id[:8]}")
            return history[-1]

    def latest_snapshot(self, context_id: str) -> Optional[BillingSnapshot]:
        with self._lock:
            history = self._snapshots.get(context_id) or []
            return history[-1] if history else None

    def snapshot_history(self, context_id: str) -> List[BillingSnapshot]:
        with self._lock:
            return list(self._snapshots.get(context_id) or [])

    def clear(self) -> int:
        """
        Remove all records.

        Returns:
            Number of orders removed
        """
        with self._lock:
            count = len(self._orders)
            self._orders.clear()
            self._contexts.clear()
            self._snapshots.clear()
            self._order_contexts.clear()
            self._fiscal_sequences.clear()
            logger.info(f"Cleared {count} orders from store")
            return count
