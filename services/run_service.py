"""
Run configuration service.

Adds, configures and deletes the runs under an order's processes. A
configure call is the only way a run's ``values`` bag changes, and it
replaces the bag wholesale:

    1. Build the kind's working draft from the submitted fields
    2. Validate (raises before anything is written)
    3. Compute totals
    4. Store raw inputs + summary fields, mark the run COMPLETE

Usage:
    run_service = RunService(store, max_images=2)

    run = run_service.add_run(order_id, process_id)
    result = run_service.configure_run(order_id, process_id, run.id, fields)
    # {"success": True, "values": {...}, "revision": 1}
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from core.exceptions import BillingInputError, RunNotFoundError, RunValidationError, StaleRunError
from models.run import ConfigStatus, Order, Process, ProcessRun
from modules.calculators import build_values_bag, compute_run_totals, get_calculator, validate_run
from services.store import BillingStore, new_id
from logging_config import get_logger


logger = get_logger(__name__)


class RunService:
    """Creates and configures process runs."""

    def __init__(self, store: BillingStore, max_images: int = 2):
        self._store = store
        self._max_images = max_images

    @staticmethod
    def _locate(order: Order, process_id: str) -> Process:
        process = order.find_process(process_id)
        if process is None:
            raise BillingInputError(
                f"Process {process_id} does not belong to order {order.id}",
                details={"order_id": order.id, "process_id": process_id},
            )
        return process

    @staticmethod
    def _find_run(process: Process, run_id: str) -> ProcessRun:
        run = process.find_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    # =========================================================================
    # Operations
    # =========================================================================

    def add_run(self, order_id: str, process_id: str) -> ProcessRun:
        """Add a PENDING run numbered after the process's last run."""

        def append(order: Order) -> ProcessRun:
            process = self._locate(order, process_id)
            run = ProcessRun(
                id=new_id(),
                run_number=process.next_run_number(),
                process_kind=process.kind,
            )
            process.runs.append(run)
            return run

        run = self._store.update_order(order_id, append)
        logger.info(f"Added run #{run.run_number} to process {process_id[:8]} on order {order_id[:8]}")
        return run

    def configure_run(
        self,
        order_id: str,
        process_id: str,
        run_id: str,
        fields: Mapping[str, Any],
        images: Optional[Iterable[str]] = None,
        executor_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        location_id: Optional[str] = None,
        expected_revision: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Validate, compute and save a run's configuration.

        Totals are computed from a read copy; only the final write of the
        run's fields happens under the store lock, so saves of other runs of
        the same order are never lost.

        Args:
            fields: Submitted header and item fields for the run's kind
            images: Optional image URLs (at most ``max_images``)
            expected_revision: Run revision the caller last read, if any

        Returns:
            {"success": True, "values": <stored values bag>, "revision": int}

        Raises:
            RunValidationError: invalid fields or too many images
            UnsupportedProcessKindError: the process has no calculator
            StaleRunError: the run was saved again since expected_revision
        """
        order = self._store.get_order(order_id)
        process = self._locate(order, process_id)
        run = self._find_run(process, run_id)

        image_list = [url for url in (images or []) if url]
        if len(image_list) > self._max_images:
            raise RunValidationError(
                [f"At most {self._max_images} images allowed per run"],
                run_id=run_id,
                process_kind=process.name,
            )

        kind = get_calculator(run.process_kind or process.kind, process.name).kind
        draft = validate_run(kind, fields, run_id=run_id)
        values = build_values_bag(draft, compute_run_totals(draft))

        def apply(current: Order) -> ProcessRun:
            target = self._find_run(self._locate(current, process_id), run_id)
            if expected_revision is not None and int(expected_revision) != target.revision:
                raise StaleRunError(run_id, int(expected_revision), target.revision)
            target.process_kind = kind
            target.values = dict(values)
            target.images = list(image_list)
            if executor_id is not None:
                target.executor_id = executor_id
            if reviewer_id is not None:
                target.reviewer_id = reviewer_id
            if location_id is not None:
                target.location_id = location_id
            target.config_status = ConfigStatus.COMPLETE
            target.revision += 1
            return target

        try:
            saved = self._store.update_order(order_id, apply)
        except StaleRunError as e:
            logger.warning(
                f"Stale save of run {run_id[:8]}: expected r{e.expected_revision}, "
                f"stored r{e.actual_revision}"
            )
            raise

        logger.info(
            f"Run {run_id[:8]} configured ({kind.value}) r{saved.revision}: "
            f"estimated {saved.values.get('Estimated Amount')}"
        )
        return {"success": True, "values": dict(saved.values), "revision": saved.revision}

    def delete_run(self, order_id: str, process_id: str, run_id: str) -> None:
        def remove(order: Order) -> None:
            process = self._locate(order, process_id)
            process.runs.remove(self._find_run(process, run_id))

        self._store.update_order(order_id, remove)
        logger.info(f"Deleted run {run_id[:8]} from order {order_id[:8]}")

    def get_run(self, run_id: str) -> Dict[str, Any]:
        """Run detail with its order and process context."""
        order, process, run = self._store.find_run(run_id)
        data = run.to_dict()
        data["orderId"] = order.id
        data["orderQuantity"] = order.quantity
        data["processId"] = process.id
        data["processName"] = process.name
        return data

    def create_order(
        self,
        quantity: int,
        code: str = "",
        process_names: Iterable[str] = (),
    ) -> Order:
        return self._store.add_order(quantity=quantity, code=code, process_names=process_names)

    def get_order(self, order_id: str) -> Order:
        return self._store.get_order(order_id)
