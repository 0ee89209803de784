"""
Order, process and run data models.

These models represent an order as it moves through the shop:
order -> processes (production techniques) -> runs (configurable units of
work). A run carries its raw inputs and last computed totals in one untyped
``values`` bag, exactly as the run record is persisted.

Mutation rules:
    - A run's ``values`` bag is only ever replaced wholesale by a save.
    - ``config_status`` moves PENDING -> COMPLETE when a save succeeds.
    - ``revision`` counts successful saves; a caller may pass the revision it
      last read to have a superseded save refused.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional


class ProcessKind(Enum):
    """
    Production techniques with a costing calculator.

    The enum value is the process name as operators see it.
    """

    ALLOVER_SUBLIMATION = "Allover Sublimation"
    DTF = "DTF"
    SUBLIMATION = "Sublimation"

    @classmethod
    def from_process_name(cls, name: Optional[str]) -> Optional["ProcessKind"]:
        """Resolve a process name to its kind, or None if it has no calculator."""
        if not name:
            return None
        normalized = name.strip().lower()
        for kind in cls:
            if kind.value.lower() == normalized:
                return kind
        return None


class ConfigStatus(Enum):
    """Run configuration status."""

    PENDING = "PENDING"
    """Run added but never saved."""

    COMPLETE = "COMPLETE"
    """Run configuration saved at least once."""


@dataclass
class ProcessRun:
    """
    One configurable unit of production work under a process.

    ``values`` holds raw inputs and computed summary fields side by side
    (e.g. ``particulars`` next to ``Total Amount``).
    """

    id: str
    run_number: int
    process_kind: Optional[ProcessKind] = None
    values: Dict[str, Any] = field(default_factory=dict)
    images: List[str] = field(default_factory=list)
    executor_id: Optional[str] = None
    reviewer_id: Optional[str] = None
    location_id: Optional[str] = None
    config_status: ConfigStatus = ConfigStatus.PENDING
    revision: int = 0

    @property
    def is_complete(self) -> bool:
        return self.config_status == ConfigStatus.COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "runNumber": self.run_number,
            "processKind": self.process_kind.value if self.process_kind else None,
            "values": dict(self.values),
            "images": list(self.images),
            "executorId": self.executor_id,
            "reviewerId": self.reviewer_id,
            "locationId": self.location_id,
            "configStatus": self.config_status.value,
            "revision": self.revision,
        }


@dataclass
class Process:
    """A production technique applied to an order."""

    id: str
    name: str
    runs: List[ProcessRun] = field(default_factory=list)

    @property
    def kind(self) -> Optional[ProcessKind]:
        return ProcessKind.from_process_name(self.name)

    def find_run(self, run_id: str) -> Optional[ProcessRun]:
        for run in self.runs:
            if run.id == run_id:
                return run
        return None

    def next_run_number(self) -> int:
        return max((r.run_number for r in self.runs), default=0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "runs": [r.to_dict() for r in self.runs],
        }


@dataclass
class Order:
    """
    A customer order decomposed into processes.

    Invariant: quantity > 0 (checked on creation by the store).
    """

    id: str
    quantity: int
    code: str = ""
    processes: List[Process] = field(default_factory=list)

    def iter_runs(self):
        """Yield (process, run) pairs across all processes."""
        for process in self.processes:
            for run in process.runs:
                yield process, run

    def find_process(self, process_id: str) -> Optional[Process]:
        for process in self.processes:
            if process.id == process_id:
                return process
        return None

    def run_ids(self) -> List[str]:
        return [run.id for _, run in self.iter_runs()]

    @property
    def is_complete(self) -> bool:
        """True when every run of every process has been configured."""
        runs = [run for _, run in self.iter_runs()]
        return bool(runs) and all(run.is_complete for run in runs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "quantity": self.quantity,
            "processes": [p.to_dict() for p in self.processes],
        }
