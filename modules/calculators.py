"""
Single dispatch point from a run's process kind to its calculator.

Every costed run goes through the same four steps regardless of kind:

    draft  = draft_from_values(kind, fields)     # lenient parse
    draft  = validate_run(kind, fields)          # raises RunValidationError
    totals = compute_run_totals(draft)
    values = build_values_bag(draft, totals)     # raw inputs + summary keys

The persisted values bag keeps raw inputs and computed summaries in one
namespace (``particulars`` next to ``Total Amount``), so readers must not
assume a strict inputs/outputs split.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from core.exceptions import RunValidationError, UnsupportedProcessKindError
from models.layouts import AlloverSublimationDraft, DTFDraft, SublimationDraft
from models.run import ProcessKind
from modules import allover_sublimation, dtf, sublimation
from logging_config import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class Calculator:
    """Calculator functions for one process kind."""

    kind: ProcessKind
    draft_type: type
    compute_totals: Callable[[Any], Any]
    validate: Callable[..., list]
    prepare: Callable[[Any], Any]
    """Normalization applied to a draft before it is saved."""


CALCULATORS: Dict[ProcessKind, Calculator] = {
    ProcessKind.ALLOVER_SUBLIMATION: Calculator(
        kind=ProcessKind.ALLOVER_SUBLIMATION,
        draft_type=AlloverSublimationDraft,
        compute_totals=allover_sublimation.compute_totals,
        validate=allover_sublimation.validate,
        prepare=allover_sublimation.recompute_all_rows,
    ),
    ProcessKind.DTF: Calculator(
        kind=ProcessKind.DTF,
        draft_type=DTFDraft,
        compute_totals=dtf.compute_totals,
        validate=dtf.validate,
        prepare=lambda draft: draft,
    ),
    ProcessKind.SUBLIMATION: Calculator(
        kind=ProcessKind.SUBLIMATION,
        draft_type=SublimationDraft,
        compute_totals=sublimation.compute_totals,
        validate=sublimation.validate,
        prepare=lambda draft: draft,
    ),
}


def get_calculator(kind: Optional[ProcessKind], process_name: Optional[str] = None) -> Calculator:
    calculator = CALCULATORS.get(kind) if kind else None
    if calculator is None:
        raise UnsupportedProcessKindError(process_name or (kind.value if kind else None))
    return calculator


def draft_from_values(kind: Optional[ProcessKind], values: Mapping[str, Any]):
    """Build the kind's working draft from a values bag or submitted fields."""
    calculator = get_calculator(kind)
    return calculator.draft_type.from_values(dict(values or {}))


def validate_run(
    kind: Optional[ProcessKind],
    fields: Mapping[str, Any],
    run_id: Optional[str] = None,
):
    """
    Parse and validate submitted fields.

    Returns:
        The prepared draft, ready for compute_run_totals

    Raises:
        UnsupportedProcessKindError: kind has no calculator
        RunValidationError: one or more fields are invalid
    """
    calculator = get_calculator(kind)
    draft = calculator.prepare(calculator.draft_type.from_values(dict(fields or {})))
    errors = calculator.validate(draft, fields)
    if errors:
        logger.warning(f"Run {run_id or '-'} ({calculator.kind.value}) rejected: {errors}")
        raise RunValidationError(errors, run_id=run_id, process_kind=calculator.kind.value)
    return draft


def compute_run_totals(draft):
    return get_calculator(draft.process_kind).compute_totals(draft)


def build_values_bag(draft, totals) -> Dict[str, Any]:
    """
    Merge raw inputs and computed summary fields into one values bag.

    DTF and Sublimation items are stored with their derived row fields.
    """
    values = draft.to_values()
    rows = getattr(totals, "rows", None)
    if rows is not None:
        values["items"] = [row.to_dict() for row in rows]
    values.update(totals.summary_fields())
    return values


def preview_run(kind: Optional[ProcessKind], fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Compute the values bag a save would produce, without validating.

    Used to show live totals while an operator is still editing.
    """
    calculator = get_calculator(kind)
    draft = calculator.prepare(calculator.draft_type.from_values(dict(fields or {})))
    return build_values_bag(draft, calculator.compute_totals(draft))
