"""
Allover Sublimation run costing.

Each item's per-piece rate comes from its printed height and the run's
rate per meter:

    rate   = round2(height / 39.38 x rate_per_meter)
    amount = round2(rate x quantity)

Run totals:

    total_amount = sum(amount)
    total_mtr    = sum(height x quantity) / 39.38

Edits never mutate a draft. Every helper returns a new draft. A change to
the rate per meter goes through ``recompute_all_rows`` so no row keeps a
rate derived from the old value.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, List, Mapping, Optional

from core.numbers import INCHES_PER_METER, round_half_up, to_number, to_text
from models.layouts import (
    AlloverSublimationDraft,
    AlloverSublimationItem,
    AlloverSublimationTotals,
)
from logging_config import get_logger


logger = get_logger(__name__)


def derive_rate(height: float, rate_per_meter: float) -> float:
    return round_half_up((height / INCHES_PER_METER) * rate_per_meter, 2)


def derive_amount(rate: float, quantity: float) -> float:
    return round_half_up(rate * quantity, 2)


def recompute_item(item: AlloverSublimationItem, rate_per_meter: float) -> AlloverSublimationItem:
    """Re-derive an item's rate from its height, then its amount."""
    rate = derive_rate(item.height, rate_per_meter)
    return replace(item, rate=rate, amount=derive_amount(rate, item.quantity))


def recompute_all_rows(draft: AlloverSublimationDraft) -> AlloverSublimationDraft:
    """Re-derive every item from the draft's current rate per meter."""
    items = tuple(recompute_item(item, draft.rate_per_meter) for item in draft.items)
    return replace(draft, items=items)


# =============================================================================
# DRAFT EDITS
# =============================================================================

def set_rate_per_meter(draft: AlloverSublimationDraft, value: Any) -> AlloverSublimationDraft:
    updated = replace(draft, rate_per_meter=to_number(value))
    logger.debug(f"Rate per meter set to {updated.rate_per_meter}, recomputing {len(draft.items)} rows")
    return recompute_all_rows(updated)


def set_header(draft: AlloverSublimationDraft, field_name: str, value: Any) -> AlloverSublimationDraft:
    """Set particulars, panna or printer. Rate changes go through set_rate_per_meter."""
    if field_name in ("rate_per_meter", "ratePerMeter"):
        return set_rate_per_meter(draft, value)
    if field_name not in ("particulars", "panna", "printer"):
        raise ValueError(f"Unknown Allover Sublimation header field: {field_name}")
    return replace(draft, **{field_name: to_text(value)})


def _replace_item(
    draft: AlloverSublimationDraft, index: int, item: AlloverSublimationItem
) -> AlloverSublimationDraft:
    items = list(draft.items)
    items[index] = item
    return replace(draft, items=tuple(items))


def set_item_height(draft: AlloverSublimationDraft, index: int, value: Any) -> AlloverSublimationDraft:
    item = replace(draft.items[index], height=to_number(value))
    return _replace_item(draft, index, recompute_item(item, draft.rate_per_meter))


def set_item_quantity(draft: AlloverSublimationDraft, index: int, value: Any) -> AlloverSublimationDraft:
    """Quantity changes only the item's amount; its rate stays."""
    item = draft.items[index]
    quantity = to_number(value)
    updated = replace(item, quantity=quantity, amount=derive_amount(item.rate, quantity))
    return _replace_item(draft, index, updated)


def set_item_design(draft: AlloverSublimationDraft, index: int, value: Any) -> AlloverSublimationDraft:
    return _replace_item(draft, index, replace(draft.items[index], design=to_text(value)))


def add_item(draft: AlloverSublimationDraft) -> AlloverSublimationDraft:
    return replace(draft, items=draft.items + (AlloverSublimationItem(),))


def remove_item(draft: AlloverSublimationDraft, index: int) -> AlloverSublimationDraft:
    items = draft.items[:index] + draft.items[index + 1:]
    return replace(draft, items=items)


# =============================================================================
# TOTALS AND VALIDATION
# =============================================================================

def compute_totals(draft: AlloverSublimationDraft) -> AlloverSublimationTotals:
    total_amount = sum(item.amount for item in draft.items)
    total_mtr = sum(item.height * item.quantity for item in draft.items) / INCHES_PER_METER
    return AlloverSublimationTotals(
        total_amount=round_half_up(total_amount, 2),
        total_mtr=total_mtr,
    )


def validate(draft: AlloverSublimationDraft, fields: Optional[Mapping[str, Any]] = None) -> List[str]:
    """Return the reasons this draft cannot be saved (empty when valid)."""
    errors = []
    missing = [
        label for label, value in (
            ("Particulars", draft.particulars),
            ("Panna", draft.panna),
            ("Printer", draft.printer),
        ) if not value
    ]
    if missing:
        errors.append(f"Please fill all header fields ({', '.join(missing)})")
    if not draft.items:
        errors.append("At least one item is required")
    if draft.rate_per_meter < 0:
        errors.append("Rate per meter cannot be negative")
    for number, item in enumerate(draft.items, start=1):
        if item.height < 0 or item.quantity < 0 or item.rate < 0:
            errors.append(f"Item {number}: height, rate and quantity cannot be negative")
    return errors
