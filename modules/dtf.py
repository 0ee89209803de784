"""
DTF (direct-to-film) run costing.

Designs are laid out on film of fixed width 23 (inches, same unit as the
item height). Per item:

    quantity_required = quantity_actual - from_other
    number_of_layouts = ceil(quantity_required / pcs_per_layout)   (0 if no pcs_per_layout)
    area              = 23 x height
    price_per_layout  = rate x area
    row_total         = number_of_layouts x price_per_layout

Run totals:

    total_meter  = sum(height x number_of_layouts) / 39.38
    actual_meter = 23 x 39.38 x rate x total_meter
    efficiency   = 100 - (actual_meter - layout_total) / layout_total x 100   (0 if no layout total)
    fusing_cost  = 5 x 2 x (custom_pcs if job difference else pcs)           (0 without fusing)
    actual_total = max(layout_total, actual_meter) + fusing_cost
    per_pc_cost  = actual_total / pcs                                          (0 if no pcs)
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Any, List, Mapping, Optional

from core.numbers import INCHES_PER_METER, to_bool, to_number, to_text
from models.layouts import DTFDraft, DTFItem, DTFRow, DTFTotals
from logging_config import get_logger


logger = get_logger(__name__)

LAYOUT_WIDTH = 23
FUSING_RATE_PER_PIECE = 5
FUSING_PASSES = 2

_NUMERIC_HEADER_FIELDS = ("pcs", "custom_pcs", "rate")
_TEXT_HEADER_FIELDS = ("particulars",)


def calculate_row(item: DTFItem, rate: float) -> DTFRow:
    quantity_required = item.quantity_actual - item.from_other
    if item.pcs_per_layout > 0:
        number_of_layouts = math.ceil(quantity_required / item.pcs_per_layout)
    else:
        number_of_layouts = 0
    area = LAYOUT_WIDTH * item.height
    price_per_layout = rate * area
    return DTFRow(
        item=item,
        quantity_required=quantity_required,
        number_of_layouts=number_of_layouts,
        area=area,
        price_per_layout=price_per_layout,
        row_total=number_of_layouts * price_per_layout,
    )


def fusing_cost(draft: DTFDraft) -> float:
    if not draft.is_fusing:
        return 0.0
    pieces = draft.custom_pcs if draft.is_job_difference else draft.pcs
    return FUSING_RATE_PER_PIECE * FUSING_PASSES * pieces


def compute_totals(draft: DTFDraft) -> DTFTotals:
    rows = tuple(calculate_row(item, draft.rate) for item in draft.items)

    total_layouts = sum(row.number_of_layouts for row in rows)
    total_area = sum(row.area for row in rows)
    layout_total_amount = sum(row.row_total for row in rows)

    total_meter = sum(row.item.height * row.number_of_layouts for row in rows) / INCHES_PER_METER
    actual_meter = LAYOUT_WIDTH * INCHES_PER_METER * draft.rate * total_meter

    if layout_total_amount > 0:
        efficiency = 100 - ((actual_meter - layout_total_amount) / layout_total_amount * 100)
    else:
        efficiency = 0.0

    fusing = fusing_cost(draft)
    actual_total = max(layout_total_amount, actual_meter) + fusing

    totals = DTFTotals(
        rows=rows,
        total_layouts=total_layouts,
        total_area=total_area,
        layout_total_amount=layout_total_amount,
        total_meter=total_meter,
        actual_meter=actual_meter,
        efficiency=efficiency,
        fusing_cost=fusing,
        actual_total=actual_total,
        per_pc_cost=actual_total / draft.pcs if draft.pcs > 0 else 0.0,
    )
    logger.debug(
        f"DTF totals: layouts={total_layouts}, layout_amount={layout_total_amount:.2f}, "
        f"actual_meter={actual_meter:.2f}, actual_total={actual_total:.2f}"
    )
    return totals


# =============================================================================
# DRAFT EDITS
# =============================================================================

def set_header(draft: DTFDraft, field_name: str, value: Any) -> DTFDraft:
    if field_name in _NUMERIC_HEADER_FIELDS:
        return replace(draft, **{field_name: to_number(value)})
    if field_name in _TEXT_HEADER_FIELDS:
        return replace(draft, **{field_name: to_text(value)})
    if field_name == "is_fusing":
        is_fusing = to_bool(value)
        # Job difference only applies while fusing is on
        return replace(
            draft,
            is_fusing=is_fusing,
            is_job_difference=draft.is_job_difference and is_fusing,
        )
    if field_name == "is_job_difference":
        return replace(draft, is_job_difference=draft.is_fusing and to_bool(value))
    raise ValueError(f"Unknown DTF header field: {field_name}")


def update_item(draft: DTFDraft, index: int, **changes: Any) -> DTFDraft:
    item = draft.items[index]
    parsed = {
        name: to_text(value) if name == "particulars" else to_number(value)
        for name, value in changes.items()
    }
    items = list(draft.items)
    items[index] = replace(item, **parsed)
    return replace(draft, items=tuple(items))


def add_item(draft: DTFDraft) -> DTFDraft:
    return replace(draft, items=draft.items + (DTFItem(),))


def remove_item(draft: DTFDraft, index: int) -> DTFDraft:
    return replace(draft, items=draft.items[:index] + draft.items[index + 1:])


# =============================================================================
# VALIDATION
# =============================================================================

def validate(draft: DTFDraft, fields: Optional[Mapping[str, Any]] = None) -> List[str]:
    errors = []
    if not draft.particulars:
        errors.append("Particulars is required")
    if draft.pcs <= 0:
        errors.append("PCS must be greater than 0")
    if draft.rate < 0 or draft.custom_pcs < 0:
        errors.append("Rate and custom PCS cannot be negative")
    for number, item in enumerate(draft.items, start=1):
        if min(item.height, item.pcs_per_layout, item.quantity_actual, item.from_other) < 0:
            errors.append(f"Item {number}: quantities and height cannot be negative")
        elif item.from_other > item.quantity_actual:
            errors.append(
                f"Item {number}: from other ({item.from_other:g}) exceeds "
                f"actual quantity ({item.quantity_actual:g})"
            )
    return errors
