"""
Sublimation run costing.

Each item is one size printed at width x height, with four quantity
columns whose labels the operator chooses per run.

    sum      = q1 + q2 + q3 + q4
    row_rate = width x height x rate
    row_total = sum x row_rate

Run totals: per-column totals, total quantity, total amount, average rate
(total amount / total quantity, 0 with no quantity) and meters
(sum(height x sum) / 39.38).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, List, Mapping, Optional

from core.numbers import INCHES_PER_METER, safe_ratio, to_number, to_text
from models.layouts import SublimationDraft, SublimationItem, SublimationRow, SublimationTotals

COLUMN_COUNT = 4


def calculate_row(item: SublimationItem, rate: float) -> SublimationRow:
    quantity_sum = sum(item.quantities)
    row_rate = item.width * item.height * rate
    return SublimationRow(
        item=item,
        sum=quantity_sum,
        row_rate=row_rate,
        row_total=quantity_sum * row_rate,
    )


def compute_totals(draft: SublimationDraft) -> SublimationTotals:
    rows = tuple(calculate_row(item, draft.rate) for item in draft.items)

    col_totals = tuple(
        sum(row.item.quantities[k] for row in rows) for k in range(COLUMN_COUNT)
    )
    total_sum = sum(row.sum for row in rows)
    total_amount = sum(row.row_total for row in rows)

    return SublimationTotals(
        rows=rows,
        col_totals=col_totals,
        total_sum=total_sum,
        total_amount=total_amount,
        avg_rate=safe_ratio(total_amount, total_sum),
        total_meters=sum(row.item.height * row.sum for row in rows) / INCHES_PER_METER,
    )


# =============================================================================
# DRAFT EDITS
# =============================================================================

def set_rate(draft: SublimationDraft, value: Any) -> SublimationDraft:
    return replace(draft, rate=to_number(value))


def set_column_header(draft: SublimationDraft, column: int, label: Any) -> SublimationDraft:
    headers = list(draft.column_headers)
    headers[column] = to_text(label)
    return replace(draft, column_headers=tuple(headers))


def update_item(draft: SublimationDraft, index: int, **changes: Any) -> SublimationDraft:
    parsed = {
        name: to_text(value) if name == "size" else to_number(value)
        for name, value in changes.items()
    }
    items = list(draft.items)
    items[index] = replace(items[index], **parsed)
    return replace(draft, items=tuple(items))


def set_item_quantity(draft: SublimationDraft, index: int, column: int, value: Any) -> SublimationDraft:
    item = draft.items[index]
    quantities = list(item.quantities)
    quantities[column] = to_number(value)
    items = list(draft.items)
    items[index] = replace(item, quantities=tuple(quantities))
    return replace(draft, items=tuple(items))


def add_item(draft: SublimationDraft) -> SublimationDraft:
    return replace(draft, items=draft.items + (SublimationItem(),))


def remove_item(draft: SublimationDraft, index: int) -> SublimationDraft:
    return replace(draft, items=draft.items[:index] + draft.items[index + 1:])


# =============================================================================
# VALIDATION
# =============================================================================

def validate(draft: SublimationDraft, fields: Optional[Mapping[str, Any]] = None) -> List[str]:
    """
    Only the rate has to be present in the submitted fields.

    Column headers are free text and are never checked.
    """
    errors = []
    if fields is not None and fields.get("rate") in (None, ""):
        errors.append("Rate is required")
    if draft.rate < 0:
        errors.append("Rate cannot be negative")
    for number, item in enumerate(draft.items, start=1):
        if item.width < 0 or item.height < 0 or min(item.quantities) < 0:
            errors.append(f"Item {number}: width, height and quantities cannot be negative")
    return errors
