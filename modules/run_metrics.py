"""Billable quantity and amount read back from a saved run's values bag."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from core.numbers import to_number
from models.layouts import parse_items
from models.run import ProcessKind


# First non-zero key wins
_GENERIC_AMOUNT_KEYS = (
    "Total Amount",
    "totalAmount",
    "total_amount",
    "Estimated Amount",
    "Actual Total",
)
_GENERIC_QUANTITY_KEYS = ("Total Quantity", "totalQuantity", "total_quantity", "Quantity")


@dataclass(frozen=True)
class RunMetrics:
    quantity: float
    amount: float

    @property
    def rate_per_pc(self) -> float:
        return self.amount / self.quantity if self.quantity > 0 else 0.0


def _first(values: Mapping[str, Any], keys) -> float:
    for key in keys:
        number = to_number(values.get(key))
        if number:
            return number
    return 0.0


def run_billing_metrics(
    values: Optional[Mapping[str, Any]],
    process_kind: Optional[ProcessKind],
    order_quantity: float = 0,
) -> RunMetrics:
    """
    Work out how many billable units a run produced and what they cost.

    - Allover Sublimation: units are item quantities, amount is Total Amount
    - Sublimation: units are all four quantity columns, amount is totalAmount
    - DTF: units are layouts (order quantity when none), amount is Actual Total
    - anything else: generic total keys, falling back to order quantity
    """
    values = values or {}
    items = parse_items(values.get("items"))

    if process_kind == ProcessKind.ALLOVER_SUBLIMATION:
        quantity = sum(to_number(item.get("quantity")) for item in items)
        amount = _first(values, ("Total Amount", "total_amount"))
    elif process_kind == ProcessKind.SUBLIMATION:
        quantity = sum(
            to_number(q)
            for item in items
            for q in (item.get("quantities") or [])
        )
        amount = _first(values, ("totalAmount", "total_amount"))
    elif process_kind == ProcessKind.DTF:
        quantity = to_number(values.get("Total Layouts")) or to_number(order_quantity)
        amount = _first(values, ("Actual Total", "Total Amount"))
    else:
        quantity = _first(values, _GENERIC_QUANTITY_KEYS) or to_number(order_quantity)
        amount = _first(values, _GENERIC_AMOUNT_KEYS)

    return RunMetrics(quantity=quantity, amount=amount)
