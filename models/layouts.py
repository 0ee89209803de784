"""
Layout row and working-draft models, one set per process kind.

Each process kind has:
    - an item class (one row of user-entered geometry / quantities)
    - a draft class (header fields + items) used as the run's working copy
    - a totals class (run-level summary produced by the calculator)

Drafts and items are frozen. Every edit builds a new draft, and a save
commits the whole draft at once, so a half-applied edit can never be
persisted.

Values-bag keys follow the persisted run record (camelCase item fields,
``rate_per_meter`` for Allover Sublimation, spaced summary keys such as
``Total Amount``).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Tuple

from core.numbers import round_half_up, to_bool, to_number, to_text
from models.run import ProcessKind


def parse_items(raw: Any) -> List[Dict[str, Any]]:
    """
    Read the ``items`` entry of a values bag.

    Older records stored items as a JSON string; anything unreadable is
    treated as no items.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


# =============================================================================
# ALLOVER SUBLIMATION
# =============================================================================

@dataclass(frozen=True)
class AlloverSublimationItem:
    """One printed design on an allover roll."""

    design: str = ""
    height: float = 0.0
    rate: float = 0.0
    """Per-piece rate, derived from height and the run's rate per meter."""

    quantity: float = 0.0
    amount: float = 0.0
    """rate x quantity, rounded to 2 decimals."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "design": self.design,
            "height": self.height,
            "rate": self.rate,
            "quantity": self.quantity,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlloverSublimationItem":
        return cls(
            design=to_text(data.get("design")),
            height=to_number(data.get("height")),
            rate=to_number(data.get("rate")),
            quantity=to_number(data.get("quantity")),
            amount=to_number(data.get("amount")),
        )


@dataclass(frozen=True)
class AlloverSublimationDraft:
    """Working copy of an Allover Sublimation run."""

    process_kind: ClassVar[ProcessKind] = ProcessKind.ALLOVER_SUBLIMATION

    particulars: str = ""
    panna: str = ""
    """Fabric width."""

    rate_per_meter: float = 0.0
    printer: str = ""
    items: Tuple[AlloverSublimationItem, ...] = ()

    def to_values(self) -> Dict[str, Any]:
        """Raw inputs in values-bag form."""
        return {
            "particulars": self.particulars,
            "panna": self.panna,
            "rate_per_meter": self.rate_per_meter,
            "printer": self.printer,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_values(cls, values: Dict[str, Any]) -> "AlloverSublimationDraft":
        # Accept both the stored key and the form field name
        rate_per_meter = values.get("rate_per_meter", values.get("ratePerMeter"))
        return cls(
            particulars=to_text(values.get("particulars")),
            panna=to_text(values.get("panna")),
            rate_per_meter=to_number(rate_per_meter),
            printer=to_text(values.get("printer")),
            items=tuple(
                AlloverSublimationItem.from_dict(item)
                for item in parse_items(values.get("items"))
            ),
        )


@dataclass(frozen=True)
class AlloverSublimationTotals:
    total_amount: float
    total_mtr: float

    def summary_fields(self) -> Dict[str, Any]:
        return {
            "Total Amount": self.total_amount,
            "Total Mtr": round_half_up(self.total_mtr, 2),
            "Estimated Amount": self.total_amount,
        }


# =============================================================================
# DTF
# =============================================================================

@dataclass(frozen=True)
class DTFItem:
    """One transfer design laid out on the fixed-width DTF film."""

    particulars: str = ""
    height: float = 0.0
    pcs_per_layout: float = 0.0
    quantity_actual: float = 0.0
    adjustment: float = 0.0
    from_other: float = 0.0
    """Pieces covered by another run's layouts."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "particulars": self.particulars,
            "height": self.height,
            "pcsPerLayout": self.pcs_per_layout,
            "quantityActual": self.quantity_actual,
            "adjustment": self.adjustment,
            "fromOther": self.from_other,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DTFItem":
        return cls(
            particulars=to_text(data.get("particulars")),
            height=to_number(data.get("height")),
            pcs_per_layout=to_number(data.get("pcsPerLayout")),
            quantity_actual=to_number(data.get("quantityActual")),
            adjustment=to_number(data.get("adjustment")),
            from_other=to_number(data.get("fromOther")),
        )


@dataclass(frozen=True)
class DTFRow:
    """A DTF item with its derived layout figures."""

    item: DTFItem
    quantity_required: float
    number_of_layouts: int
    area: float
    price_per_layout: float
    row_total: float

    def to_dict(self) -> Dict[str, Any]:
        data = self.item.to_dict()
        data.update({
            "quantityRequired": self.quantity_required,
            "numberOfLayouts": self.number_of_layouts,
            "area": self.area,
            "pricePerLayout": self.price_per_layout,
            "rowTotal": self.row_total,
        })
        return data


@dataclass(frozen=True)
class DTFDraft:
    """Working copy of a DTF run."""

    process_kind: ClassVar[ProcessKind] = ProcessKind.DTF

    particulars: str = ""
    pcs: float = 0.0
    """Planned pieces."""

    is_fusing: bool = False
    is_job_difference: bool = False
    """Only meaningful with is_fusing: charge fusing on custom_pcs instead of pcs."""

    custom_pcs: float = 0.0
    rate: float = 0.0
    """Price per square unit of film."""

    items: Tuple[DTFItem, ...] = ()

    def to_values(self) -> Dict[str, Any]:
        return {
            "particulars": self.particulars,
            "pcs": self.pcs,
            "isFusing": self.is_fusing,
            "isJobDifference": self.is_job_difference,
            "customPcs": self.custom_pcs,
            "rate": self.rate,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_values(cls, values: Dict[str, Any]) -> "DTFDraft":
        is_fusing = to_bool(values.get("isFusing"))
        return cls(
            particulars=to_text(values.get("particulars")),
            pcs=to_number(values.get("pcs")),
            is_fusing=is_fusing,
            is_job_difference=is_fusing and to_bool(values.get("isJobDifference")),
            custom_pcs=to_number(values.get("customPcs")),
            rate=to_number(values.get("rate")),
            items=tuple(DTFItem.from_dict(item) for item in parse_items(values.get("items"))),
        )


@dataclass(frozen=True)
class DTFTotals:
    rows: Tuple[DTFRow, ...]
    total_layouts: int
    total_area: float
    layout_total_amount: float
    total_meter: float
    actual_meter: float
    efficiency: float
    fusing_cost: float
    actual_total: float
    per_pc_cost: float

    def summary_fields(self) -> Dict[str, Any]:
        # Stored figures are rounded; the in-memory totals keep full precision
        actual_total = round_half_up(self.actual_total, 2)
        return {
            "Total Layouts": self.total_layouts,
            "Total Area": round_half_up(self.total_area, 2),
            "Total Mtr": round_half_up(self.total_meter, 2),
            "Layout Amount": round_half_up(self.layout_total_amount, 2),
            "Actual Meter Cost": round_half_up(self.actual_meter, 2),
            "Efficiency %": round_half_up(self.efficiency, 2),
            "Fusing Cost": round_half_up(self.fusing_cost, 2),
            "Actual Total": actual_total,
            "Per PC Cost": round_half_up(self.per_pc_cost, 2),
            "Estimated Amount": actual_total,
        }


# =============================================================================
# SUBLIMATION
# =============================================================================

DEFAULT_COLUMN_HEADERS: Tuple[str, str, str, str] = ("Col 1", "Col 2", "Col 3", "Col 4")


def _parse_quantities(raw: Any) -> Tuple[float, float, float, float]:
    values = list(raw) if isinstance(raw, (list, tuple)) else []
    values = (values + [0, 0, 0, 0])[:4]
    return tuple(to_number(v) for v in values)  # type: ignore[return-value]


def _parse_headers(raw: Any) -> Tuple[str, str, str, str]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return DEFAULT_COLUMN_HEADERS
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        return DEFAULT_COLUMN_HEADERS
    return tuple(to_text(h) for h in raw)  # type: ignore[return-value]


@dataclass(frozen=True)
class SublimationItem:
    """One garment size with four quantity columns."""

    size: str = ""
    width: float = 0.0
    height: float = 0.0
    quantities: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "width": self.width,
            "height": self.height,
            "quantities": list(self.quantities),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SublimationItem":
        return cls(
            size=to_text(data.get("size")),
            width=to_number(data.get("width")),
            height=to_number(data.get("height")),
            quantities=_parse_quantities(data.get("quantities")),
        )


@dataclass(frozen=True)
class SublimationRow:
    item: SublimationItem
    sum: float
    row_rate: float
    row_total: float

    def to_dict(self) -> Dict[str, Any]:
        data = self.item.to_dict()
        data.update({
            "sum": self.sum,
            "rowRate": self.row_rate,
            "rowTotal": self.row_total,
        })
        return data


@dataclass(frozen=True)
class SublimationDraft:
    """
    Working copy of a Sublimation run.

    Column headers are free text carried alongside the data; they are not
    checked against any vocabulary.
    """

    process_kind: ClassVar[ProcessKind] = ProcessKind.SUBLIMATION

    rate: float = 0.0
    column_headers: Tuple[str, str, str, str] = DEFAULT_COLUMN_HEADERS
    items: Tuple[SublimationItem, ...] = field(default_factory=tuple)

    def to_values(self) -> Dict[str, Any]:
        return {
            "rate": self.rate,
            "columnHeaders": list(self.column_headers),
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_values(cls, values: Dict[str, Any]) -> "SublimationDraft":
        return cls(
            rate=to_number(values.get("rate")),
            column_headers=_parse_headers(values.get("columnHeaders")),
            items=tuple(
                SublimationItem.from_dict(item) for item in parse_items(values.get("items"))
            ),
        )


@dataclass(frozen=True)
class SublimationTotals:
    rows: Tuple[SublimationRow, ...]
    col_totals: Tuple[float, float, float, float]
    total_sum: float
    total_amount: float
    avg_rate: float
    total_meters: float

    def summary_fields(self) -> Dict[str, Any]:
        total_amount = round_half_up(self.total_amount, 2)
        return {
            "totalQuantity": self.total_sum,
            "totalAmount": total_amount,
            "avgRate": round_half_up(self.avg_rate, 4),
            "totalMeters": round_half_up(self.total_meters, 2),
            "totals": list(self.col_totals),
            "Estimated Amount": total_amount,
        }
