"""
Core module for the production billing service.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- numbers: Lenient numeric parsing and rounding helpers
"""

from .exceptions import (
    ProductionBillingError,
    RunValidationError,
    BillingInputError,
    UnsupportedProcessKindError,
    NotFoundError,
    OrderNotFoundError,
    RunNotFoundError,
    BillingContextNotFoundError,
    BillingStateError,
    ContextFinalizedError,
    StaleSnapshotError,
    StaleRunError,
)
from .numbers import INCHES_PER_METER, to_number, round_half_up, safe_ratio

__all__ = [
    "ProductionBillingError",
    "RunValidationError",
    "BillingInputError",
    "UnsupportedProcessKindError",
    "NotFoundError",
    "OrderNotFoundError",
    "RunNotFoundError",
    "BillingContextNotFoundError",
    "BillingStateError",
    "ContextFinalizedError",
    "StaleSnapshotError",
    "StaleRunError",
    "INCHES_PER_METER",
    "to_number",
    "round_half_up",
    "safe_ratio",
]
