"""Costing calculators for the production billing service."""

__all__ = [
    "allover_sublimation",
    "calculators",
    "dtf",
    "run_metrics",
    "sublimation",
]
