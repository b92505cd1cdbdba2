"""
Time and billing calculations.

Pure functions that turn worked milliseconds into billable hours and cost.
"""
from .calculator import (
    BillableResult,
    Invoice,
    build_invoice,
    compute_billable,
    round_billable_hours,
)

__all__ = [
    "BillableResult",
    "Invoice",
    "build_invoice",
    "compute_billable",
    "round_billable_hours",
]
