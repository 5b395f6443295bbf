"""Services for the planning kernel (write side, flush-only)."""

from planning_kernel.services.aggregation_service import AggregationService
from planning_kernel.services.cell_store import CellStore
from planning_kernel.services.disaggregation_service import DisaggregationService
from planning_kernel.services.formula_service import FormulaService

__all__ = [
    "CellStore",
    "DisaggregationService",
    "AggregationService",
    "FormulaService",
]
