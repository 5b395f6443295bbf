"""ORM models for the planning kernel."""

from planning_kernel.models.cell import CellValue
from planning_kernel.models.hierarchy import HierarchyLevel, HierarchyNode
from planning_kernel.models.measure import Measure
from planning_kernel.models.time_period import TimePeriod
from planning_kernel.models.version import PlanVersion

__all__ = [
    "HierarchyLevel",
    "HierarchyNode",
    "TimePeriod",
    "Measure",
    "PlanVersion",
    "CellValue",
]
