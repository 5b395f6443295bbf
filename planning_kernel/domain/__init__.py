"""Kernel domain layer: value enums, DTOs, the catalog snapshot and the clock."""

from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from planning_kernel.domain.dtos import (
    CellAddress,
    CellUpdate,
    GridSnapshot,
    HierarchyTreeNode,
    MeasureInfo,
    NodeInfo,
    PeriodInfo,
    PeriodTreeNode,
    VersionInfo,
    cell_key,
)
from planning_kernel.domain.values import (
    AggregationType,
    MeasureDataType,
    SpreadMode,
    to_decimal,
)

__all__ = [
    "AggregationType",
    "MeasureDataType",
    "SpreadMode",
    "to_decimal",
    "CatalogSnapshot",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "CellAddress",
    "CellUpdate",
    "GridSnapshot",
    "HierarchyTreeNode",
    "PeriodTreeNode",
    "NodeInfo",
    "PeriodInfo",
    "MeasureInfo",
    "VersionInfo",
    "cell_key",
]
