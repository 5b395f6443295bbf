"""
DTOs -- immutable data structures passed between kernel layers.

Responsibility:
    Catalog entries (nodes, periods, measures, versions), cell addressing,
    batch updates, and the grid snapshot returned to the host API layer.

Architecture position:
    Kernel > Domain -- zero I/O.  ``from_model()`` class methods are boundary
    converters invoked only by selectors; engines and services never see ORM
    entities of the catalog.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, NamedTuple
from uuid import UUID

from planning_kernel.domain.values import AggregationType, MeasureDataType

if TYPE_CHECKING:
    from planning_kernel.models.hierarchy import HierarchyNode as HierarchyNodeModel
    from planning_kernel.models.measure import Measure as MeasureModel
    from planning_kernel.models.time_period import TimePeriod as TimePeriodModel
    from planning_kernel.models.version import PlanVersion as PlanVersionModel


def cell_key(node_id: UUID, measure_id: UUID, period_id: UUID) -> str:
    """Grid payload key: ``"{nodeId}:{measureId}:{periodId}"``."""
    return f"{node_id}:{measure_id}:{period_id}"


class CellAddress(NamedTuple):
    """Version-less coordinates of a cell inside one version's slice."""

    node_id: UUID
    measure_id: UUID
    period_id: UUID


@dataclass(frozen=True)
class NodeInfo:
    """Read-only view of a hierarchy node."""

    id: UUID
    name: str
    level_id: UUID
    parent_id: UUID | None
    sort_order: int
    level_name: str | None = None

    @classmethod
    def from_model(
        cls, node: HierarchyNodeModel, level_name: str | None = None
    ) -> NodeInfo:
        return cls(
            id=node.id,
            name=node.name,
            level_id=node.level_id,
            parent_id=node.parent_id,
            sort_order=node.sort_order or 0,
            level_name=level_name,
        )


@dataclass(frozen=True)
class PeriodInfo:
    """Read-only view of a time period."""

    id: UUID
    label: str
    start_date: date
    end_date: date
    parent_id: UUID | None
    depth: int
    sort_order: int

    @classmethod
    def from_model(cls, period: TimePeriodModel) -> PeriodInfo:
        return cls(
            id=period.id,
            label=period.label,
            start_date=period.start_date,
            end_date=period.end_date,
            parent_id=period.parent_id,
            depth=period.depth,
            sort_order=period.sort_order or 0,
        )


@dataclass(frozen=True)
class MeasureInfo:
    """Read-only view of a measure and its rollup policy."""

    id: UUID
    name: str
    short_name: str
    aggregation_type: AggregationType
    data_type: MeasureDataType = MeasureDataType.CURRENCY
    is_editable: bool = True
    formula: str | None = None
    weight_measure_id: UUID | None = None
    sort_order: int = 0
    format_pattern: str | None = None

    @property
    def is_derived(self) -> bool:
        """True if the measure is computed from a formula."""
        return bool(self.formula and self.formula.strip())

    @classmethod
    def from_model(cls, measure: MeasureModel) -> MeasureInfo:
        return cls(
            id=measure.id,
            name=measure.name,
            short_name=measure.short_name,
            aggregation_type=AggregationType(measure.aggregation_type),
            data_type=MeasureDataType(measure.data_type),
            is_editable=bool(measure.is_editable),
            formula=measure.formula,
            weight_measure_id=measure.weight_measure_id,
            sort_order=measure.sort_order or 0,
            format_pattern=measure.format_pattern,
        )


@dataclass(frozen=True)
class VersionInfo:
    """Read-only view of a plan version."""

    id: UUID
    name: str
    is_default: bool

    @classmethod
    def from_model(cls, version: PlanVersionModel) -> VersionInfo:
        return cls(id=version.id, name=version.name, is_default=bool(version.is_default))


@dataclass(frozen=True)
class CellUpdate:
    """One raw value in a batch save."""

    node_id: UUID
    measure_id: UUID
    period_id: UUID
    value: Decimal | None


@dataclass(frozen=True)
class HierarchyTreeNode:
    """A node of the nested hierarchy returned in the grid payload."""

    node: NodeInfo
    children: tuple[HierarchyTreeNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.node.id),
            "name": self.node.name,
            "level_id": str(self.node.level_id),
            "level_name": self.node.level_name,
            "parent_id": str(self.node.parent_id) if self.node.parent_id else None,
            "sort_order": self.node.sort_order,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class PeriodTreeNode:
    """A node of the nested time-period tree returned in the grid payload."""

    period: PeriodInfo
    children: tuple[PeriodTreeNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.period.id),
            "label": self.period.label,
            "start_date": self.period.start_date.isoformat(),
            "end_date": self.period.end_date.isoformat(),
            "parent_id": str(self.period.parent_id) if self.period.parent_id else None,
            "depth": self.period.depth,
            "sort_order": self.period.sort_order,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class GridSnapshot:
    """
    Full grid payload, always re-read from storage.

    ``values`` maps ``cell_key(node, measure, period)`` to the stored value or
    None for every visible node x measure x visible period.
    """

    version: VersionInfo
    hierarchy: tuple[HierarchyTreeNode, ...]
    time_periods: tuple[PeriodTreeNode, ...]
    measures: tuple[MeasureInfo, ...]
    values: Mapping[str, Decimal | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def value_of(
        self, node_id: UUID, measure_id: UUID, period_id: UUID
    ) -> Decimal | None:
        """Value at a visible cell, or None."""
        return self.values.get(cell_key(node_id, measure_id, period_id))

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready payload (Decimals rendered as floats, like the grid UI expects)."""
        return {
            "version": {
                "id": str(self.version.id),
                "name": self.version.name,
                "is_default": self.version.is_default,
            },
            "hierarchy": [node.to_dict() for node in self.hierarchy],
            "timePeriods": [period.to_dict() for period in self.time_periods],
            "measures": [
                {
                    "id": str(m.id),
                    "name": m.name,
                    "short_name": m.short_name,
                    "data_type": m.data_type.value,
                    "is_editable": m.is_editable,
                    "formula": m.formula,
                    "aggregation_type": m.aggregation_type.value,
                    "weight_measure_id": str(m.weight_measure_id) if m.weight_measure_id else None,
                    "sort_order": m.sort_order,
                    "format_pattern": m.format_pattern,
                }
                for m in self.measures
            ],
            "values": {
                key: (float(value) if value is not None else None)
                for key, value in self.values.items()
            },
        }
