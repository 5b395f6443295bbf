"""
planning_services._edit_types -- Cell edit DTOs for the edit orchestrator.

Responsibility:
    Stage enum, request and result types for one planner edit.

Architecture position:
    Services -- orchestration over engines + kernel.  These types live here
    because the orchestrator that produces and consumes them lives here.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - ``EditStage`` order is the pipeline order.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from planning_kernel.domain.dtos import GridSnapshot
from planning_kernel.domain.values import SpreadMode


class EditStage(str, Enum):
    """Independently committing stages of one cell edit."""
    SAVE = "save"
    DISAGGREGATE = "disaggregate"
    RECALC = "recalc"
    AGGREGATE_NODE = "aggregate_node"
    AGGREGATE_TIME = "aggregate_time"
    RELOAD = "reload"


@dataclass(frozen=True)
class CellEditRequest:
    """One planner edit as received from the host API layer."""
    node_id: UUID
    measure_id: UUID
    period_id: UUID
    new_value: Decimal | None
    version_id: UUID | None = None
    spread_mode: SpreadMode = SpreadMode.PROPORTIONAL
    weight_measure_id: UUID | None = None
    editor_id: UUID | None = None


@dataclass(frozen=True)
class CellEditResult:
    """Outcome of a completed edit pipeline."""
    snapshot: GridSnapshot
    completed_stages: tuple[EditStage, ...]
    disaggregated: bool
    touched_node_ids: tuple[UUID, ...] = ()
    correlation_id: str | None = None

    @property
    def version_id(self) -> UUID:
        return self.snapshot.version.id
