"""
AggregationService -- upward rollup sweeps along both hierarchy axes.

Responsibility:
    ``aggregate_up`` recomputes every ancestor of a node from its children
    for one (measure, period, version); ``aggregate_time_up`` does the same
    along the period parent chain for one node.

Architecture position:
    Kernel > Services -- imperative shell.  Sibling values come from
    CellStore; the policy arithmetic lives in ``planning_engines.rollup``.
    Each sweep runs inside one caller-owned transaction.

Invariants enforced:
    - Strict upward sweep: only ancestors are written, never siblings or
      descendants.
    - The two axes are never combined in one traversal.
    - Node axis WEIGHTED_AVG reads the weight measure's sibling cells; the
      time axis never reads weights.
    - NONE measures are a no-op on both axes.
    - A cohort without values writes null at the parent, never zero.

Failure modes:
    - NodeNotFoundError / MeasureNotFoundError / TimePeriodNotFoundError
      from the snapshot.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from planning_engines.rollup import rolls_up, rollup_node, rollup_time
from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.clock import Clock
from planning_kernel.domain.dtos import CellAddress
from planning_kernel.domain.values import AggregationType
from planning_kernel.logging_config import get_logger
from planning_kernel.models.cell import CellValue
from planning_kernel.services.base import BaseService
from planning_kernel.services.cell_store import CellStore

logger = get_logger("services.aggregation")


class AggregationService(BaseService[CellValue]):
    """
    Bottom-up rollups.

    Contract:
        Both sweeps return the ids of the parents they wrote, nearest first.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._cells = CellStore(session, clock)

    def aggregate_up(
        self,
        node_id: UUID,
        measure_id: UUID,
        period_id: UUID,
        version_id: UUID,
        snapshot: CatalogSnapshot | None = None,
    ) -> list[UUID]:
        """Recompute every ancestor of ``node_id`` along the product hierarchy."""
        snapshot = self._snapshot(snapshot)
        measure = snapshot.measure(measure_id)
        snapshot.period(period_id)
        if not rolls_up(measure.aggregation_type):
            return []

        weight_measure_id = None
        if measure.aggregation_type == AggregationType.WEIGHTED_AVG:
            weight_measure_id = measure.weight_measure_id

        written: list[UUID] = []
        parent_id = snapshot.parent_of(node_id)
        while parent_id is not None:
            sibling_ids = [c.id for c in snapshot.children_of(parent_id)]
            values = self._values(sibling_ids, measure_id, period_id, version_id)
            weights = None
            if weight_measure_id is not None:
                weights = self._values(sibling_ids, weight_measure_id, period_id, version_id)

            aggregate = rollup_node(
                values=values,
                weights=weights,
                aggregation_type=measure.aggregation_type,
            )
            self._cells.upsert(parent_id, measure_id, period_id, version_id, aggregate)
            written.append(parent_id)
            parent_id = snapshot.parent_of(parent_id)

        logger.info("aggregate_up_completed", extra={
            "node_id": str(node_id),
            "measure_id": str(measure_id),
            "period_id": str(period_id),
            "version_id": str(version_id),
            "aggregation_type": measure.aggregation_type.value,
            "weighted": weight_measure_id is not None,
            "levels_written": len(written),
        })
        return written

    def aggregate_time_up(
        self,
        node_id: UUID,
        measure_id: UUID,
        period_id: UUID,
        version_id: UUID,
        snapshot: CatalogSnapshot | None = None,
    ) -> list[UUID]:
        """Recompute every ancestor period of ``period_id`` at ``node_id``."""
        snapshot = self._snapshot(snapshot)
        measure = snapshot.measure(measure_id)
        snapshot.node(node_id)
        if not rolls_up(measure.aggregation_type):
            return []

        written: list[UUID] = []
        parent_id = snapshot.parent_of_period(period_id)
        while parent_id is not None:
            sibling_ids = [p.id for p in snapshot.children_of_period(parent_id)]
            stored = self._cells.get_many([node_id], [measure_id], sibling_ids, version_id)
            values = [stored.get(CellAddress(node_id, measure_id, pid)) for pid in sibling_ids]

            aggregate = rollup_time(values=values, aggregation_type=measure.aggregation_type)
            self._cells.upsert(node_id, measure_id, parent_id, version_id, aggregate)
            written.append(parent_id)
            parent_id = snapshot.parent_of_period(parent_id)

        logger.info("aggregate_time_up_completed", extra={
            "node_id": str(node_id),
            "measure_id": str(measure_id),
            "period_id": str(period_id),
            "version_id": str(version_id),
            "aggregation_type": measure.aggregation_type.value,
            "levels_written": len(written),
        })
        return written

    def _values(
        self,
        node_ids: list[UUID],
        measure_id: UUID,
        period_id: UUID,
        version_id: UUID,
    ) -> list[Decimal | None]:
        stored = self._cells.get_many(node_ids, [measure_id], [period_id], version_id)
        return [stored.get(CellAddress(nid, measure_id, period_id)) for nid in node_ids]
