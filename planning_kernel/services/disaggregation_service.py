"""
DisaggregationService -- spread an edited parent value down to the leaves.

Responsibility:
    Given a value written at an interior hierarchy node, apportion it across
    the node's children, then each child's new value across its own
    children, until every descendant leaf has been written.

Architecture position:
    Kernel > Services -- imperative shell.  Reads current child values and
    weights through CellStore, delegates the arithmetic to
    ``planning_engines.spreading.apportion`` and writes the results back.
    Called by the edit orchestrator inside one ``session_scope``.

Invariants enforced:
    - Conservation at every level: the children of each spread node sum to
      the value the node received.
    - Children are processed in hierarchy sort order; the remainder lands
      on the last child.
    - The walk is an explicit stack, depth-first pre-order.
    - The edited measure is spread as a plain amount whatever its own
      aggregation policy.

Failure modes:
    - NodeNotFoundError / MeasureNotFoundError from the snapshot.
    - InvalidSpreadRequestError for an unknown mode or non-finite value.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from planning_engines.spreading import apportion
from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.clock import Clock
from planning_kernel.domain.dtos import CellAddress
from planning_kernel.domain.values import SpreadMode, to_decimal
from planning_kernel.exceptions import InvalidSpreadRequestError
from planning_kernel.logging_config import get_logger
from planning_kernel.models.cell import CellValue
from planning_kernel.services.base import BaseService
from planning_kernel.services.cell_store import CellStore

logger = get_logger("services.disaggregation")


class DisaggregationService(BaseService[CellValue]):
    """
    Transitive top-down spread.

    Contract:
        ``spread()`` writes every descendant of ``node_id`` for one
        (measure, period, version) and returns their ids in write order.
        The edited node itself is not written here.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._cells = CellStore(session, clock)

    def spread(
        self,
        node_id: UUID,
        measure_id: UUID,
        period_id: UUID,
        version_id: UUID,
        new_value: Decimal,
        mode: SpreadMode = SpreadMode.PROPORTIONAL,
        weight_measure_id: UUID | None = None,
        snapshot: CatalogSnapshot | None = None,
    ) -> list[UUID]:
        """
        Spread ``new_value`` from ``node_id`` to all of its descendants.

        Returns:
            Ids of every node written, in write order: each parent's
            children together, parents visited depth-first.  Empty when
            ``node_id`` is a leaf.
        """
        snapshot = self._snapshot(snapshot)
        snapshot.node(node_id)
        snapshot.measure(measure_id)
        snapshot.period(period_id)

        try:
            mode = SpreadMode(mode)
        except ValueError:
            raise InvalidSpreadRequestError(f"Unknown spread mode: {mode!r}") from None
        if mode == SpreadMode.WEIGHTED:
            if weight_measure_id is None:
                logger.info("spread_weighted_without_weight_measure", extra={
                    "measure_id": str(measure_id),
                })
                mode = SpreadMode.PROPORTIONAL
            else:
                snapshot.measure(weight_measure_id)

        try:
            amount = to_decimal(new_value)
        except ValueError as exc:
            raise InvalidSpreadRequestError(str(exc)) from exc
        if amount is None:
            raise InvalidSpreadRequestError("Cannot spread a null value")

        basis_measure_id = weight_measure_id if mode == SpreadMode.WEIGHTED else measure_id

        touched: list[UUID] = []
        fallbacks = 0
        stack: list[tuple[UUID, Decimal]] = [(node_id, amount)]
        while stack:
            parent_id, parent_value = stack.pop()
            children = snapshot.children_of(parent_id)
            if not children:
                continue

            child_ids = [c.id for c in children]
            shares = self._shares(child_ids, basis_measure_id, period_id, version_id, mode)
            result = apportion(amount=parent_value, shares=shares, mode=mode)
            if result.used_fallback:
                fallbacks += 1

            for child_id, allocated in zip(child_ids, result.allocations):
                self._cells.upsert(child_id, measure_id, period_id, version_id, allocated)
                touched.append(child_id)

            # Reverse push keeps the walk in sort order.
            stack.extend(reversed(list(zip(child_ids, result.allocations))))

        logger.info("spread_completed", extra={
            "node_id": str(node_id),
            "measure_id": str(measure_id),
            "period_id": str(period_id),
            "version_id": str(version_id),
            "mode": mode.value,
            "amount": str(amount),
            "touched_count": len(touched),
            "even_fallbacks": fallbacks,
        })
        return touched

    def _shares(
        self,
        child_ids: list[UUID],
        basis_measure_id: UUID,
        period_id: UUID,
        version_id: UUID,
        mode: SpreadMode,
    ) -> list[Decimal | None]:
        if mode == SpreadMode.EVEN:
            return [None] * len(child_ids)
        stored = self._cells.get_many(child_ids, [basis_measure_id], [period_id], version_id)
        return [
            stored.get(CellAddress(child_id, basis_measure_id, period_id))
            for child_id in child_ids
        ]
