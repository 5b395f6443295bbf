"""
Module: planning_kernel.selectors.grid_selector
Responsibility: Rebuild the full grid payload (hierarchy subtree, period
    tree, measure list, version and value map) from persisted state.
Architecture position: Kernel > Selectors.  Used by the edit orchestrator's
    reload stage and by any read-only host endpoint.

Invariants enforced:
    - The payload is always a fresh read of storage; nothing is echoed from
      an in-memory computation.
    - The value map is dense: every visible node x measure x visible period
      key is present, holding None for absent cells and stored nulls.

Failure modes:
    - VersionNotFoundError / NoDefaultVersionError from version resolution.
    - NodeNotFoundError for an unknown ``root_node_id``.
    - TimePeriodNotFoundError for an unknown id in ``period_ids``.
"""

from collections.abc import Iterable, Iterator
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.dtos import GridSnapshot, cell_key
from planning_kernel.logging_config import get_logger
from planning_kernel.models.cell import CellValue
from planning_kernel.selectors.base import BaseSelector
from planning_kernel.selectors.catalog_selector import CatalogSelector

logger = get_logger("selectors.grid")

# Keeps IN (...) lists under SQLite's bound-parameter limit.
_IN_CHUNK = 500


def _walk(trees: Iterable) -> Iterator:
    """Pre-order walk over nested tree DTOs."""
    stack = list(reversed(tuple(trees)))
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _chunks(ids: list[UUID]) -> Iterator[list[UUID]]:
    for start in range(0, len(ids), _IN_CHUNK):
        yield ids[start:start + _IN_CHUNK]


class GridSelector(BaseSelector[CellValue]):
    """Grid payload reconstruction."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._catalog = CatalogSelector(session)

    def load_grid(
        self,
        version_id: UUID | None = None,
        root_node_id: UUID | None = None,
        depth: int | None = None,
        period_ids: Iterable[UUID] | None = None,
        snapshot: CatalogSnapshot | None = None,
    ) -> GridSnapshot:
        """
        Read the grid for one version.

        Args:
            version_id: Version to read; None selects the default version.
            root_node_id: Restrict the hierarchy to this subtree.
            depth: Levels shown below the root(s); None shows everything.
            period_ids: Restrict the period tree to these periods.
            snapshot: Catalog snapshot to reuse; loaded when omitted.
        """
        version = self._catalog.resolve_version(version_id)
        if snapshot is None:
            snapshot = self._catalog.load_snapshot()

        hierarchy = snapshot.hierarchy_tree(root_node_id, depth)
        time_periods = snapshot.period_tree(period_ids)
        measures = snapshot.measures

        node_ids = [t.node.id for t in _walk(hierarchy)]
        visible_periods = [t.period.id for t in _walk(time_periods)]

        stored = self._stored_values(version.id, node_ids, set(visible_periods))

        values: dict[str, Decimal | None] = {}
        for node_id in node_ids:
            for measure in measures:
                for period_id in visible_periods:
                    key = cell_key(node_id, measure.id, period_id)
                    values[key] = stored.get(key)

        logger.info("grid_loaded", extra={
            "version_id": str(version.id),
            "node_count": len(node_ids),
            "period_count": len(visible_periods),
            "measure_count": len(measures),
            "stored_cell_count": len(stored),
        })

        return GridSnapshot(
            version=version,
            hierarchy=hierarchy,
            time_periods=time_periods,
            measures=measures,
            values=values,
        )

    def _stored_values(
        self,
        version_id: UUID,
        node_ids: list[UUID],
        period_ids: set[UUID],
    ) -> dict[str, Decimal | None]:
        stored: dict[str, Decimal | None] = {}
        for chunk in _chunks(node_ids):
            rows = self.session.execute(
                select(
                    CellValue.node_id,
                    CellValue.measure_id,
                    CellValue.time_period_id,
                    CellValue.value,
                ).where(
                    CellValue.version_id == version_id,
                    CellValue.node_id.in_(chunk),
                )
            )
            for node_id, measure_id, period_id, value in rows:
                if period_id in period_ids:
                    stored[cell_key(node_id, measure_id, period_id)] = value
        return stored
