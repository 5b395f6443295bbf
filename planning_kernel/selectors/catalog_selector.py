"""
Module: planning_kernel.selectors.catalog_selector
Responsibility: Read-only access to the dimensional catalogs -- hierarchy,
    time periods, measures and versions -- and construction of the
    per-request CatalogSnapshot.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Ordered children: nodes by (sort_order, name), periods by
      (sort_order, start_date).  The same order is used by the snapshot.
    - Version resolution: an explicit id must exist; no id means the
      default version.  With several defaults flagged the oldest wins.

Failure modes:
    - NodeNotFoundError / TimePeriodNotFoundError for unknown ids passed to
      the provider methods.
    - VersionNotFoundError / NoDefaultVersionError from resolve_version().
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.dtos import MeasureInfo, NodeInfo, PeriodInfo, VersionInfo
from planning_kernel.exceptions import (
    NoDefaultVersionError,
    NodeNotFoundError,
    TimePeriodNotFoundError,
    VersionNotFoundError,
)
from planning_kernel.logging_config import get_logger
from planning_kernel.models.hierarchy import HierarchyLevel, HierarchyNode
from planning_kernel.models.measure import Measure
from planning_kernel.models.time_period import TimePeriod
from planning_kernel.models.version import PlanVersion
from planning_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.catalog")


class CatalogSelector(BaseSelector[HierarchyNode]):
    """
    Hierarchy provider, time provider, measure catalog provider and version
    resolver over one session.

    Non-goals:
        - Does not cache across calls; every call is a fresh read.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def load_snapshot(self) -> CatalogSnapshot:
        """Read every catalog table once and freeze the result."""
        level_names = dict(
            self.session.execute(select(HierarchyLevel.id, HierarchyLevel.name)).all()
        )
        nodes = [
            NodeInfo.from_model(n, level_names.get(n.level_id))
            for n in self.session.scalars(select(HierarchyNode))
        ]
        periods = [PeriodInfo.from_model(p) for p in self.session.scalars(select(TimePeriod))]
        measures = self.all_measures()
        versions = [VersionInfo.from_model(v) for v in self.session.scalars(select(PlanVersion))]

        snapshot = CatalogSnapshot(nodes, periods, measures, versions)
        logger.debug("catalog_snapshot_loaded", extra={
            "node_count": len(nodes),
            "period_count": len(periods),
            "measure_count": len(measures),
            "version_count": len(versions),
        })
        return snapshot

    # ------------------------------------------------------------------
    # Hierarchy provider
    # ------------------------------------------------------------------

    def children_of(self, node_id: UUID) -> list[NodeInfo]:
        """Direct children of a node, ordered by (sort_order, name)."""
        self._require_node(node_id)
        rows = self.session.scalars(
            select(HierarchyNode)
            .where(HierarchyNode.parent_id == node_id)
            .order_by(HierarchyNode.sort_order, HierarchyNode.name)
        )
        return [NodeInfo.from_model(n) for n in rows]

    def parent_of(self, node_id: UUID) -> UUID | None:
        return self._require_node(node_id).parent_id

    def _require_node(self, node_id: UUID) -> HierarchyNode:
        node = self.session.get(HierarchyNode, node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    # ------------------------------------------------------------------
    # Time provider
    # ------------------------------------------------------------------

    def children_of_period(self, period_id: UUID) -> list[PeriodInfo]:
        """Direct sub-periods, ordered by (sort_order, start_date)."""
        self._require_period(period_id)
        rows = self.session.scalars(
            select(TimePeriod)
            .where(TimePeriod.parent_id == period_id)
            .order_by(TimePeriod.sort_order, TimePeriod.start_date)
        )
        return [PeriodInfo.from_model(p) for p in rows]

    def parent_of_period(self, period_id: UUID) -> UUID | None:
        return self._require_period(period_id).parent_id

    def _require_period(self, period_id: UUID) -> TimePeriod:
        period = self.session.get(TimePeriod, period_id)
        if period is None:
            raise TimePeriodNotFoundError(period_id)
        return period

    # ------------------------------------------------------------------
    # Measure catalog provider
    # ------------------------------------------------------------------

    def all_measures(self) -> list[MeasureInfo]:
        rows = self.session.scalars(select(Measure).order_by(Measure.sort_order, Measure.name))
        return [MeasureInfo.from_model(m) for m in rows]

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def resolve_version(self, version_id: UUID | None = None) -> VersionInfo:
        """The requested version, or the default one when ``version_id`` is None."""
        if version_id is not None:
            version = self.session.get(PlanVersion, version_id)
            if version is None:
                raise VersionNotFoundError(version_id)
            return VersionInfo.from_model(version)

        version = self.session.scalars(
            select(PlanVersion)
            .where(PlanVersion.is_default.is_(True))
            .order_by(PlanVersion.created_at, PlanVersion.name)
            .limit(1)
        ).first()
        if version is None:
            raise NoDefaultVersionError()
        return VersionInfo.from_model(version)
