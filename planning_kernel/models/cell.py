"""
Module: planning_kernel.models.cell
Responsibility: ORM persistence for the cell fact table -- one numeric value
    per (node, measure, period, version).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (node_id, measure_id, time_period_id, version_id) is unique
      (uq_cell_key); rows are created on first write (upsert) and updated in
      place afterwards.  The cube is never pre-allocated.
    - A missing row means "no value"; a row whose value is NULL is a stored
      null.  Both read as null in the grid, but only the latter is counted as
      a sibling with a null value by the rollups.
    - Deleting a node, measure or period cascades to its cells.

Audit relevance:
    updated_by_id / updated_at (TrackedBase) are the only edit history kept.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import TrackedBase, UUIDString


class CellValue(TrackedBase):
    """A single planning grid cell."""

    __tablename__ = "cell_values"

    __table_args__ = (
        UniqueConstraint(
            "node_id", "measure_id", "time_period_id", "version_id",
            name="uq_cell_key",
        ),
        Index("idx_cell_values_node", "node_id"),
        Index("idx_cell_values_version", "version_id"),
        Index("idx_cell_values_slice", "measure_id", "time_period_id", "version_id"),
    )

    node_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("hierarchy_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )

    measure_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("measures.id", ondelete="CASCADE"),
        nullable=False,
    )

    time_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("time_periods.id", ondelete="CASCADE"),
        nullable=False,
    )

    version_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("versions.id", ondelete="CASCADE"),
        nullable=False,
    )

    value: Mapped[Decimal | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CellValue {self.node_id}:{self.measure_id}:"
            f"{self.time_period_id}@{self.version_id}={self.value}>"
        )
