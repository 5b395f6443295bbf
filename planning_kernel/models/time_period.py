"""
Module: planning_kernel.models.time_period
Responsibility: ORM persistence for the time-period tree (year -> quarter ->
    month, or any calendar the administration generates).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - depth 0 is the coarsest level; children sit at parent.depth + 1.
    - Sibling order is (sort_order, start_date).

Non-goals:
    - Containment of child date ranges inside the parent and calendar
      generation belong to the administrative layer.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import TrackedBase, UUIDString


class TimePeriod(TrackedBase):
    """A planning period; parent_id NULL marks the top of a calendar."""

    __tablename__ = "time_periods"

    __table_args__ = (
        Index("idx_time_periods_parent", "parent_id"),
        Index("idx_time_periods_depth", "depth"),
    )

    label: Mapped[str] = mapped_column(String(50), nullable=False)

    # Boundaries (inclusive)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("time_periods.id", ondelete="CASCADE"),
        nullable=True,
    )

    depth: Mapped[int] = mapped_column(Integer, nullable=False)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def contains_date(self, check_date: date) -> bool:
        """Check if a date falls within this period."""
        return self.start_date <= check_date <= self.end_date

    def __repr__(self) -> str:
        return f"<TimePeriod {self.label} d={self.depth}>"
