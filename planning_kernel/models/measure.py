"""
Module: planning_kernel.models.measure
Responsibility: ORM persistence for the measure catalog (Sales $, COGS,
    Margin %, ...).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py.

Invariants enforced:
    - short_name is unique; it is the identifier formulas refer to.
    - aggregation_type is one of AggregationType; weight_measure_id is only
      read for WEIGHTED_AVG.

Non-goals:
    - "Formula measures are not user-editable" is a guard applied by the edit
      orchestrator through is_editable, not by this model.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import TrackedBase, UUIDString
from planning_kernel.domain.values import AggregationType, MeasureDataType


class Measure(TrackedBase):
    """A row of the planning grid: raw input measure or formula-derived."""

    __tablename__ = "measures"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    short_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    data_type: Mapped[MeasureDataType] = mapped_column(
        String(20),
        default=MeasureDataType.CURRENCY,
        nullable=False,
    )

    is_editable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Arithmetic expression over other measures' short names
    formula: Mapped[str | None] = mapped_column(Text, nullable=True)

    aggregation_type: Mapped[AggregationType] = mapped_column(
        String(20),
        default=AggregationType.SUM,
        nullable=False,
    )

    weight_measure_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("measures.id", ondelete="SET NULL"),
        nullable=True,
    )

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Display-only formatting hint, e.g. "$#,##0"
    format_pattern: Mapped[str | None] = mapped_column(String(50), nullable=True)

    @property
    def is_derived(self) -> bool:
        return bool(self.formula and self.formula.strip())

    def __repr__(self) -> str:
        return f"<Measure {self.short_name}>"
