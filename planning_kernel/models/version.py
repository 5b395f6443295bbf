"""
Module: planning_kernel.models.version
Responsibility: ORM persistence for plan versions ("Working Plan",
    "Stretch", ...).  A version isolates a full set of cell values over the
    shared hierarchy, measure and period catalogs.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Soft invariant: exactly one version has is_default=True.  Not
      transactionally enforced against concurrent default flips.
"""

from uuid import UUID

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import TrackedBase, UUIDString


class PlanVersion(TrackedBase):
    """An independent parallel plan."""

    __tablename__ = "versions"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        marker = " (default)" if self.is_default else ""
        return f"<PlanVersion {self.name}{marker}>"
