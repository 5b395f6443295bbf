"""
Module: planning_kernel.models.hierarchy
Responsibility: ORM persistence for the product/location hierarchy: levels
    (Department, Category, ...) and the nodes that form the planning tree.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - parent_id references an existing node; deleting a node cascades to its
      subtree and to its cells.
    - Children are ordered by (sort_order, name); that order decides which
      child absorbs the rounding remainder during a spread.

Non-goals:
    - Cycle prevention and "child level = parent level + 1" are
      administrative checks and are not enforced here.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import TrackedBase, UUIDString


class HierarchyLevel(TrackedBase):
    """A named depth of the hierarchy (0 = top)."""

    __tablename__ = "hierarchy_levels"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    depth: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        unique=True,
    )

    def __repr__(self) -> str:
        return f"<HierarchyLevel {self.depth}:{self.name}>"


class HierarchyNode(TrackedBase):
    """
    One node of the planning hierarchy.

    A node with parent_id NULL is a root; a node with no children is a leaf.
    """

    __tablename__ = "hierarchy_nodes"

    __table_args__ = (
        Index("idx_nodes_parent", "parent_id"),
        Index("idx_nodes_level", "level_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    level_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("hierarchy_levels.id"),
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("hierarchy_nodes.id", ondelete="CASCADE"),
        nullable=True,
    )

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def __repr__(self) -> str:
        return f"<HierarchyNode {self.name}>"
