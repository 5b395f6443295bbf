"""
CatalogSnapshot -- immutable per-request view of the dimensional catalogs.

Responsibility:
    Holds the hierarchy tree, the time-period tree, the measure catalog and
    the versions as id-indexed maps plus ordered child lists, so the engines
    walk structure without further storage round trips and without holding
    long-lived trees that drift from the database.

Architecture position:
    Kernel > Domain -- zero I/O.  Built by CatalogSelector.load_snapshot()
    at the start of each pipeline invocation.

Invariants enforced:
    - Child order is the declared sort order: nodes by (sort_order, name),
      periods by (sort_order, start_date).  The spread remainder rule depends
      on it.
    - Every traversal is iterative (explicit stack), so arbitrarily deep
      synthetic hierarchies do not hit the recursion limit.

Failure modes:
    - NodeNotFoundError / TimePeriodNotFoundError / MeasureNotFoundError /
      VersionNotFoundError on unknown ids.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from types import MappingProxyType
from uuid import UUID

from planning_kernel.domain.dtos import (
    HierarchyTreeNode,
    MeasureInfo,
    NodeInfo,
    PeriodInfo,
    PeriodTreeNode,
    VersionInfo,
)
from planning_kernel.exceptions import (
    MeasureNotFoundError,
    NodeNotFoundError,
    TimePeriodNotFoundError,
    VersionNotFoundError,
)


def _group_children(items, parent_of, sort_key) -> dict[UUID | None, tuple[UUID, ...]]:
    grouped: dict[UUID | None, list] = {}
    for item in items:
        grouped.setdefault(parent_of(item), []).append(item)
    return {
        parent: tuple(item.id for item in sorted(children, key=sort_key))
        for parent, children in grouped.items()
    }


class CatalogSnapshot:
    """
    Read-mostly reference data for one pipeline invocation.

    Contract:
        Constructed from DTO iterables; never mutated afterwards.
    Guarantees:
        - children_of / children_of_period return ordered tuples.
        - Nodes or periods whose parent is absent from the snapshot are
          treated as roots of the snapshot.
    """

    def __init__(
        self,
        nodes: Iterable[NodeInfo],
        periods: Iterable[PeriodInfo],
        measures: Iterable[MeasureInfo],
        versions: Iterable[VersionInfo] = (),
    ):
        self._nodes = MappingProxyType({n.id: n for n in nodes})
        self._periods = MappingProxyType({p.id: p for p in periods})
        self._measures = MappingProxyType({m.id: m for m in measures})
        self._versions = MappingProxyType({v.id: v for v in versions})

        self._node_children = _group_children(
            self._nodes.values(),
            lambda n: n.parent_id if n.parent_id in self._nodes else None,
            lambda n: (n.sort_order, n.name),
        )
        self._period_children = _group_children(
            self._periods.values(),
            lambda p: p.parent_id if p.parent_id in self._periods else None,
            lambda p: (p.sort_order, p.start_date),
        )
        self._ordered_measures = tuple(
            sorted(self._measures.values(), key=lambda m: (m.sort_order, m.name))
        )
        self._by_short_name = MappingProxyType(
            {m.short_name: m for m in self._ordered_measures}
        )

    # ------------------------------------------------------------------
    # Hierarchy provider
    # ------------------------------------------------------------------

    def node(self, node_id: UUID) -> NodeInfo:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def node_by_name(self, name: str) -> NodeInfo:
        """First node called ``name`` in hierarchy order."""
        for node_id in self._walk_nodes():
            if self._nodes[node_id].name == name:
                return self._nodes[node_id]
        raise NodeNotFoundError(name)

    def children_of(self, node_id: UUID) -> tuple[NodeInfo, ...]:
        """Direct children of a node in declared sort order."""
        self.node(node_id)
        return tuple(self._nodes[c] for c in self._node_children.get(node_id, ()))

    def parent_of(self, node_id: UUID) -> UUID | None:
        """Parent id, or None when ``node_id`` is a root."""
        parent_id = self.node(node_id).parent_id
        return parent_id if parent_id in self._nodes else None

    def has_children(self, node_id: UUID) -> bool:
        return bool(self._node_children.get(node_id))

    def root_nodes(self) -> tuple[NodeInfo, ...]:
        return tuple(self._nodes[c] for c in self._node_children.get(None, ()))

    def descendants_of(self, node_id: UUID) -> tuple[UUID, ...]:
        """All descendants (root excluded), depth-first pre-order."""
        self.node(node_id)
        result: list[UUID] = []
        stack = list(reversed(self._node_children.get(node_id, ())))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self._node_children.get(current, ())))
        return tuple(result)

    def ancestors_of(self, node_id: UUID) -> tuple[UUID, ...]:
        """Parent, grandparent, ... up to the root."""
        result: list[UUID] = []
        current = self.parent_of(node_id)
        while current is not None:
            result.append(current)
            current = self.parent_of(current)
        return tuple(result)

    def hierarchy_tree(
        self, root_id: UUID | None = None, max_depth: int | None = None
    ) -> tuple[HierarchyTreeNode, ...]:
        """
        Nested tree rooted at ``root_id`` (or at every root).

        ``max_depth`` counts levels below the root: 0 returns the root alone.
        """
        roots = (self.node(root_id),) if root_id is not None else self.root_nodes()
        return tuple(
            _build_tree(
                root.id,
                lambda i: self._node_children.get(i, ()),
                lambda i, kids: HierarchyTreeNode(node=self._nodes[i], children=kids),
                max_depth,
            )
            for root in roots
        )

    # ------------------------------------------------------------------
    # Time provider
    # ------------------------------------------------------------------

    def period(self, period_id: UUID) -> PeriodInfo:
        try:
            return self._periods[period_id]
        except KeyError:
            raise TimePeriodNotFoundError(period_id) from None

    def period_by_label(self, label: str) -> PeriodInfo:
        for period_id in self._walk_periods():
            if self._periods[period_id].label == label:
                return self._periods[period_id]
        raise TimePeriodNotFoundError(label)

    def children_of_period(self, period_id: UUID) -> tuple[PeriodInfo, ...]:
        self.period(period_id)
        return tuple(self._periods[c] for c in self._period_children.get(period_id, ()))

    def parent_of_period(self, period_id: UUID) -> UUID | None:
        parent_id = self.period(period_id).parent_id
        return parent_id if parent_id in self._periods else None

    def leaf_periods(self) -> tuple[PeriodInfo, ...]:
        """Periods without children, in tree order."""
        return tuple(
            self._periods[i]
            for i in self._walk_periods()
            if not self._period_children.get(i)
        )

    def period_tree(
        self, period_ids: Iterable[UUID] | None = None
    ) -> tuple[PeriodTreeNode, ...]:
        """
        Nested period tree.  With ``period_ids`` only those periods are kept;
        a kept period whose parent is filtered out becomes a root.
        """
        if period_ids is None:
            keep = set(self._periods)
        else:
            keep = set(period_ids)
            for pid in keep:
                self.period(pid)

        def kept_children(pid: UUID) -> tuple[UUID, ...]:
            out: list[UUID] = []
            stack = list(reversed(self._period_children.get(pid, ())))
            while stack:
                current = stack.pop()
                if current in keep:
                    out.append(current)
                else:
                    stack.extend(reversed(self._period_children.get(current, ())))
            return tuple(out)

        return tuple(
            _build_tree(
                root,
                kept_children,
                lambda i, kids: PeriodTreeNode(period=self._periods[i], children=kids),
                None,
            )
            for root in kept_children(None)
        )

    def _walk_nodes(self) -> Iterator[UUID]:
        stack = list(reversed(self._node_children.get(None, ())))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self._node_children.get(current, ())))

    def _walk_periods(self) -> Iterator[UUID]:
        stack = list(reversed(self._period_children.get(None, ())))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self._period_children.get(current, ())))

    # ------------------------------------------------------------------
    # Measure catalog provider
    # ------------------------------------------------------------------

    @property
    def measures(self) -> tuple[MeasureInfo, ...]:
        """All measures in catalog order."""
        return self._ordered_measures

    @property
    def derived_measures(self) -> tuple[MeasureInfo, ...]:
        """Measures with a non-empty formula, in catalog order."""
        return tuple(m for m in self._ordered_measures if m.is_derived)

    def measure(self, measure_id: UUID) -> MeasureInfo:
        try:
            return self._measures[measure_id]
        except KeyError:
            raise MeasureNotFoundError(measure_id) from None

    def measure_by_short_name(self, short_name: str) -> MeasureInfo:
        try:
            return self._by_short_name[short_name]
        except KeyError:
            raise MeasureNotFoundError(short_name) from None

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def version(self, version_id: UUID) -> VersionInfo:
        try:
            return self._versions[version_id]
        except KeyError:
            raise VersionNotFoundError(version_id) from None

    def __repr__(self) -> str:
        return (
            f"<CatalogSnapshot nodes={len(self._nodes)} periods={len(self._periods)} "
            f"measures={len(self._measures)}>"
        )


def _build_tree(root_id, children_of, make, max_depth):
    """
    Assemble an immutable nested tree bottom-up without recursion.

    Frozen tree nodes need their children first, so ids are collected in
    pre-order and then built in reverse.
    """
    order: list[tuple[UUID, int]] = []
    stack = [(root_id, 0)]
    while stack:
        current, depth = stack.pop()
        order.append((current, depth))
        if max_depth is None or depth < max_depth:
            for child in reversed(children_of(current)):
                stack.append((child, depth + 1))

    built: dict[UUID, object] = {}
    for current, depth in reversed(order):
        if max_depth is not None and depth >= max_depth:
            kids = ()
        else:
            kids = tuple(built[c] for c in children_of(current) if c in built)
        built[current] = make(current, kids)
    return built[root_id]
