"""
Config -> Kernel Bridges.

Turns a parsed ``CatalogFixture`` into kernel rows.  Lives in
planning_config (the producer) because the kernel must NEVER import
planning_config.

Usage:
    from planning_config import load_catalog_fixture
    from planning_config.bridges import seed_catalog

    with session_scope() as session:
        seeded = seed_catalog(session, load_catalog_fixture())
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from planning_config.schema import CatalogFixture, NodeDef, PeriodDef
from planning_kernel.domain.clock import Clock
from planning_kernel.domain.dtos import CellUpdate
from planning_kernel.logging_config import get_logger
from planning_kernel.models import (
    HierarchyLevel,
    HierarchyNode,
    Measure,
    PlanVersion,
    TimePeriod,
)
from planning_kernel.services.cell_store import CellStore

logger = get_logger("config.bridges")

_WHOLE = Decimal("1")


@dataclass(frozen=True)
class SeededCatalog:
    """Name -> id maps for everything a fixture created."""

    levels: dict[str, UUID]
    nodes: dict[str, UUID]
    periods: dict[str, UUID]
    measures: dict[str, UUID]
    versions: dict[str, UUID]
    default_version_id: UUID | None = None
    cell_count: int = 0


def seed_catalog(
    session: Session,
    fixture: CatalogFixture,
    clock: Clock | None = None,
    editor_id: UUID | None = None,
) -> SeededCatalog:
    """
    Insert every catalog row of ``fixture`` and its sample values.

    Flush-only; the caller owns the transaction.
    """
    versions: dict[str, UUID] = {}
    for v in fixture.versions:
        row = PlanVersion(name=v.name, is_default=v.is_default, created_by_id=editor_id)
        session.add(row)
        session.flush()
        versions[v.name] = row.id

    levels: dict[str, UUID] = {}
    for lv in fixture.levels:
        row = HierarchyLevel(name=lv.name, depth=lv.depth)
        session.add(row)
        session.flush()
        levels[lv.name] = row.id

    nodes = _seed_nodes(session, fixture.nodes, levels)
    periods = _seed_periods(session, fixture.periods)
    measures = _seed_measures(session, fixture)

    cell_count = 0
    if fixture.sample_values is not None:
        updates = list(_sample_updates(fixture, nodes, periods, measures))
        cell_count = CellStore(session, clock).upsert_many(
            updates, versions[fixture.sample_values.version], editor_id
        )

    logger.info("catalog_seeded", extra={
        "fixture": fixture.name,
        "node_count": len(nodes),
        "period_count": len(periods),
        "measure_count": len(measures),
        "version_count": len(versions),
        "cell_count": cell_count,
    })
    return SeededCatalog(
        levels=levels,
        nodes=nodes,
        periods=periods,
        measures=measures,
        versions=versions,
        default_version_id=next(
            (versions[v.name] for v in fixture.versions if v.is_default), None
        ),
        cell_count=cell_count,
    )


def _seed_nodes(
    session: Session, roots: tuple[NodeDef, ...], levels: dict[str, UUID]
) -> dict[str, UUID]:
    ids: dict[str, UUID] = {}
    stack: list[tuple[NodeDef, UUID | None]] = [(n, None) for n in reversed(roots)]
    while stack:
        node, parent_id = stack.pop()
        row = HierarchyNode(
            name=node.name,
            level_id=levels[node.level],
            parent_id=parent_id,
            sort_order=node.sort_order,
        )
        session.add(row)
        session.flush()
        ids[node.name] = row.id
        stack.extend((child, row.id) for child in reversed(node.children))
    return ids


def _seed_periods(session: Session, roots: tuple[PeriodDef, ...]) -> dict[str, UUID]:
    ids: dict[str, UUID] = {}
    stack: list[tuple[PeriodDef, UUID | None, int]] = [(p, None, 0) for p in reversed(roots)]
    while stack:
        period, parent_id, depth = stack.pop()
        row = TimePeriod(
            label=period.label,
            start_date=period.start_date,
            end_date=period.end_date,
            parent_id=parent_id,
            depth=depth,
            sort_order=period.sort_order,
        )
        session.add(row)
        session.flush()
        ids[period.label] = row.id
        stack.extend((child, row.id, depth + 1) for child in reversed(period.children))
    return ids


def _seed_measures(session: Session, fixture: CatalogFixture) -> dict[str, UUID]:
    rows: dict[str, Measure] = {}
    for m in fixture.measures:
        row = Measure(
            name=m.name,
            short_name=m.short_name,
            data_type=m.data_type.value,
            is_editable=m.is_editable,
            formula=m.formula,
            aggregation_type=m.aggregation_type.value,
            sort_order=m.sort_order,
            format_pattern=m.format_pattern,
        )
        session.add(row)
        rows[m.short_name] = row
    session.flush()

    for m in fixture.measures:
        if m.weight_measure is not None:
            rows[m.short_name].weight_measure_id = rows[m.weight_measure].id
    session.flush()
    return {short_name: row.id for short_name, row in rows.items()}


def _sample_updates(
    fixture: CatalogFixture,
    nodes: dict[str, UUID],
    periods: dict[str, UUID],
    measures: dict[str, UUID],
):
    sample = fixture.sample_values
    for node_name, base_values in sample.base:
        for label, multiplier in zip(sample.periods, sample.multipliers):
            values = {
                short_name: (base * multiplier).quantize(_WHOLE, rounding=ROUND_HALF_UP)
                for short_name, base in base_values
            }
            for target, basis, ratio in sample.ratios:
                values[target] = (values[basis] * ratio).quantize(_WHOLE, rounding=ROUND_HALF_UP)
            for short_name, value in values.items():
                yield CellUpdate(
                    node_id=nodes[node_name],
                    measure_id=measures[short_name],
                    period_id=periods[label],
                    value=value,
                )


__all__ = ["SeededCatalog", "seed_catalog"]
