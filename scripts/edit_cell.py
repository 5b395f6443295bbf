#!/usr/bin/env python3
"""
Apply one planner edit from the command line and print the result.

Names are resolved against the catalog: nodes by name, measures by short
name, periods by label.  The edit runs through CellEditOrchestrator with
every stage committing on its own, exactly as the grid API would.

Usage:
    python3 scripts/edit_cell.py "Women's Apparel" sales_dollars "Jan 2025" 250000
    python3 scripts/edit_cell.py Tops sales_dollars "Jan 2025" 90000 --mode even
    python3 scripts/edit_cell.py Tops sales_dollars "Jan 2025" 90000 \\
        --mode weighted --weight sales_units --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _resolve_names(snapshot, node_name, measure_name, period_label, weight_name):
    node = snapshot.node_by_name(node_name)
    period = snapshot.period_by_label(period_label)
    measure = snapshot.measure_by_short_name(measure_name)
    weight = snapshot.measure_by_short_name(weight_name) if weight_name else None
    return node, measure, period, weight


def main() -> int:
    parser = argparse.ArgumentParser(description="Edit one grid cell and propagate it")
    parser.add_argument("node", help="Hierarchy node name")
    parser.add_argument("measure", help="Measure short name")
    parser.add_argument("period", help="Time period label")
    parser.add_argument("value", help="New value, or 'null' to clear the cell")
    parser.add_argument(
        "--mode", choices=("proportional", "weighted", "even"), default="proportional",
        help="Spread mode for parent edits (default: proportional)",
    )
    parser.add_argument("--weight", default=None, help="Weight measure short name")
    parser.add_argument("--version", default=None, help="Version id (default: the default version)")
    parser.add_argument("--depth", type=int, default=None, help="Hierarchy depth to reload")
    parser.add_argument("--json", action="store_true", help="Print the reloaded grid as JSON")
    parser.add_argument(
        "--database-url", type=str, default=None,
        help="Database URL (default: from the active planning config)",
    )
    args = parser.parse_args()

    from uuid import UUID

    from planning_config import get_active_config
    from planning_kernel.db.engine import (
        get_session_factory,
        init_engine_from_url,
        session_scope,
    )
    from planning_kernel.exceptions import PlanningKernelError
    from planning_kernel.selectors.catalog_selector import CatalogSelector
    from planning_services import CellEditOrchestrator

    config = get_active_config()
    try:
        init_engine_from_url(args.database_url or config.database.url)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    logging.getLogger("planning_kernel").setLevel(config.logging.level)

    factory = get_session_factory()
    try:
        with session_scope(factory) as session:
            snapshot = CatalogSelector(session).load_snapshot()
        node, measure, period, weight = _resolve_names(
            snapshot, args.node, args.measure, args.period, args.weight
        )

        orchestrator = CellEditOrchestrator(
            factory, default_depth=config.grid.default_depth
        )
        result = orchestrator.edit_cell(
            node.id,
            measure.id,
            period.id,
            None if args.value.lower() == "null" else args.value,
            version_id=UUID(args.version) if args.version else None,
            spread_mode=args.mode,
            weight_measure_id=weight.id if weight else None,
            depth=args.depth,
        )
    except PlanningKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.snapshot.to_dict(), indent=2))
        return 0

    print()
    print(f"  Edited {node.name} / {measure.short_name} / {period.label} = {args.value}")
    print(f"  Stages:  {', '.join(s.value for s in result.completed_stages)}")
    print(f"  Spread:  {len(result.touched_node_ids)} descendants written")
    print()
    grid = result.snapshot
    for candidate in [node, *(snapshot.node(a) for a in snapshot.ancestors_of(node.id))]:
        value = grid.value_of(candidate.id, measure.id, period.id)
        print(f"    {candidate.name:<24} {value if value is not None else '-':>16}")
    for child in snapshot.children_of(node.id):
        value = grid.value_of(child.id, measure.id, period.id)
        print(f"      {child.name:<22} {value if value is not None else '-':>16}")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
