#!/usr/bin/env python3
"""
Seed the database with the demo merchandise catalog.

Drops all tables, recreates them, inserts the hierarchy, calendar,
measures and versions of a catalog fixture plus its sample values, rolls
the sample leaves up both axes, and commits.

Usage:
    python3 scripts/seed_data.py
    python3 scripts/seed_data.py --database-url sqlite:///planning.db
    python3 scripts/seed_data.py --fixture path/to/catalog.yaml --keep
"""

import argparse
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the planning database")
    parser.add_argument(
        "--database-url", type=str, default=None,
        help="Database URL (default: from the active planning config)",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Runtime settings YAML (default: $PLANNING_CONFIG or defaults.yaml)",
    )
    parser.add_argument(
        "--fixture", type=str, default=None,
        help="Catalog fixture YAML (default: the packaged demo catalog)",
    )
    parser.add_argument(
        "--keep", action="store_true",
        help="Do not drop existing tables first",
    )
    args = parser.parse_args()

    from planning_config import get_active_config, load_catalog_fixture
    from planning_config.bridges import seed_catalog
    from planning_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session_factory,
        init_engine_from_url,
        session_scope,
    )
    from planning_kernel.domain.clock import DeterministicClock
    from planning_kernel.services.aggregation_service import AggregationService

    config = get_active_config(args.config)
    url = args.database_url or config.database.url

    # -----------------------------------------------------------------
    # 1. Connect + reset
    # -----------------------------------------------------------------
    print()
    print("  [1/4] Connecting to database...")
    try:
        init_engine_from_url(
            url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    logging.getLogger("planning_kernel").setLevel(config.logging.level)

    if not args.keep:
        print("  [2/4] Dropping old tables and recreating schema...")
        drop_tables()
    else:
        print("  [2/4] Creating missing tables...")
    create_tables()

    # -----------------------------------------------------------------
    # 2. Catalog + sample values
    # -----------------------------------------------------------------
    fixture = load_catalog_fixture(args.fixture)
    clock = DeterministicClock(datetime(2025, 1, 1, 9, 0, 0, tzinfo=UTC))
    factory = get_session_factory()

    print(f"  [3/4] Seeding catalog {fixture.name!r}...")
    with session_scope(factory) as session:
        seeded = seed_catalog(session, fixture, clock=clock)

    # -----------------------------------------------------------------
    # 3. Roll sample leaves up both axes
    # -----------------------------------------------------------------
    print("  [4/4] Rolling sample values up the hierarchy and calendar...")
    sample = fixture.sample_values
    sweeps = 0
    if sample is not None:
        version_id = seeded.versions[sample.version]
        rollup_measures = [
            m.short_name for m in fixture.measures
            if m.aggregation_type.value != "NONE"
        ]
        rolled_nodes = {seeded.nodes[node_name]: None for node_name, _ in sample.base}
        for node_name, _ in sample.base:
            for label in sample.periods:
                for short_name in rollup_measures:
                    with session_scope(factory) as session:
                        written = AggregationService(session, clock).aggregate_up(
                            seeded.nodes[node_name], seeded.measures[short_name],
                            seeded.periods[label], version_id,
                        )
                    rolled_nodes.update(dict.fromkeys(written))
                    sweeps += 1

        # Ancestors now hold monthly values; roll every node up the calendar.
        for node_id in rolled_nodes:
            for label in sample.periods:
                for short_name in rollup_measures:
                    with session_scope(factory) as session:
                        AggregationService(session, clock).aggregate_time_up(
                            node_id, seeded.measures[short_name],
                            seeded.periods[label], version_id,
                        )
                    sweeps += 1

    print()
    print(f"  Nodes:    {len(seeded.nodes)}")
    print(f"  Periods:  {len(seeded.periods)}")
    print(f"  Measures: {len(seeded.measures)}")
    print(f"  Versions: {len(seeded.versions)}")
    print(f"  Cells:    {seeded.cell_count} seeded, {sweeps} rollup sweeps")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
