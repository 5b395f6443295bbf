"""
Configuration Loader (``planning_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen dataclasses of
``planning_config.schema``: the runtime ``PlanningConfig`` and catalog
fixtures.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Runtime callers go through
``planning_config.get_active_config()``; the fixture loader is used by the
seeding script and the test suite.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Fixture cross-references are checked at load time: node levels, weight
  measures, sample-value nodes, periods and measures must exist; node
  names, period labels and measure short names must be unique; every
  formula must pass ``validate_formula`` against the declared short names.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Bad enum, date or cross-reference  -> ``ValueError``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from planning_config.schema import (
    CatalogFixture,
    DatabaseConfig,
    GridConfig,
    LevelDef,
    LoggingConfig,
    MeasureDef,
    NodeDef,
    PeriodDef,
    PlanningConfig,
    SampleValuesDef,
    VersionDef,
)
from planning_engines.formula import validate_formula
from planning_kernel.domain.values import AggregationType, MeasureDataType


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any) -> Decimal:
    """YAML numbers arrive as int or float; floats go through str."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Cannot parse number from {value!r}")
    return Decimal(str(value))


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


def parse_planning_config(
    data: dict[str, Any], source_path: str | None = None
) -> PlanningConfig:
    """Parse the runtime settings document."""
    db = data["database"]
    log = data.get("logging") or {}
    grid = data.get("grid") or {}

    level = str(log.get("level", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"Unknown logging level: {level!r}")

    default_depth = grid.get("default_depth")
    if default_depth is not None and (not isinstance(default_depth, int) or default_depth < 0):
        raise ValueError(f"grid.default_depth must be a non-negative integer, got {default_depth!r}")

    return PlanningConfig(
        database=DatabaseConfig(
            url=db["url"],
            echo=bool(db.get("echo", False)),
            pool_size=int(db.get("pool_size", 10)),
            max_overflow=int(db.get("max_overflow", 10)),
        ),
        logging=LoggingConfig(level=level),
        grid=GridConfig(default_depth=default_depth),
        source_path=source_path,
    )


# ---------------------------------------------------------------------------
# Catalog fixture
# ---------------------------------------------------------------------------


def parse_node(data: dict[str, Any], position: int) -> NodeDef:
    return NodeDef(
        name=data["name"],
        level=data["level"],
        sort_order=int(data.get("sort_order", position)),
        children=tuple(
            parse_node(child, i + 1) for i, child in enumerate(data.get("children", ()))
        ),
    )


def parse_period(data: dict[str, Any], position: int) -> PeriodDef:
    start = parse_date(data["start_date"])
    end = parse_date(data["end_date"])
    if end < start:
        raise ValueError(f"Period {data['label']!r} ends before it starts")
    return PeriodDef(
        label=data["label"],
        start_date=start,
        end_date=end,
        sort_order=int(data.get("sort_order", position)),
        children=tuple(
            parse_period(child, i + 1) for i, child in enumerate(data.get("children", ()))
        ),
    )


def parse_measure(data: dict[str, Any], position: int) -> MeasureDef:
    try:
        aggregation_type = AggregationType(data.get("aggregation_type", "SUM"))
        data_type = MeasureDataType(data.get("data_type", "currency"))
    except ValueError as exc:
        raise ValueError(f"Measure {data.get('short_name')!r}: {exc}") from exc

    formula = data.get("formula") or None
    return MeasureDef(
        name=data["name"],
        short_name=data["short_name"],
        data_type=data_type,
        is_editable=bool(data.get("is_editable", formula is None)),
        formula=formula,
        aggregation_type=aggregation_type,
        weight_measure=data.get("weight_measure"),
        sort_order=int(data.get("sort_order", position)),
        format_pattern=data.get("format_pattern"),
    )


def parse_sample_values(data: dict[str, Any]) -> SampleValuesDef:
    periods = tuple(data["periods"])
    multipliers = tuple(parse_decimal(m) for m in data.get("multipliers", [1] * len(periods)))
    if len(multipliers) != len(periods):
        raise ValueError("sample_values.multipliers must match sample_values.periods")

    base = tuple(
        (node, tuple((measure, parse_decimal(v)) for measure, v in values.items()))
        for node, values in data["base"].items()
    )
    ratios = tuple(
        (r["measure"], r["of"], parse_decimal(r["ratio"]))
        for r in data.get("ratios", ())
    )
    return SampleValuesDef(
        version=data["version"],
        periods=periods,
        multipliers=multipliers,
        base=base,
        ratios=ratios,
    )


def walk_nodes(nodes: Iterable[NodeDef]) -> Iterator[NodeDef]:
    """Pre-order walk of a fixture hierarchy."""
    stack = list(reversed(tuple(nodes)))
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def walk_periods(periods: Iterable[PeriodDef]) -> Iterator[PeriodDef]:
    """Pre-order walk of a fixture calendar."""
    stack = list(reversed(tuple(periods)))
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _unique(names: Iterable[str], what: str) -> set[str]:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ValueError(f"Duplicate {what}: {name!r}")
        seen.add(name)
    return seen


def validate_fixture(fixture: CatalogFixture) -> None:
    """Check cross-references inside a parsed fixture.

    Raises:
        ValueError: on the first inconsistency found.
    """
    level_names = _unique((lv.name for lv in fixture.levels), "level")
    node_names = _unique((n.name for n in walk_nodes(fixture.nodes)), "node name")
    period_labels = _unique((p.label for p in walk_periods(fixture.periods)), "period label")
    short_names = _unique((m.short_name for m in fixture.measures), "measure short_name")
    version_names = _unique((v.name for v in fixture.versions), "version")

    for node in walk_nodes(fixture.nodes):
        if node.level not in level_names:
            raise ValueError(f"Node {node.name!r} references unknown level {node.level!r}")

    for measure in fixture.measures:
        if measure.weight_measure is not None and measure.weight_measure not in short_names:
            raise ValueError(
                f"Measure {measure.short_name!r} references unknown weight measure "
                f"{measure.weight_measure!r}"
            )
        if measure.formula:
            errors = validate_formula(measure.formula, short_names)
            if errors:
                raise ValueError(
                    f"Measure {measure.short_name!r} has an invalid formula: "
                    + "; ".join(e.message for e in errors)
                )

    sample = fixture.sample_values
    if sample is None:
        return
    if sample.version not in version_names:
        raise ValueError(f"sample_values references unknown version {sample.version!r}")
    for label in sample.periods:
        if label not in period_labels:
            raise ValueError(f"sample_values references unknown period {label!r}")
    for node_name, values in sample.base:
        if node_name not in node_names:
            raise ValueError(f"sample_values references unknown node {node_name!r}")
        for short_name, _ in values:
            if short_name not in short_names:
                raise ValueError(f"sample_values references unknown measure {short_name!r}")
    derived: set[str] = set()
    for target, basis, _ in sample.ratios:
        for short_name in (target, basis):
            if short_name not in short_names:
                raise ValueError(f"sample_values references unknown measure {short_name!r}")
        for node_name, values in sample.base:
            if basis not in derived and basis not in {m for m, _ in values}:
                raise ValueError(
                    f"sample_values ratio for {target!r} needs {basis!r} on node {node_name!r}"
                )
        derived.add(target)


def parse_catalog_fixture(data: dict[str, Any]) -> CatalogFixture:
    """Parse and validate a catalog fixture document."""
    sample = data.get("sample_values")
    fixture = CatalogFixture(
        name=data.get("name", "catalog"),
        levels=tuple(
            LevelDef(name=lv["name"], depth=int(lv["depth"])) for lv in data["levels"]
        ),
        nodes=tuple(parse_node(n, i + 1) for i, n in enumerate(data["nodes"])),
        periods=tuple(parse_period(p, i + 1) for i, p in enumerate(data["periods"])),
        measures=tuple(parse_measure(m, i + 1) for i, m in enumerate(data["measures"])),
        versions=tuple(
            VersionDef(name=v["name"], is_default=bool(v.get("is_default", False)))
            for v in data["versions"]
        ),
        sample_values=parse_sample_values(sample) if sample else None,
    )
    validate_fixture(fixture)
    return fixture
