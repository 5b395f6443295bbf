"""
Planning configuration schema.

Two kinds of human-authored YAML are parsed into these frozen types:

  PlanningConfig = runtime settings (database, logging, grid defaults)
  CatalogFixture = a reviewable catalog definition (levels, hierarchy,
                   calendar, measures, versions, sample values) that the
                   seeding bridge turns into database rows
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from planning_kernel.domain.values import AggregationType, MeasureDataType

# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    """Level for the planning_kernel logger hierarchy."""

    level: str = "INFO"


@dataclass(frozen=True)
class GridConfig:
    """Defaults applied to grid reloads."""

    default_depth: int | None = None


@dataclass(frozen=True)
class PlanningConfig:
    """Everything a process needs to start the planning core."""

    database: DatabaseConfig
    logging: LoggingConfig = LoggingConfig()
    grid: GridConfig = GridConfig()
    source_path: str | None = None


# ---------------------------------------------------------------------------
# Catalog fixture
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LevelDef:
    """A hierarchy level; depth 0 is the top."""

    name: str
    depth: int


@dataclass(frozen=True)
class NodeDef:
    """A hierarchy node and its subtree."""

    name: str
    level: str
    sort_order: int = 0
    children: tuple[NodeDef, ...] = ()


@dataclass(frozen=True)
class PeriodDef:
    """A calendar period and its sub-periods."""

    label: str
    start_date: date
    end_date: date
    sort_order: int = 0
    children: tuple[PeriodDef, ...] = ()


@dataclass(frozen=True)
class MeasureDef:
    """A measure; ``weight_measure`` is another measure's short name."""

    name: str
    short_name: str
    data_type: MeasureDataType = MeasureDataType.CURRENCY
    is_editable: bool = True
    formula: str | None = None
    aggregation_type: AggregationType = AggregationType.SUM
    weight_measure: str | None = None
    sort_order: int = 0
    format_pattern: str | None = None


@dataclass(frozen=True)
class VersionDef:
    name: str
    is_default: bool = False


@dataclass(frozen=True)
class SampleValuesDef:
    """
    Deterministic demo values for leaf nodes.

    For each (node, period) pair the base value of every listed measure is
    multiplied by the period's multiplier and rounded half-up to a whole
    number.  Each ratio measure is then ``ratio * value_of(basis)`` rounded
    the same way.
    """

    version: str
    periods: tuple[str, ...]
    multipliers: tuple[Decimal, ...]
    base: tuple[tuple[str, tuple[tuple[str, Decimal], ...]], ...]
    ratios: tuple[tuple[str, str, Decimal], ...] = ()


@dataclass(frozen=True)
class CatalogFixture:
    """A complete catalog definition."""

    name: str
    levels: tuple[LevelDef, ...]
    nodes: tuple[NodeDef, ...]
    periods: tuple[PeriodDef, ...]
    measures: tuple[MeasureDef, ...]
    versions: tuple[VersionDef, ...]
    sample_values: SampleValuesDef | None = None
