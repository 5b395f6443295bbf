"""
Module: planning_engines.rollup
Responsibility:
    Combine sibling values into their parent's value for the two hierarchy
    axes: products (node axis) and calendar (time axis).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Null is never turned into zero: when no sibling carries a value the
      rollup is None for every policy.
    - Node axis WEIGHTED_AVG is sum(value * weight) / sum(weight) over
      siblings with a value; a null weight counts as 0; a zero weight total
      yields None.  Without weights it degrades to AVG.
    - Time axis treats WEIGHTED_AVG exactly like AVG and never reads
      weights.
    - NONE does not roll up; callers must check ``rolls_up()`` first.

Failure modes:
    - ValueError when asked to roll up a NONE measure or when values and
      weights differ in length.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from planning_engines.tracer import traced_engine
from planning_kernel.domain.values import AggregationType

ZERO = Decimal("0")


def rolls_up(aggregation_type: AggregationType) -> bool:
    """False for measures that are not meant to be aggregated."""
    return AggregationType(aggregation_type) != AggregationType.NONE


def _sum(values: Sequence[Decimal | None]) -> Decimal | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present, ZERO)


def _avg(values: Sequence[Decimal | None]) -> Decimal | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present, ZERO) / Decimal(len(present))


def _weighted_avg(
    values: Sequence[Decimal | None],
    weights: Sequence[Decimal | None],
) -> Decimal | None:
    numerator = ZERO
    denominator = ZERO
    for value, weight in zip(values, weights):
        if value is None:
            continue
        weight = weight if weight is not None else ZERO
        numerator += value * weight
        denominator += weight
    if denominator == ZERO:
        return None
    return numerator / denominator


@traced_engine("rollup_node", "1.0", fingerprint_fields=("values", "weights", "aggregation_type"))
def rollup_node(
    *,
    values: Sequence[Decimal | None],
    aggregation_type: AggregationType,
    weights: Sequence[Decimal | None] | None = None,
) -> Decimal | None:
    """
    Aggregate one sibling cohort along the product hierarchy.

    ``weights`` is None when the measure has no weight measure configured;
    WEIGHTED_AVG then behaves as AVG.
    """
    aggregation_type = AggregationType(aggregation_type)
    if weights is not None and len(weights) != len(values):
        raise ValueError(
            f"values and weights differ in length: {len(values)} != {len(weights)}"
        )

    match aggregation_type:
        case AggregationType.SUM:
            return _sum(values)
        case AggregationType.AVG:
            return _avg(values)
        case AggregationType.WEIGHTED_AVG:
            if weights is None:
                return _avg(values)
            return _weighted_avg(values, weights)
        case _:
            raise ValueError(f"Measures with aggregation {aggregation_type.value} do not roll up")


@traced_engine("rollup_time", "1.0", fingerprint_fields=("values", "aggregation_type"))
def rollup_time(
    *,
    values: Sequence[Decimal | None],
    aggregation_type: AggregationType,
) -> Decimal | None:
    """Aggregate one sibling cohort of periods.  WEIGHTED_AVG is a plain mean here."""
    aggregation_type = AggregationType(aggregation_type)
    match aggregation_type:
        case AggregationType.SUM:
            return _sum(values)
        case AggregationType.AVG | AggregationType.WEIGHTED_AVG:
            return _avg(values)
        case _:
            raise ValueError(f"Measures with aggregation {aggregation_type.value} do not roll up")
