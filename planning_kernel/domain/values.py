"""
Value types shared by the kernel, the engines and the orchestrator.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Importable from planning_engines.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class AggregationType(str, Enum):
    """How a measure rolls up to parent nodes and parent periods."""

    SUM = "SUM"
    WEIGHTED_AVG = "WEIGHTED_AVG"
    AVG = "AVG"
    NONE = "NONE"


class MeasureDataType(str, Enum):
    """Display type of a measure.  The engines never branch on it."""

    CURRENCY = "currency"
    UNITS = "units"
    PERCENTAGE = "percentage"
    RATIO = "ratio"


class SpreadMode(str, Enum):
    """Apportionment policy chosen by the planner for one edit."""

    PROPORTIONAL = "proportional"
    WEIGHTED = "weighted"
    EVEN = "even"


def to_decimal(value: Any) -> Decimal | None:
    """
    Coerce a stored or user-supplied number to Decimal.

    None stays None.  Floats go through ``str`` so 0.1 becomes Decimal("0.1").

    Raises:
        ValueError: if ``value`` is not numeric.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric cell value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a numeric cell value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Cell values must be finite, got {value!r}")
    return result
