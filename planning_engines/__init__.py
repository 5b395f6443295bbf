"""
Module: planning_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by the
    kernel services: spreading, rollup and the formula evaluator.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import planning_kernel/domain/values, exceptions and logging.
    MUST NOT import planning_services.

Invariants enforced:
    - Decimal-only arithmetic; floats are converted at the boundary.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from planning_engines import apportion, rollup_node, rollup_time
    from planning_engines import compile_formula, evaluate, validate_formula
"""

from planning_engines.formula import (
    CompiledFormula,
    FormulaASTError,
    compile_formula,
    evaluate,
    validate_formula,
)
from planning_engines.rollup import rolls_up, rollup_node, rollup_time
from planning_engines.spreading import SpreadResult, apportion, round2

__all__ = [
    # Spreading
    "apportion",
    "round2",
    "SpreadResult",
    # Rollup
    "rollup_node",
    "rollup_time",
    "rolls_up",
    # Formula
    "compile_formula",
    "evaluate",
    "validate_formula",
    "CompiledFormula",
    "FormulaASTError",
]
