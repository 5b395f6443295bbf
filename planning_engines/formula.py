"""
Restricted arithmetic for derived-measure formulas.

Formulas such as ``(sales_dollars - cogs) / sales_dollars * 100`` are
parsed with ``ast`` and checked against a fixed node set before they are
ever evaluated.  Evaluation walks the checked tree in Decimal arithmetic;
no Python code is executed.

Allowed:
  - Numeric literals (int, float)
  - Measure short names (bare identifiers)
  - Binary: +, -, *, /
  - Unary: +, -
  - Parentheses

Rejected:
  - calls, attribute access, subscripts, comparisons, boolean logic,
    power, floor division, modulo, lambdas, strings, anything else
"""

import ast
import decimal
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from planning_kernel.exceptions import FormulaEvaluationError, InvalidFormulaError

_BINARY_OPS = (ast.Add, ast.Sub, ast.Mult, ast.Div)
_UNARY_OPS = (ast.UAdd, ast.USub)

_COMPILE_CACHE_SIZE = 256


@dataclass(frozen=True)
class FormulaASTError:
    """A validation error found in a formula."""

    expression: str
    message: str
    node_type: str = ""
    lineno: int = 0
    col_offset: int = 0


@dataclass(frozen=True)
class CompiledFormula:
    """A parsed, validated formula ready for repeated evaluation."""

    expression: str
    tree: ast.expr
    names: frozenset[str]


def validate_formula(
    expression: str, known_names: frozenset[str] | set[str] | None = None
) -> list[FormulaASTError]:
    """Validate a formula against the restricted AST.

    Returns a list of errors. Empty list means the formula is valid.
    With ``known_names`` every identifier must also be one of them.
    """
    if not expression or not expression.strip():
        return [FormulaASTError(expression=expression, message="Empty formula")]

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        return [
            FormulaASTError(
                expression=expression,
                message=f"Syntax error: {e.msg}",
                lineno=e.lineno or 0,
                col_offset=e.offset or 0,
            )
        ]
    except (RecursionError, ValueError, MemoryError) as e:
        return [
            FormulaASTError(
                expression=expression,
                message=f"Formula cannot be parsed: {type(e).__name__}",
            )
        ]

    errors: list[FormulaASTError] = []
    try:
        _validate_node(tree.body, expression, errors, known_names)
    except RecursionError:
        return [FormulaASTError(expression=expression, message="Formula nested too deeply")]
    return errors


def _validate_node(
    node: ast.AST,
    expression: str,
    errors: list[FormulaASTError],
    known_names,
) -> None:
    """Recursively validate an AST node."""

    if isinstance(node, ast.BinOp):
        if isinstance(node.op, _BINARY_OPS):
            _validate_node(node.left, expression, errors, known_names)
            _validate_node(node.right, expression, errors, known_names)
        else:
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message=f"Disallowed binary operator: {type(node.op).__name__}",
                    node_type=type(node.op).__name__,
                    lineno=node.lineno,
                    col_offset=node.col_offset,
                )
            )

    elif isinstance(node, ast.UnaryOp):
        if isinstance(node.op, _UNARY_OPS):
            _validate_node(node.operand, expression, errors, known_names)
        else:
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message=f"Disallowed unary operator: {type(node.op).__name__}",
                    node_type=type(node.op).__name__,
                    lineno=node.lineno,
                    col_offset=node.col_offset,
                )
            )

    elif isinstance(node, ast.Name):
        if known_names is not None and node.id not in known_names:
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message=f"Unknown measure: {node.id}",
                    node_type="Name",
                    lineno=node.lineno,
                    col_offset=node.col_offset,
                )
            )

    elif isinstance(node, ast.Constant):
        # bool is an int subclass
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message=f"Disallowed constant type: {type(node.value).__name__}",
                    node_type="Constant",
                    lineno=node.lineno,
                    col_offset=node.col_offset,
                )
            )

    else:
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"Disallowed AST node type: {type(node).__name__}",
                node_type=type(node).__name__,
                lineno=getattr(node, "lineno", 0),
                col_offset=getattr(node, "col_offset", 0),
            )
        )


def _collect_names(tree: ast.AST) -> frozenset[str]:
    return frozenset(n.id for n in ast.walk(tree) if isinstance(n, ast.Name))


@lru_cache(maxsize=_COMPILE_CACHE_SIZE)
def compile_formula(expression: str) -> CompiledFormula:
    """Parse and validate once per distinct expression text.

    Raises:
        InvalidFormulaError: the expression is not in the allowed grammar.
    """
    errors = validate_formula(expression)
    if errors:
        raise InvalidFormulaError(expression, [e.message for e in errors])
    tree = ast.parse(expression.strip(), mode="eval").body
    return CompiledFormula(
        expression=expression,
        tree=tree,
        names=_collect_names(tree),
    )


def evaluate(formula: CompiledFormula | str, scope: Mapping[str, Decimal]) -> Decimal:
    """Evaluate a formula against a name -> Decimal binding map.

    Raises:
        InvalidFormulaError: ``formula`` is a string outside the grammar.
        FormulaEvaluationError: unknown name, division by zero, nesting
            beyond the recursion limit, or a non-finite result.
    """
    compiled = compile_formula(formula) if isinstance(formula, str) else formula

    missing = {name for name in compiled.names if name not in scope}
    if missing:
        raise FormulaEvaluationError(
            compiled.expression, f"Unknown variable(s): {', '.join(sorted(missing))}"
        )

    try:
        result = _eval_node(compiled.tree, scope)
    except decimal.DecimalException as e:
        raise FormulaEvaluationError(compiled.expression, type(e).__name__) from e
    except RecursionError as e:
        raise FormulaEvaluationError(compiled.expression, "Formula nested too deeply") from e

    if not result.is_finite():
        raise FormulaEvaluationError(compiled.expression, f"Non-finite result: {result}")
    return result


def _eval_node(node: ast.expr, scope: Mapping[str, Decimal]) -> Decimal:
    if isinstance(node, ast.BinOp):
        left = _eval_node(node.left, scope)
        right = _eval_node(node.right, scope)
        if isinstance(node.op, ast.Add):
            return left + right
        if isinstance(node.op, ast.Sub):
            return left - right
        if isinstance(node.op, ast.Mult):
            return left * right
        return left / right

    if isinstance(node, ast.UnaryOp):
        operand = _eval_node(node.operand, scope)
        return -operand if isinstance(node.op, ast.USub) else +operand

    if isinstance(node, ast.Name):
        return scope[node.id]

    # ast.Constant, validated as int or float
    return Decimal(str(node.value))
