"""
Typed exception hierarchy for the planning kernel.

Every error raised by the kernel, the engines or the edit orchestrator is a
``PlanningKernelError`` subclass carrying:

  1. a ``code`` class attribute (machine-readable, stable across releases);
  2. its context as instance attributes (ids, expressions, stage names);
  3. ``is_client_error`` -- whether a host API layer should surface it as a
     4xx (caller supplied something invalid) or an opaque 5xx.

Hierarchy::

    PlanningKernelError (base)
    |
    +-- CatalogError                      4xx
    |   +-- NodeNotFoundError
    |   +-- MeasureNotFoundError
    |   +-- TimePeriodNotFoundError
    |   +-- VersionNotFoundError
    |   +-- NoDefaultVersionError
    |
    +-- ConfigurationError                4xx
    |   +-- InvalidSpreadRequestError
    |   +-- InvalidFormulaError
    |
    +-- FormulaEvaluationError            never escapes FormulaService
    |
    +-- PipelineError                     5xx
        +-- EditStageFailedError

Codes
-----

Category      | Code                      | When raised
--------------|---------------------------|-----------------------------------
Catalog       | NODE_NOT_FOUND            | Hierarchy node id does not exist
              | MEASURE_NOT_FOUND         | Measure id does not exist
              | TIME_PERIOD_NOT_FOUND     | Time period id does not exist
              | VERSION_NOT_FOUND         | Version id does not exist
              | NO_DEFAULT_VERSION        | No version flagged as default
--------------|---------------------------|-----------------------------------
Configuration | INVALID_SPREAD_REQUEST    | Unknown spread mode / bad amount
              | INVALID_FORMULA           | Formula rejected by the validator
--------------|---------------------------|-----------------------------------
Formula       | FORMULA_EVALUATION_FAILED | Syntax, unknown name, div by zero
--------------|---------------------------|-----------------------------------
Pipeline      | EDIT_STAGE_FAILED         | Unexpected failure inside a stage
"""

from typing import Any


class PlanningKernelError(Exception):
    """
    Base exception for all planning kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "PLANNING_KERNEL_ERROR"
    is_client_error: bool = False


# Catalog (reference data) errors


class CatalogError(PlanningKernelError):
    """Base exception for missing or inconsistent catalog references."""

    code: str = "CATALOG_ERROR"
    is_client_error: bool = True


class NodeNotFoundError(CatalogError):
    """Hierarchy node with given ID was not found."""

    code: str = "NODE_NOT_FOUND"

    def __init__(self, node_id: Any):
        self.node_id = str(node_id)
        super().__init__(f"Hierarchy node not found: {node_id}")


class MeasureNotFoundError(CatalogError):
    """Measure with given ID was not found."""

    code: str = "MEASURE_NOT_FOUND"

    def __init__(self, measure_id: Any):
        self.measure_id = str(measure_id)
        super().__init__(f"Measure not found: {measure_id}")


class TimePeriodNotFoundError(CatalogError):
    """Time period with given ID was not found."""

    code: str = "TIME_PERIOD_NOT_FOUND"

    def __init__(self, period_id: Any):
        self.period_id = str(period_id)
        super().__init__(f"Time period not found: {period_id}")


class VersionNotFoundError(CatalogError):
    """Plan version with given ID was not found."""

    code: str = "VERSION_NOT_FOUND"

    def __init__(self, version_id: Any):
        self.version_id = str(version_id)
        super().__init__(f"Version not found: {version_id}")


class NoDefaultVersionError(CatalogError):
    """No version is flagged as default and none was requested explicitly."""

    code: str = "NO_DEFAULT_VERSION"

    def __init__(self) -> None:
        super().__init__(
            "No default version found. Please create a planning version."
        )


# Configuration / request validation errors


class ConfigurationError(PlanningKernelError):
    """Base exception for invalid policy or request configuration."""

    code: str = "CONFIGURATION_ERROR"
    is_client_error: bool = True


class InvalidSpreadRequestError(ConfigurationError):
    """A spread (disaggregation) request cannot be honoured."""

    code: str = "INVALID_SPREAD_REQUEST"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid spread request: {reason}")


class InvalidFormulaError(ConfigurationError):
    """A formula expression was rejected by the restricted grammar."""

    code: str = "INVALID_FORMULA"

    def __init__(self, expression: str, messages: list[str]):
        self.expression = expression
        self.messages = messages
        super().__init__(
            f"Invalid formula {expression!r}: {'; '.join(messages)}"
        )


# Formula evaluation


class FormulaEvaluationError(PlanningKernelError):
    """
    Evaluation of a formula failed.

    Raised by the pure evaluator; FormulaService converts it into a stored
    null, so it never reaches a caller of the edit pipeline.
    """

    code: str = "FORMULA_EVALUATION_FAILED"

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Formula {expression!r} failed: {reason}")


# Pipeline errors


class PipelineError(PlanningKernelError):
    """Base exception for failures inside the cell edit pipeline."""

    code: str = "PIPELINE_ERROR"


class EditStageFailedError(PipelineError):
    """
    An unexpected error interrupted a stage of the edit pipeline.

    Stages committed before ``stage`` stay applied; the caller is expected
    to retry the whole edit.
    """

    code: str = "EDIT_STAGE_FAILED"

    def __init__(self, stage: str, completed_stages: list[str]):
        self.stage = stage
        self.completed_stages = completed_stages
        super().__init__(
            f"Cell edit failed during stage {stage} "
            f"(completed: {', '.join(completed_stages) or 'none'})"
        )
