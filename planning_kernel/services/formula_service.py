"""
FormulaService -- recompute derived measures at one grid coordinate.

Responsibility:
    For one (node, period, version), evaluate every measure that carries a
    formula and store the result.

Architecture position:
    Kernel > Services -- imperative shell.  Parsing and arithmetic live in
    ``planning_engines.formula``; this service binds the scope, stores the
    results and absorbs evaluation failures.

Invariants enforced:
    - Scope: every catalog measure is bound by short name to its stored
      value at the coordinate; absent cells and nulls bind to 0.
    - The scope is loaded once per call; a formula does not see values
      computed earlier in the same call.
    - Failures degrade to null: a malformed formula, an unknown name, a
      division by zero or a non-finite result stores None and never raises.
    - All derived measures at the coordinate are written in one transaction.

Failure modes:
    - NodeNotFoundError / TimePeriodNotFoundError from the snapshot.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from planning_engines.formula import evaluate
from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.clock import Clock
from planning_kernel.domain.dtos import CellAddress
from planning_kernel.exceptions import FormulaEvaluationError, InvalidFormulaError
from planning_kernel.logging_config import get_logger
from planning_kernel.models.cell import CellValue
from planning_kernel.services.base import BaseService
from planning_kernel.services.cell_store import CellStore

logger = get_logger("services.formula")

ZERO = Decimal("0")


class FormulaService(BaseService[CellValue]):
    """Derived-measure recalculation."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._cells = CellStore(session, clock)

    def recalculate(
        self,
        node_id: UUID,
        period_id: UUID,
        version_id: UUID,
        snapshot: CatalogSnapshot | None = None,
    ) -> dict[UUID, Decimal | None]:
        """
        Evaluate and store every derived measure at the coordinate.

        Returns:
            measure id -> stored result (None where evaluation failed).
        """
        snapshot = self._snapshot(snapshot)
        snapshot.node(node_id)
        snapshot.period(period_id)

        derived = snapshot.derived_measures
        if not derived:
            return {}

        measures = snapshot.measures
        stored = self._cells.get_many(
            [node_id], [m.id for m in measures], [period_id], version_id
        )
        scope: dict[str, Decimal] = {}
        for m in measures:
            value = stored.get(CellAddress(node_id, m.id, period_id))
            scope[m.short_name] = value if value is not None else ZERO

        results: dict[UUID, Decimal | None] = {}
        failures = 0
        for measure in derived:
            try:
                result = evaluate(measure.formula, scope)
            except (InvalidFormulaError, FormulaEvaluationError) as exc:
                failures += 1
                result = None
                logger.warning("formula_evaluation_failed", extra={
                    "measure_id": str(measure.id),
                    "short_name": measure.short_name,
                    "formula": measure.formula,
                    "error_code": exc.code,
                    "reason": str(exc),
                })
            self._cells.upsert(node_id, measure.id, period_id, version_id, result)
            results[measure.id] = result

        logger.info("recalculate_completed", extra={
            "node_id": str(node_id),
            "period_id": str(period_id),
            "version_id": str(version_id),
            "derived_count": len(derived),
            "failure_count": failures,
        })
        return results
