"""
planning_services.cell_edit_orchestrator -- One planner edit, end to end.

Responsibility:
    Sequence the stages that keep the grid consistent after a single cell
    edit: save the raw value, spread it to descendants when the node has
    children, recalculate formulas, roll the edited and derived measures up
    the product hierarchy and up the calendar, then reload the grid.
    All arithmetic lives in the kernel services and the pure engines; the
    orchestrator adds validation, sequencing, transaction boundaries and
    stage bookkeeping.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes CellStore, DisaggregationService, FormulaService,
    AggregationService, CatalogSelector and GridSelector.

Invariants enforced:
    - Validation first: node, measure, period, version and weight measure
      are resolved against a CatalogSnapshot before any write.
    - Stages run strictly in ``EditStage`` order, each reading what the
      previous one committed.
    - Every engine call (one spread, one recalculation, one sweep) runs in
      its own ``session_scope`` and commits independently.  There is no
      transaction spanning the whole pipeline.
    - Formula measures (``is_editable`` False) are never spread.
    - The returned snapshot is a fresh read of storage.

Failure modes:
    - CatalogError / ConfigurationError subclasses before any write.
    - A kernel error inside a stage is re-raised unchanged; any other
      exception is wrapped in EditStageFailedError(stage, completed_stages).
      Stages already completed stay committed; retrying the same edit is
      idempotent.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from planning_kernel.db.engine import session_scope
from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.clock import Clock, SystemClock
from planning_kernel.domain.dtos import CellUpdate, GridSnapshot, MeasureInfo, VersionInfo
from planning_kernel.domain.values import SpreadMode, to_decimal
from planning_kernel.exceptions import (
    EditStageFailedError,
    InvalidSpreadRequestError,
    PlanningKernelError,
)
from planning_kernel.logging_config import LogContext, get_logger
from planning_kernel.selectors.catalog_selector import CatalogSelector
from planning_kernel.selectors.grid_selector import GridSelector
from planning_kernel.services.aggregation_service import AggregationService
from planning_kernel.services.cell_store import CellStore
from planning_kernel.services.disaggregation_service import DisaggregationService
from planning_kernel.services.formula_service import FormulaService
from planning_services._edit_types import CellEditRequest, CellEditResult, EditStage

logger = get_logger("services.cell_edit_orchestrator")


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None


class CellEditOrchestrator:
    """
    Entry point for grid edits.

    Contract:
        ``edit_cell`` runs the full propagation pipeline and returns a
        CellEditResult holding the reloaded GridSnapshot.  ``save_cells``
        writes a batch of raw values without propagation.
    Non-goals:
        - No locking between concurrent editors of overlapping subtrees.
        - No retry; callers retry the whole edit.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        default_depth: int | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._default_depth = default_depth

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def edit_cell(
        self,
        node_id: UUID,
        measure_id: UUID,
        period_id: UUID,
        new_value: Any,
        version_id: UUID | None = None,
        spread_mode: SpreadMode | str = SpreadMode.PROPORTIONAL,
        weight_measure_id: UUID | None = None,
        editor_id: UUID | None = None,
        root_node_id: UUID | None = None,
        depth: int | None = None,
        period_ids: Iterable[UUID] | None = None,
    ) -> CellEditResult:
        """
        Apply one planner edit and propagate it through the grid.

        ``root_node_id``, ``depth`` and ``period_ids`` only shape the
        reloaded snapshot.
        """
        request = self._build_request(
            node_id, measure_id, period_id, new_value, version_id,
            spread_mode, weight_measure_id, editor_id,
        )
        return self.run(
            request,
            root_node_id=root_node_id,
            depth=depth,
            period_ids=period_ids,
        )

    def run(
        self,
        request: CellEditRequest,
        root_node_id: UUID | None = None,
        depth: int | None = None,
        period_ids: Iterable[UUID] | None = None,
    ) -> CellEditResult:
        """Execute the pipeline for a prepared request."""
        correlation_id = str(uuid4())
        t0 = time.monotonic()

        with LogContext.bind(
            correlation_id=correlation_id,
            actor_id=_str_or_none(request.editor_id),
            node_id=str(request.node_id),
            measure_id=str(request.measure_id),
        ):
            snapshot, version, measure = self._validate(request)

            with LogContext.bind(version_id=str(version.id)):
                logger.info("edit_cell_started", extra={
                    "period_id": str(request.period_id),
                    "new_value": _str_or_none(request.new_value),
                    "spread_mode": request.spread_mode.value,
                })

                completed: list[EditStage] = []
                touched = self._propagate(request, snapshot, version, measure, completed)

                with self._stage(EditStage.RELOAD, completed):
                    with session_scope(self._session_factory) as session:
                        grid = GridSelector(session).load_grid(
                            version_id=version.id,
                            root_node_id=root_node_id,
                            depth=depth if depth is not None else self._default_depth,
                            period_ids=period_ids,
                        )

                logger.info("edit_cell_completed", extra={
                    "completed_stages": [s.value for s in completed],
                    "touched_count": len(touched),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                })

        return CellEditResult(
            snapshot=grid,
            completed_stages=tuple(completed),
            disaggregated=EditStage.DISAGGREGATE in completed,
            touched_node_ids=tuple(touched),
            correlation_id=correlation_id,
        )

    def save_cells(
        self,
        updates: Iterable[CellUpdate],
        version_id: UUID | None = None,
        editor_id: UUID | None = None,
    ) -> int:
        """
        Batch upsert of raw values in one transaction, without propagation.

        Every referenced node, measure and period is validated first.
        """
        updates = list(updates)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=_str_or_none(editor_id),
        ):
            with session_scope(self._session_factory) as session:
                catalog = CatalogSelector(session)
                version = catalog.resolve_version(version_id)
                snapshot = catalog.load_snapshot()
                for update in updates:
                    snapshot.node(update.node_id)
                    snapshot.measure(update.measure_id)
                    snapshot.period(update.period_id)
                count = CellStore(session, self._clock).upsert_many(
                    updates, version.id, editor_id
                )

            logger.info("save_cells_completed", extra={
                "version_id": str(version.id),
                "cell_count": count,
            })
        return count

    def load_grid(
        self,
        version_id: UUID | None = None,
        root_node_id: UUID | None = None,
        depth: int | None = None,
        period_ids: Iterable[UUID] | None = None,
    ) -> GridSnapshot:
        """Read-only grid fetch for the host API layer."""
        with session_scope(self._session_factory) as session:
            return GridSelector(session).load_grid(
                version_id=version_id,
                root_node_id=root_node_id,
                depth=depth if depth is not None else self._default_depth,
                period_ids=period_ids,
            )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _propagate(
        self,
        request: CellEditRequest,
        snapshot: CatalogSnapshot,
        version: VersionInfo,
        measure: MeasureInfo,
        completed: list[EditStage],
    ) -> list[UUID]:
        """SAVE through AGGREGATE_TIME.  Returns the spread's touched node ids."""
        node_id = request.node_id
        period_id = request.period_id

        with self._stage(EditStage.SAVE, completed):
            with session_scope(self._session_factory) as session:
                CellStore(session, self._clock).upsert(
                    node_id, measure.id, period_id, version.id,
                    request.new_value, request.editor_id,
                )

        should_spread = (
            snapshot.has_children(node_id)
            and measure.is_editable
            and request.new_value is not None
        )
        logger.info("edit_classified", extra={
            "has_children": snapshot.has_children(node_id),
            "is_editable": measure.is_editable,
            "disaggregate": should_spread,
        })

        touched: list[UUID] = []
        if should_spread:
            with self._stage(EditStage.DISAGGREGATE, completed):
                with session_scope(self._session_factory) as session:
                    touched = DisaggregationService(session, self._clock).spread(
                        node_id, measure.id, period_id, version.id,
                        request.new_value,
                        mode=request.spread_mode,
                        weight_measure_id=request.weight_measure_id,
                        snapshot=snapshot,
                    )
        descendants = list(dict.fromkeys(touched))

        with self._stage(EditStage.RECALC, completed):
            if snapshot.derived_measures:
                for target in [node_id, *descendants]:
                    with session_scope(self._session_factory) as session:
                        FormulaService(session, self._clock).recalculate(
                            target, period_id, version.id, snapshot=snapshot
                        )

        rollup_measures = [measure.id] + [
            m.id for m in snapshot.derived_measures if m.id != measure.id
        ]

        with self._stage(EditStage.AGGREGATE_NODE, completed):
            for rollup_measure_id in rollup_measures:
                with session_scope(self._session_factory) as session:
                    AggregationService(session, self._clock).aggregate_up(
                        node_id, rollup_measure_id, period_id, version.id,
                        snapshot=snapshot,
                    )

        with self._stage(EditStage.AGGREGATE_TIME, completed):
            for origin_id in [node_id, *descendants]:
                for rollup_measure_id in rollup_measures:
                    with session_scope(self._session_factory) as session:
                        AggregationService(session, self._clock).aggregate_time_up(
                            origin_id, rollup_measure_id, period_id, version.id,
                            snapshot=snapshot,
                        )

        return touched

    def _validate(
        self, request: CellEditRequest
    ) -> tuple[CatalogSnapshot, VersionInfo, MeasureInfo]:
        with session_scope(self._session_factory) as session:
            catalog = CatalogSelector(session)
            version = catalog.resolve_version(request.version_id)
            snapshot = catalog.load_snapshot()

        snapshot.node(request.node_id)
        snapshot.period(request.period_id)
        measure = snapshot.measure(request.measure_id)
        if request.weight_measure_id is not None:
            snapshot.measure(request.weight_measure_id)
        return snapshot, version, measure

    @staticmethod
    def _build_request(
        node_id: UUID,
        measure_id: UUID,
        period_id: UUID,
        new_value: Any,
        version_id: UUID | None,
        spread_mode: SpreadMode | str,
        weight_measure_id: UUID | None,
        editor_id: UUID | None,
    ) -> CellEditRequest:
        try:
            mode = SpreadMode(spread_mode)
        except ValueError:
            raise InvalidSpreadRequestError(f"Unknown spread mode: {spread_mode!r}") from None
        try:
            value: Decimal | None = to_decimal(new_value)
        except ValueError as exc:
            raise InvalidSpreadRequestError(str(exc)) from exc
        return CellEditRequest(
            node_id=node_id,
            measure_id=measure_id,
            period_id=period_id,
            new_value=value,
            version_id=version_id,
            spread_mode=mode,
            weight_measure_id=weight_measure_id,
            editor_id=editor_id,
        )

    # ------------------------------------------------------------------
    # Stage bookkeeping
    # ------------------------------------------------------------------

    @contextmanager
    def _stage(self, stage: EditStage, completed: list[EditStage]) -> Iterator[None]:
        logger.debug("edit_stage_started", extra={"stage": stage.value})
        try:
            yield
        except PlanningKernelError:
            logger.error("edit_stage_failed", extra={
                "stage": stage.value,
                "completed_stages": [s.value for s in completed],
            }, exc_info=True)
            raise
        except Exception as exc:
            logger.error("edit_stage_failed", extra={
                "stage": stage.value,
                "completed_stages": [s.value for s in completed],
            }, exc_info=True)
            raise EditStageFailedError(
                stage.value, [s.value for s in completed]
            ) from exc
        completed.append(stage)
        logger.debug("edit_stage_completed", extra={"stage": stage.value})
