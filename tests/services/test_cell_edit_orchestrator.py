"""
End-to-end tests for CellEditOrchestrator.

Covers:
- Parent edit: proportional spread, formula recalc, both rollup axes
- Leaf edit: no spread, rollup to ancestors
- Even split remainder, WEIGHTED_AVG rollups, null cohorts
- Validation before any write
- Independently committed stages and retry idempotence
- Batch save and grid reload
"""

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from planning_kernel.domain.dtos import CellUpdate, cell_key
from planning_kernel.exceptions import (
    EditStageFailedError,
    InvalidSpreadRequestError,
    MeasureNotFoundError,
    NodeNotFoundError,
    TimePeriodNotFoundError,
    VersionNotFoundError,
)
from planning_kernel.models.cell import CellValue
from planning_kernel.services.aggregation_service import AggregationService
from planning_services import CellEditOrchestrator, EditStage

ALL_STAGES = (
    EditStage.SAVE,
    EditStage.DISAGGREGATE,
    EditStage.RECALC,
    EditStage.AGGREGATE_NODE,
    EditStage.AGGREGATE_TIME,
    EditStage.RELOAD,
)


def _edit(orchestrator, catalog, node, measure, period, value, **kwargs):
    return orchestrator.edit_cell(
        catalog.nodes[node],
        catalog.measures[measure],
        catalog.periods[period],
        value,
        **kwargs,
    )


def _cell_count(session_factory) -> int:
    with session_factory() as sess:
        return sess.scalar(select(func.count()).select_from(CellValue))


class TestParentEdit:
    """A -> B, C with Sales 100 / 300; A edited to 800."""

    @pytest.fixture
    def seeded(self, small_catalog, write_cells):
        write_cells(small_catalog, {
            ("B", "sales", "Jan"): Decimal("100"),
            ("C", "sales", "Jan"): Decimal("300"),
        })
        return small_catalog

    def test_proportional_spread(self, orchestrator, seeded, read_cell):
        result = _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"))

        assert read_cell(seeded, "B", "sales", "Jan") == Decimal("200")
        assert read_cell(seeded, "C", "sales", "Jan") == Decimal("600")
        assert read_cell(seeded, "A", "sales", "Jan") == Decimal("800")
        assert result.disaggregated
        assert result.completed_stages == ALL_STAGES
        assert set(result.touched_node_ids) == {seeded.nodes["B"], seeded.nodes["C"]}

    def test_margin_recalculated_with_null_cogs(self, orchestrator, seeded, read_cell):
        _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"))

        assert read_cell(seeded, "B", "margin_pct", "Jan") == Decimal("100")
        assert read_cell(seeded, "C", "margin_pct", "Jan") == Decimal("100")
        assert read_cell(seeded, "A", "margin_pct", "Jan") == Decimal("100")

    def test_time_rollup_from_node_and_descendants(self, orchestrator, seeded, read_cell):
        _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"))

        assert read_cell(seeded, "A", "sales", "Q1") == Decimal("800")
        assert read_cell(seeded, "B", "sales", "Q1") == Decimal("200")
        assert read_cell(seeded, "C", "sales", "Q1") == Decimal("600")
        assert read_cell(seeded, "B", "margin_pct", "Q1") == Decimal("100")

    def test_snapshot_reflects_storage(self, orchestrator, seeded):
        result = _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"))
        grid = result.snapshot

        assert grid.value_of(
            seeded.nodes["B"], seeded.measures["sales"], seeded.periods["Jan"]
        ) == Decimal("200")
        assert grid.version.id == seeded.default_version_id
        assert result.version_id == seeded.default_version_id
        key = cell_key(seeded.nodes["T1"], seeded.measures["sales"], seeded.periods["Feb"])
        assert key in grid.values
        assert grid.values[key] is None

    def test_retry_is_idempotent(self, orchestrator, seeded, session_factory):
        first = _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"))
        rows_after_first = _cell_count(session_factory)

        second = _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"))

        assert dict(second.snapshot.values) == dict(first.snapshot.values)
        assert _cell_count(session_factory) == rows_after_first

    def test_editor_stamp_only_on_edited_cell(
        self, orchestrator, seeded, session_factory
    ):
        editor = uuid4()
        _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"), editor_id=editor)

        with session_factory() as sess:
            stamps = {
                row.node_id: row.updated_by_id
                for row in sess.scalars(
                    select(CellValue).where(
                        CellValue.measure_id == seeded.measures["sales"],
                        CellValue.time_period_id == seeded.periods["Jan"],
                    )
                )
            }
        assert stamps[seeded.nodes["A"]] == editor
        assert stamps[seeded.nodes["B"]] is None

    def test_other_version_untouched(self, orchestrator, seeded, read_cell):
        _edit(orchestrator, seeded, "A", "sales", "Jan", Decimal("800"))

        assert read_cell(seeded, "B", "sales", "Jan", version="Scenario B") is None

    def test_explicit_version(self, orchestrator, seeded, read_cell):
        result = _edit(
            orchestrator, seeded, "A", "sales", "Jan", Decimal("90"),
            version_id=seeded.versions["Scenario B"],
        )

        assert result.version_id == seeded.versions["Scenario B"]
        assert read_cell(seeded, "B", "sales", "Jan", version="Scenario B") == Decimal("45")
        assert read_cell(seeded, "B", "sales", "Jan") == Decimal("100")


class TestLeafEdit:

    def test_no_spread_and_rollup(self, orchestrator, small_catalog, write_cells, read_cell):
        write_cells(small_catalog, {("C", "sales", "Jan"): Decimal("300")})

        result = _edit(orchestrator, small_catalog, "B", "sales", "Jan", "500")

        assert not result.disaggregated
        assert EditStage.DISAGGREGATE not in result.completed_stages
        assert result.touched_node_ids == ()
        assert read_cell(small_catalog, "A", "sales", "Jan") == Decimal("800")
        assert read_cell(small_catalog, "B", "sales", "Q1") == Decimal("500")

    def test_derived_measure_rolls_up_weighted(
        self, orchestrator, small_catalog, write_cells, read_cell
    ):
        write_cells(small_catalog, {
            ("C", "sales", "Jan"): Decimal("300"),
            ("C", "cogs", "Jan"): Decimal("150"),
            ("C", "margin_pct", "Jan"): Decimal("50"),
        })

        _edit(orchestrator, small_catalog, "B", "sales", "Jan", Decimal("100"))

        # B margin 100 weighted by 100, C margin 50 weighted by 300
        assert read_cell(small_catalog, "A", "margin_pct", "Jan") == Decimal("62.5")

    def test_weighted_avg_rollup(self, orchestrator, small_catalog, write_cells, read_cell):
        write_cells(small_catalog, {
            ("C", "weighted_price", "Jan"): Decimal("20"),
            ("B", "units", "Jan"): Decimal("1"),
            ("C", "units", "Jan"): Decimal("3"),
        })

        _edit(orchestrator, small_catalog, "B", "weighted_price", "Jan", Decimal("10"))

        assert read_cell(small_catalog, "A", "weighted_price", "Jan") == Decimal("17.5")

    def test_time_axis_ignores_weights(
        self, orchestrator, small_catalog, write_cells, read_cell
    ):
        write_cells(small_catalog, {
            ("B", "weighted_price", "Feb"): Decimal("20"),
            ("B", "units", "Jan"): Decimal("1"),
            ("B", "units", "Feb"): Decimal("3"),
        })
        _edit(orchestrator, small_catalog, "B", "weighted_price", "Jan", Decimal("10"))
        before = read_cell(small_catalog, "B", "weighted_price", "Q1")

        write_cells(small_catalog, {("B", "units", "Feb"): Decimal("300")})
        _edit(orchestrator, small_catalog, "B", "weighted_price", "Jan", Decimal("10"))

        assert before == Decimal("15")
        assert read_cell(small_catalog, "B", "weighted_price", "Q1") == before

    def test_formula_measure_edit_is_not_spread(
        self, orchestrator, small_catalog, write_cells, read_cell
    ):
        write_cells(small_catalog, {
            ("B", "sales", "Jan"): Decimal("100"),
            ("B", "margin_pct", "Jan"): Decimal("7"),
        })

        result = _edit(orchestrator, small_catalog, "A", "margin_pct", "Jan", Decimal("55"))

        assert not result.disaggregated
        assert read_cell(small_catalog, "B", "margin_pct", "Jan") == Decimal("7")

    def test_none_measure_saved_without_rollup(
        self, orchestrator, small_catalog, read_cell
    ):
        _edit(orchestrator, small_catalog, "B", "plan_note", "Jan", Decimal("3"))

        assert read_cell(small_catalog, "B", "plan_note", "Jan") == Decimal("3")
        assert read_cell(small_catalog, "A", "plan_note", "Jan") is None
        assert read_cell(small_catalog, "B", "plan_note", "Q1") is None


class TestSpreadModes:

    def test_even_split_remainder_on_last_child(self, orchestrator, small_catalog, read_cell):
        result = _edit(
            orchestrator, small_catalog, "T", "sales", "Jan", Decimal("100"),
            spread_mode="even",
        )

        values = [read_cell(small_catalog, n, "sales", "Jan") for n in ("T1", "T2", "T3")]
        assert values == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(values) == Decimal("100")
        assert result.disaggregated

    def test_weighted_by_units(self, orchestrator, small_catalog, write_cells, read_cell):
        write_cells(small_catalog, {
            ("B", "units", "Jan"): Decimal("1"),
            ("C", "units", "Jan"): Decimal("4"),
        })

        _edit(
            orchestrator, small_catalog, "A", "sales", "Jan", Decimal("1000"),
            spread_mode="weighted", weight_measure_id=small_catalog.measures["units"],
        )

        assert read_cell(small_catalog, "B", "sales", "Jan") == Decimal("200")
        assert read_cell(small_catalog, "C", "sales", "Jan") == Decimal("800")


class TestNullEdits:

    def test_all_null_children_sum_to_null(
        self, orchestrator, small_catalog, write_cells, read_cell, session_factory
    ):
        write_cells(small_catalog, {("A", "sales", "Jan"): Decimal("999")})

        _edit(orchestrator, small_catalog, "B", "sales", "Jan", None)

        with session_factory() as sess:
            row = sess.scalars(
                select(CellValue).where(
                    CellValue.node_id == small_catalog.nodes["A"],
                    CellValue.measure_id == small_catalog.measures["sales"],
                    CellValue.time_period_id == small_catalog.periods["Jan"],
                )
            ).one()
        assert row.value is None

    def test_null_parent_edit_skips_spread(
        self, orchestrator, small_catalog, write_cells, read_cell
    ):
        write_cells(small_catalog, {("B", "sales", "Jan"): Decimal("10")})

        result = _edit(orchestrator, small_catalog, "A", "sales", "Jan", None)

        assert not result.disaggregated
        assert read_cell(small_catalog, "B", "sales", "Jan") == Decimal("10")


class TestValidation:
    """Nothing is written when the request is invalid."""

    def test_unknown_node(self, orchestrator, small_catalog, session_factory):
        with pytest.raises(NodeNotFoundError):
            orchestrator.edit_cell(
                uuid4(), small_catalog.measures["sales"], small_catalog.periods["Jan"], 1
            )
        assert _cell_count(session_factory) == 0

    def test_unknown_measure(self, orchestrator, small_catalog, session_factory):
        with pytest.raises(MeasureNotFoundError):
            orchestrator.edit_cell(
                small_catalog.nodes["B"], uuid4(), small_catalog.periods["Jan"], 1
            )
        assert _cell_count(session_factory) == 0

    def test_unknown_period(self, orchestrator, small_catalog, session_factory):
        with pytest.raises(TimePeriodNotFoundError):
            orchestrator.edit_cell(
                small_catalog.nodes["B"], small_catalog.measures["sales"], uuid4(), 1
            )
        assert _cell_count(session_factory) == 0

    def test_unknown_version(self, orchestrator, small_catalog, session_factory):
        with pytest.raises(VersionNotFoundError):
            _edit(orchestrator, small_catalog, "B", "sales", "Jan", 1, version_id=uuid4())
        assert _cell_count(session_factory) == 0

    def test_unknown_weight_measure(self, orchestrator, small_catalog, session_factory):
        with pytest.raises(MeasureNotFoundError):
            _edit(
                orchestrator, small_catalog, "A", "sales", "Jan", 1,
                spread_mode="weighted", weight_measure_id=uuid4(),
            )
        assert _cell_count(session_factory) == 0

    @pytest.mark.parametrize("value", ["abc", float("nan"), True])
    def test_bad_value(self, orchestrator, small_catalog, session_factory, value):
        with pytest.raises(InvalidSpreadRequestError):
            _edit(orchestrator, small_catalog, "B", "sales", "Jan", value)
        assert _cell_count(session_factory) == 0

    def test_bad_mode(self, orchestrator, small_catalog):
        with pytest.raises(InvalidSpreadRequestError) as exc_info:
            _edit(orchestrator, small_catalog, "A", "sales", "Jan", 1, spread_mode="random")
        assert exc_info.value.is_client_error


class TestStageFailure:
    """Stages commit independently; a failure keeps earlier stages."""

    def test_failure_wrapped_with_completed_stages(
        self, orchestrator, small_catalog, write_cells, read_cell, captured_logs
    ):
        write_cells(small_catalog, {
            ("B", "sales", "Jan"): Decimal("100"),
            ("C", "sales", "Jan"): Decimal("300"),
        })

        with patch.object(
            AggregationService, "aggregate_up", side_effect=RuntimeError("disk full")
        ):
            with pytest.raises(EditStageFailedError) as exc_info:
                _edit(orchestrator, small_catalog, "A", "sales", "Jan", Decimal("800"))

        err = exc_info.value
        assert err.stage == "aggregate_node"
        assert err.completed_stages == ["save", "disaggregate", "recalc"]
        assert isinstance(err.__cause__, RuntimeError)
        assert read_cell(small_catalog, "A", "sales", "Jan") == Decimal("800")
        assert read_cell(small_catalog, "B", "sales", "Jan") == Decimal("200")
        assert read_cell(small_catalog, "B", "margin_pct", "Jan") == Decimal("100")
        assert read_cell(small_catalog, "A", "sales", "Q1") is None
        failed = [r for r in captured_logs() if r["message"] == "edit_stage_failed"]
        assert failed[0]["stage"] == "aggregate_node"

    def test_retry_after_failure_completes(
        self, orchestrator, small_catalog, write_cells, read_cell
    ):
        write_cells(small_catalog, {
            ("B", "sales", "Jan"): Decimal("100"),
            ("C", "sales", "Jan"): Decimal("300"),
        })
        with patch.object(
            AggregationService, "aggregate_time_up", side_effect=RuntimeError("timeout")
        ):
            with pytest.raises(EditStageFailedError):
                _edit(orchestrator, small_catalog, "A", "sales", "Jan", Decimal("800"))

        result = _edit(orchestrator, small_catalog, "A", "sales", "Jan", Decimal("800"))

        assert result.completed_stages == ALL_STAGES
        assert read_cell(small_catalog, "B", "sales", "Jan") == Decimal("200")
        assert read_cell(small_catalog, "A", "sales", "Q1") == Decimal("800")


class TestLogging:

    def test_pipeline_events_carry_correlation_id(
        self, orchestrator, small_catalog, captured_logs
    ):
        result = _edit(orchestrator, small_catalog, "B", "sales", "Jan", Decimal("5"))

        logs = captured_logs()
        started = next(r for r in logs if r["message"] == "edit_cell_started")
        completed = next(r for r in logs if r["message"] == "edit_cell_completed")
        assert started["correlation_id"] == result.correlation_id
        assert completed["correlation_id"] == result.correlation_id
        assert completed["completed_stages"] == [s.value for s in result.completed_stages]


class TestSaveAndLoad:

    def test_save_cells_without_propagation(
        self, orchestrator, small_catalog, read_cell
    ):
        c = small_catalog
        count = orchestrator.save_cells([
            CellUpdate(c.nodes["B"], c.measures["sales"], c.periods["Jan"], Decimal("1")),
            CellUpdate(c.nodes["C"], c.measures["sales"], c.periods["Jan"], Decimal("2")),
        ])

        assert count == 2
        assert read_cell(c, "C", "sales", "Jan") == Decimal("2")
        assert read_cell(c, "A", "sales", "Jan") is None

    def test_save_cells_validates_every_reference(
        self, orchestrator, small_catalog, session_factory
    ):
        c = small_catalog
        with pytest.raises(NodeNotFoundError):
            orchestrator.save_cells([
                CellUpdate(c.nodes["B"], c.measures["sales"], c.periods["Jan"], Decimal("1")),
                CellUpdate(uuid4(), c.measures["sales"], c.periods["Jan"], Decimal("2")),
            ])
        assert _cell_count(session_factory) == 0

    def test_load_grid_subtree_and_depth(self, orchestrator, small_catalog):
        c = small_catalog
        grid = orchestrator.load_grid(root_node_id=c.nodes["A"], depth=0)

        assert [t.node.name for t in grid.hierarchy] == ["A"]
        assert grid.hierarchy[0].children == ()
        assert len(grid.values) == len(grid.measures) * 4

    def test_default_depth_applies(self, session_factory, clock, small_catalog):
        orchestrator = CellEditOrchestrator(session_factory, clock=clock, default_depth=0)

        grid = orchestrator.load_grid()

        assert [t.node.name for t in grid.hierarchy] == ["A", "T"]
        assert all(t.children == () for t in grid.hierarchy)

    def test_period_filter(self, orchestrator, small_catalog):
        c = small_catalog
        grid = orchestrator.load_grid(period_ids=[c.periods["Jan"], c.periods["Feb"]])

        assert [t.period.label for t in grid.time_periods] == ["Jan", "Feb"]
        assert len(grid.values) == 7 * len(grid.measures) * 2
