"""Tests for the production run lifecycle.

in_progress --finish--> completed <--> loaded
in_progress --abort--> aborted
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from bakery_trace.models import Operator, ProductionRun, Recipe
from bakery_trace.services import production_run_service
from bakery_trace.services.exceptions import (
    ActiveProductionExists,
    InvalidProductionState,
    OperatorNotFound,
    ProductionRunNotFound,
    RecipeNotFound,
    ValidationError,
)

START = datetime(2024, 1, 10, 8, 0, tzinfo=timezone.utc)
FINISH = datetime(2024, 1, 10, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def started_run(test_db, sample_recipe, sample_operator):
    """An in-progress run of the sample recipe started at START."""
    return production_run_service.start_production(
        sample_recipe.id, sample_operator.id, started_at=START, notes="  first batch "
    )


class TestStartProduction:
    def test_start_creates_in_progress_run(self, started_run, sample_recipe):
        production = started_run["production"]

        assert started_run["version_number"] == 1
        assert production["id"] == started_run["production_run_id"]
        assert production["recipe_id"] == sample_recipe.id
        assert production["recipe_snapshot_id"] == started_run["recipe_snapshot_id"]
        assert production["status"] == "in_progress"
        assert production["production_lot"] == "TEMP"
        assert production["finished_at"] is None
        assert production["started_at"] == "2024-01-10T08:00:00+00:00"
        assert production["notes"] == "first batch"

    def test_start_defaults_to_now(self, test_db, sample_recipe, sample_operator):
        before = datetime.now(timezone.utc) - timedelta(seconds=1)
        result = production_run_service.start_production(sample_recipe.id, sample_operator.id)
        started_at = datetime.fromisoformat(result["production"]["started_at"])
        assert started_at >= before

    def test_second_start_is_rejected(self, started_run, sample_recipe, sample_operator):
        with pytest.raises(ActiveProductionExists) as exc_info:
            production_run_service.start_production(sample_recipe.id, sample_operator.id)

        assert exc_info.value.recipe_id == sample_recipe.id
        assert exc_info.value.production_run_id == started_run["production_run_id"]

    def test_rejected_start_creates_no_snapshot(self, test_db, started_run, sample_recipe,
                                                sample_operator):
        with pytest.raises(ActiveProductionExists):
            production_run_service.start_production(sample_recipe.id, sample_operator.id)

        session = test_db()
        assert session.query(ProductionRun).count() == 1
        assert session.get(Recipe, sample_recipe.id).last_snapshot_version == 1

    def test_other_recipe_can_start_concurrently(self, test_db, started_run, sample_operator):
        session = test_db()
        other = Recipe(name="Focaccia")
        session.add(other)
        session.commit()

        result = production_run_service.start_production(other.id, sample_operator.id)
        assert result["version_number"] == 1

    def test_missing_recipe(self, test_db, sample_operator):
        with pytest.raises(RecipeNotFound):
            production_run_service.start_production(9999, sample_operator.id)

    def test_missing_operator(self, test_db, sample_recipe):
        with pytest.raises(OperatorNotFound):
            production_run_service.start_production(sample_recipe.id, 9999)


class TestFinishProduction:
    def test_finish_assigns_lot(self, started_run, sample_recipe):
        run = production_run_service.finish_production(
            started_run["production_run_id"], recipe_id=sample_recipe.id, finished_at=FINISH
        )

        assert run["status"] == "completed"
        assert run["production_lot"] == "PEMI9DPC9DTI"
        assert run["finished_at"] == "2024-01-10T10:30:00+00:00"

    def test_finish_uses_username_without_display_name(self, test_db, sample_recipe):
        session = test_db()
        operator = Operator(username="lbianchi")
        session.add(operator)
        session.commit()

        started = production_run_service.start_production(
            sample_recipe.id, operator.id, started_at=START
        )
        run = production_run_service.finish_production(
            started["production_run_id"], finished_at=FINISH
        )
        assert run["production_lot"][:4] == "PELI"

    def test_finish_twice_fails_without_changes(self, started_run):
        run_id = started_run["production_run_id"]
        first = production_run_service.finish_production(run_id, finished_at=FINISH)

        with pytest.raises(InvalidProductionState) as exc_info:
            production_run_service.finish_production(
                run_id, finished_at=FINISH + timedelta(hours=1)
            )

        assert exc_info.value.current_status == "completed"
        again = production_run_service.get_production_run(run_id)
        assert again["production_lot"] == first["production_lot"]
        assert again["finished_at"] == first["finished_at"]

    def test_finish_other_recipe_run_is_not_found(self, started_run, sample_recipe):
        with pytest.raises(ProductionRunNotFound):
            production_run_service.finish_production(
                started_run["production_run_id"], recipe_id=sample_recipe.id + 1
            )

        active = production_run_service.get_active_production(sample_recipe.id)
        assert active["production_lot"] == "TEMP"

    def test_finish_missing_run(self, test_db):
        with pytest.raises(ProductionRunNotFound):
            production_run_service.finish_production(9999)

    def test_blank_notes_keep_existing(self, started_run):
        run = production_run_service.finish_production(
            started_run["production_run_id"], notes="   ", finished_at=FINISH
        )
        assert run["notes"] == "first batch"

    def test_new_notes_replace_existing(self, started_run):
        run = production_run_service.finish_production(
            started_run["production_run_id"], notes=" oven 2 ", finished_at=FINISH
        )
        assert run["notes"] == "oven 2"

    def test_finish_frees_recipe_for_next_version(self, started_run, sample_recipe,
                                                  sample_operator):
        production_run_service.finish_production(
            started_run["production_run_id"], finished_at=FINISH
        )
        result = production_run_service.start_production(sample_recipe.id, sample_operator.id)
        assert result["version_number"] == 2

    def test_finish_logs_operation(self, started_run, caplog):
        with caplog.at_level(logging.INFO):
            production_run_service.finish_production(
                started_run["production_run_id"], finished_at=FINISH
            )

        records = [r for r in caplog.records if getattr(r, "operation", None) == "finish_production"]
        assert records
        assert records[-1].production_lot == "PEMI9DPC9DTI"


class TestStatusOverrides:
    def test_mark_loaded(self, started_run):
        run_id = started_run["production_run_id"]
        production_run_service.finish_production(run_id, finished_at=FINISH)

        run = production_run_service.mark_loaded(run_id)
        assert run["status"] == "loaded"
        assert run["production_lot"] == "PEMI9DPC9DTI"

        with pytest.raises(InvalidProductionState):
            production_run_service.mark_loaded(run_id)

    def test_loaded_back_to_completed(self, started_run):
        run_id = started_run["production_run_id"]
        production_run_service.finish_production(run_id, finished_at=FINISH)
        production_run_service.set_production_status(run_id, "loaded")

        run = production_run_service.set_production_status(run_id, "completed")
        assert run["status"] == "completed"

    def test_in_progress_cannot_be_overridden(self, started_run):
        with pytest.raises(InvalidProductionState):
            production_run_service.set_production_status(
                started_run["production_run_id"], "completed"
            )
        with pytest.raises(InvalidProductionState):
            production_run_service.mark_loaded(started_run["production_run_id"])

    @pytest.mark.parametrize("status", ["in_progress", "aborted", "shipped", ""])
    def test_invalid_target_status(self, started_run, status):
        with pytest.raises(ValidationError):
            production_run_service.set_production_status(
                started_run["production_run_id"], status
            )

    def test_missing_run(self, test_db):
        with pytest.raises(ProductionRunNotFound):
            production_run_service.set_production_status(9999, "loaded")


class TestAbortProduction:
    def test_abort_frees_recipe(self, started_run, sample_recipe, sample_operator):
        run = production_run_service.abort_production(
            started_run["production_run_id"], notes="power cut"
        )

        assert run["status"] == "aborted"
        assert run["production_lot"] == "TEMP"
        assert run["finished_at"] is not None
        assert run["notes"] == "power cut"
        assert production_run_service.get_active_production(sample_recipe.id) is None

        result = production_run_service.start_production(sample_recipe.id, sample_operator.id)
        assert result["version_number"] == 2

    def test_aborted_run_cannot_finish_or_abort(self, started_run):
        run_id = started_run["production_run_id"]
        production_run_service.abort_production(run_id)

        with pytest.raises(InvalidProductionState):
            production_run_service.finish_production(run_id)
        with pytest.raises(InvalidProductionState):
            production_run_service.abort_production(run_id)

    def test_completed_run_cannot_abort(self, started_run):
        run_id = started_run["production_run_id"]
        production_run_service.finish_production(run_id, finished_at=FINISH)

        with pytest.raises(InvalidProductionState):
            production_run_service.abort_production(run_id)


class TestQueries:
    def test_get_active_production(self, started_run, sample_recipe):
        active = production_run_service.get_active_production(sample_recipe.id)
        assert active["id"] == started_run["production_run_id"]

    def test_get_production_run_includes_names(self, started_run):
        run = production_run_service.get_production_run(started_run["production_run_id"])
        assert run["recipe_name"] == "Panettone"
        assert run["operator_name"] == "Mario Rossi"
        assert run["operator_username"] == "mrossi"
        assert run["version_number"] == 1

    def test_get_production_run_missing(self, test_db):
        with pytest.raises(ProductionRunNotFound):
            production_run_service.get_production_run(9999)

    def test_history_newest_first_with_snapshot(self, started_run, sample_recipe,
                                                sample_operator):
        production_run_service.finish_production(
            started_run["production_run_id"], finished_at=FINISH
        )
        later = production_run_service.start_production(
            sample_recipe.id, sample_operator.id, started_at=START + timedelta(days=1)
        )

        history = production_run_service.get_production_history(sample_recipe.id)

        assert [h["production"]["id"] for h in history] == [
            later["production_run_id"],
            started_run["production_run_id"],
        ]
        assert [h["production"]["version_number"] for h in history] == [2, 1]
        assert history[0]["recipe_snapshot"]["name"] == "Panettone"
        assert [i["sku"] for i in history[0]["ingredients"]] == ["FLR-00", "BTR-01"]

    def test_history_filters_by_recipe(self, test_db, started_run, sample_operator):
        session = test_db()
        other = Recipe(name="Focaccia")
        session.add(other)
        session.commit()
        production_run_service.start_production(other.id, sample_operator.id)

        assert len(production_run_service.get_production_history()) == 2
        assert len(production_run_service.get_production_history(other.id)) == 1


class TestConcurrentLifecycle:
    def test_concurrent_starts_admit_exactly_one(self, file_db, shared_recipe):
        recipe_id, operator_id = shared_recipe
        workers = 8

        def start(_):
            try:
                production_run_service.start_production(recipe_id, operator_id)
                return "started"
            except ActiveProductionExists:
                return "conflict"

        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(executor.map(start, range(workers)))

        assert outcomes.count("started") == 1
        assert outcomes.count("conflict") == workers - 1

        session = file_db()
        try:
            assert session.query(ProductionRun).filter_by(status="in_progress").count() == 1
            assert session.get(Recipe, recipe_id).last_snapshot_version == 1
        finally:
            session.close()

    def test_concurrent_finishes_admit_exactly_one(self, file_db, shared_recipe):
        recipe_id, operator_id = shared_recipe
        started = production_run_service.start_production(
            recipe_id, operator_id, started_at=START
        )
        run_id = started["production_run_id"]

        def finish(offset):
            try:
                run = production_run_service.finish_production(
                    run_id, finished_at=FINISH + timedelta(minutes=offset)
                )
                return run["production_lot"]
            except InvalidProductionState:
                return None

        with ThreadPoolExecutor(max_workers=4) as executor:
            lots = list(executor.map(finish, range(4)))

        winners = [lot for lot in lots if lot is not None]
        assert len(winners) == 1

        stored = production_run_service.get_production_run(run_id)
        assert stored["status"] == "completed"
        assert stored["production_lot"] == winners[0]
