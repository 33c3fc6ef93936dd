"""Tests for resolving lot codes back to production runs and names."""

from datetime import datetime, timedelta, timezone

import pytest

from bakery_trace.models import Operator, Recipe
from bakery_trace.services import lot_reconciliation_service, production_run_service
from bakery_trace.services.exceptions import ValidationError

START = datetime(2024, 1, 10, 8, 0, tzinfo=timezone.utc)
FINISH = datetime(2024, 1, 10, 10, 30, tzinfo=timezone.utc)
REFERENCE = datetime(2024, 3, 1, tzinfo=timezone.utc)


def produce(recipe_id, operator_id, started_at=START, finished_at=FINISH):
    started = production_run_service.start_production(
        recipe_id, operator_id, started_at=started_at
    )
    return production_run_service.finish_production(
        started["production_run_id"], finished_at=finished_at
    )


@pytest.fixture
def named_recipes(test_db):
    """Recipes in storage order: Arancia, Pane, Alba."""
    session = test_db()
    recipes = [Recipe(name=name) for name in ("Arancia", "Pane", "Alba")]
    session.add_all(recipes)
    session.commit()
    return recipes


class TestExactMatch:
    def test_completed_run_resolves_to_names(self, sample_recipe, sample_operator):
        run = produce(sample_recipe.id, sample_operator.id)

        resolution = lot_reconciliation_service.resolve_lot(
            " pemi9dpc9dti ", reference=REFERENCE
        )

        assert resolution.is_exact
        assert resolution.lot == "PEMI9DPC9DTI"
        assert resolution.production_run_id == run["id"]
        assert resolution.recipe_name == "Panettone"
        assert resolution.operator_name == "Mario Rossi"
        assert resolution.decoded.started_at == START
        assert resolution.decoded.finished_at == FINISH
        assert resolution.candidate_recipes == []
        assert resolution.candidate_operators == []

    def test_seconds_within_tolerance_still_match(self, sample_recipe, sample_operator):
        run = produce(
            sample_recipe.id,
            sample_operator.id,
            started_at=START + timedelta(seconds=45),
            finished_at=FINISH + timedelta(seconds=50),
        )
        assert run["production_lot"] == "PEMI9DPC9DTI"

        resolution = lot_reconciliation_service.resolve_lot(run["production_lot"],
                                                            reference=REFERENCE)
        assert resolution.production_run_id == run["id"]

    def test_loaded_run_still_resolves(self, sample_recipe, sample_operator):
        run = produce(sample_recipe.id, sample_operator.id)
        production_run_service.mark_loaded(run["id"])

        resolution = lot_reconciliation_service.resolve_lot(run["production_lot"],
                                                            reference=REFERENCE)
        assert resolution.production_run_id == run["id"]

    def test_run_in_earlier_cycle_resolves(self, sample_recipe, sample_operator):
        started_at = datetime(2021, 6, 1, 12, 0, tzinfo=timezone.utc)
        run = produce(
            sample_recipe.id,
            sample_operator.id,
            started_at=started_at,
            finished_at=started_at + timedelta(hours=2),
        )

        resolution = lot_reconciliation_service.resolve_lot(run["production_lot"],
                                                            reference=REFERENCE)
        assert resolution.production_run_id == run["id"]
        assert resolution.decoded.cycle == 0
        assert resolution.decoded.started_at == started_at

    def test_forward_dated_run_resolves(self, sample_recipe, sample_operator):
        run = produce(sample_recipe.id, sample_operator.id)

        resolution = lot_reconciliation_service.resolve_lot(
            run["production_lot"], reference=START - timedelta(hours=1)
        )

        assert resolution.production_run_id == run["id"]
        assert resolution.decoded.cycle == 1
        assert resolution.decoded.started_at == START

    def test_non_ascii_recipe_name_resolves(self, test_db, sample_operator):
        session = test_db()
        recipe = Recipe(name="Stollen Strauß")
        session.add(recipe)
        session.commit()
        recipe_id = recipe.id

        run = produce(recipe_id, sample_operator.id)
        assert run["production_lot"] == "SSMI9DPC9DTI"

        resolution = lot_reconciliation_service.resolve_lot(run["production_lot"],
                                                            reference=REFERENCE)
        assert resolution.production_run_id == run["id"]
        assert resolution.recipe_name == "Stollen Strauß"

    def test_in_progress_and_aborted_runs_do_not_match(self, sample_recipe, sample_operator):
        started = production_run_service.start_production(
            sample_recipe.id, sample_operator.id, started_at=START
        )
        production_run_service.abort_production(started["production_run_id"])

        resolution = lot_reconciliation_service.resolve_lot("PEMI9DPC9DTI", reference=REFERENCE)

        assert not resolution.is_exact
        assert resolution.candidate_recipes == ["Panettone"]
        assert resolution.candidate_operators == ["Mario Rossi"]


class TestCandidates:
    def test_candidates_in_storage_order(self, test_db, named_recipes):
        resolution = lot_reconciliation_service.resolve_lot("AAZZ00000001", reference=REFERENCE)

        assert resolution.production_run_id is None
        assert resolution.recipe_name is None
        assert resolution.candidate_recipes == ["Arancia", "Alba"]
        assert resolution.candidate_operators == []

    def test_candidate_operators_fall_back_to_username(self, test_db):
        session = test_db()
        session.add_all([
            Operator(username="zeta"),
            Operator(username="zz1", display_name="Zanardi Z"),
            Operator(username="zorz", display_name="Giorgio"),
        ])
        session.commit()

        resolution = lot_reconciliation_service.resolve_lot("XXZA00000001", reference=REFERENCE)
        assert resolution.candidate_operators == ["zeta"]

    def test_candidates_are_capped(self, test_db):
        session = test_db()
        session.add_all([Recipe(name=f"Alba {i:02d} Torta") for i in range(12)])
        session.commit()

        resolution = lot_reconciliation_service.resolve_lot("AAZZ00000001", reference=REFERENCE)

        assert len(resolution.candidate_recipes) == 10
        assert resolution.candidate_recipes[0] == "Alba 00 Torta"
        assert resolution.candidate_recipes[-1] == "Alba 09 Torta"

    def test_no_candidates_is_not_an_error(self, test_db):
        resolution = lot_reconciliation_service.resolve_lot("QQWW00000001", reference=REFERENCE)
        assert resolution.candidate_recipes == []
        assert resolution.candidate_operators == []

    def test_to_dict(self, test_db, named_recipes):
        data = lot_reconciliation_service.resolve_lot(
            "AAZZ00000001", reference=REFERENCE
        ).to_dict()

        assert data["lot"] == "AAZZ00000001"
        assert data["decoded"]["recipe_initials"] == "AA"
        assert data["decoded"]["operator_initials"] == "ZZ"
        assert data["recipe_name"] is None
        assert data["production_run_id"] is None
        assert data["possible_recipes"] == ["Arancia", "Alba"]
        assert data["possible_operators"] == []


class TestInvalidInput:
    @pytest.mark.parametrize("lot", [None, "", "   "])
    def test_missing_lot(self, test_db, lot):
        with pytest.raises(ValidationError) as exc_info:
            lot_reconciliation_service.resolve_lot(lot)
        assert exc_info.value.errors == ["Lot is required"]

    @pytest.mark.parametrize("lot", ["PEMI9DPC9DT", "PEMI9DPC9DTIX", "PEMI-DPC9DTI", "PÈMI9DPC9DTI"])
    def test_malformed_lot(self, test_db, lot):
        with pytest.raises(ValidationError):
            lot_reconciliation_service.resolve_lot(lot)

    def test_decode_lot_input(self):
        decoded = lot_reconciliation_service.decode_lot_input("pemi9dpc9dti", reference=FINISH)
        assert decoded.recipe_initials == "PE"
        assert decoded.started_at == START
