"""
Recipe Snapshot Service.

Provides immutable snapshot creation and retrieval. NO UPDATE METHODS.
A snapshot captures the complete recipe state (fields, oven and mixing
schedules, ordered ingredients) when production starts, stamped with a
version number that is strictly increasing per recipe.

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly (caller owns the transaction)
- If session is None, create a new session via session_scope()

Version allocation:
    The version number comes from an atomic increment of
    Recipe.last_snapshot_version executed inside the snapshot transaction.
    The UPDATE takes the row (or database) write lock, so concurrent
    snapshot creation for the same recipe is serialized until commit and
    never issues the same number twice. The (recipe_id, version_number)
    unique constraint backs this up at the storage level.
"""

import json
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from bakery_trace.models import Operator, Recipe, RecipeSnapshot, ProductionRun
from bakery_trace.services.database import session_scope
from bakery_trace.services.exceptions import (
    DatabaseError,
    OperatorNotFound,
    RecipeNotFound,
    SnapshotNotFound,
    ValidationError,
)
from bakery_trace.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def create_recipe_snapshot(
    recipe_id: int,
    created_by_operator_id: int,
    session: Session = None,
) -> dict:
    """
    Create an immutable snapshot of the recipe's current state.

    Args:
        recipe_id: Source recipe ID
        created_by_operator_id: Operator starting the production
        session: Optional SQLAlchemy session for transaction sharing

    Returns:
        dict with snapshot data including id and version_number

    Raises:
        RecipeNotFound: If the recipe does not exist
        OperatorNotFound: If the operator does not exist
        DatabaseError: If the snapshot cannot be written
    """
    if session is not None:
        return _create_recipe_snapshot_impl(recipe_id, created_by_operator_id, session)

    try:
        with session_scope() as session:
            return _create_recipe_snapshot_impl(recipe_id, created_by_operator_id, session)
    except SQLAlchemyError as e:
        raise DatabaseError(f"creating snapshot for recipe {recipe_id}", e) from e


def _create_recipe_snapshot_impl(
    recipe_id: int,
    created_by_operator_id: int,
    session: Session,
) -> dict:
    """Internal implementation of snapshot creation."""
    version_number = _allocate_version_number(recipe_id, session)

    operator = session.get(Operator, created_by_operator_id)
    if operator is None:
        raise OperatorNotFound(created_by_operator_id)

    recipe = session.get(Recipe, recipe_id, populate_existing=True)

    recipe_data = _serialize_recipe(recipe)
    ingredients_data = [_serialize_ingredient(ri) for ri in recipe.recipe_ingredients]

    snapshot = RecipeSnapshot(
        recipe_id=recipe_id,
        version_number=version_number,
        created_by_operator_id=created_by_operator_id,
        recipe_data=json.dumps(recipe_data),
        ingredients_data=json.dumps(ingredients_data),
    )
    session.add(snapshot)
    session.flush()  # Get ID without committing

    log_operation(
        logger,
        operation="create_recipe_snapshot",
        outcome="success",
        recipe_id=recipe_id,
        snapshot_id=snapshot.id,
        version_number=version_number,
    )

    return snapshot.to_dict()


def _allocate_version_number(recipe_id: int, session: Session) -> int:
    """
    Atomically reserve the next snapshot version number for a recipe.

    Raises:
        RecipeNotFound: If no recipe row was updated
    """
    result = session.execute(
        update(Recipe)
        .where(Recipe.id == recipe_id)
        .values(last_snapshot_version=Recipe.last_snapshot_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise RecipeNotFound(recipe_id)

    return session.execute(
        select(Recipe.last_snapshot_version).where(Recipe.id == recipe_id)
    ).scalar_one()


def _number(value) -> Optional[float]:
    """Render Decimal columns as JSON numbers."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def _serialize_recipe(recipe: Recipe) -> dict:
    """Build the recipe_data payload: recipe fields plus schedules."""
    return {
        "id": recipe.id,
        "name": recipe.name,
        "sku": recipe.sku,
        "notes": recipe.notes,
        "total_qty_for_recipe": _number(recipe.total_qty_for_recipe),
        "waste_percent": _number(recipe.waste_percent),
        "water_percent": _number(recipe.water_percent),
        "package_weight": _number(recipe.package_weight),
        "number_of_packages": _number(recipe.number_of_packages),
        "time_minutes": _number(recipe.time_minutes),
        "temperature_celsius": _number(recipe.temperature_celsius),
        "oven_temperatures": [
            {
                "temperature": _number(step.temperature),
                "minutes": _number(step.minutes),
                "order": step.position,
            }
            for step in recipe.oven_temperatures
        ],
        "mixing_times": [
            {
                "minutes": _number(step.minutes),
                "speed": _number(step.speed),
                "order": step.position,
            }
            for step in recipe.mixing_times
        ],
    }


def _serialize_ingredient(ri) -> dict:
    """Build one entry of the ingredients_data payload."""
    return {
        "id": ri.id,
        "sku": ri.sku,
        "name": ri.name,
        "qty_original": _number(ri.qty_original),
        "price_cost_per_kg": _number(ri.price_cost_per_kg),
        "is_powder_ingredient": bool(ri.is_powder_ingredient),
        "supplier": ri.supplier,
        "warehouse_location": ri.warehouse_location,
        "lot": ri.lot,
        "order": ri.position,
    }


def get_recipe_snapshots(recipe_id: int, session: Session = None) -> list:
    """
    Get all snapshots for a recipe, newest version first.

    Args:
        recipe_id: Recipe to get history for
        session: Optional session

    Returns:
        List of snapshot dicts
    """
    if session is not None:
        return _get_recipe_snapshots_impl(recipe_id, session)

    with session_scope() as session:
        return _get_recipe_snapshots_impl(recipe_id, session)


def _get_recipe_snapshots_impl(recipe_id: int, session: Session) -> list:
    """Internal implementation of get_recipe_snapshots."""
    snapshots = (
        session.query(RecipeSnapshot)
        .filter_by(recipe_id=recipe_id)
        .order_by(RecipeSnapshot.version_number.desc())
        .all()
    )
    return [s.to_dict() for s in snapshots]


def get_snapshot_by_id(snapshot_id: int, session: Session = None) -> Optional[dict]:
    """
    Get a snapshot by its ID.

    Args:
        snapshot_id: Snapshot ID
        session: Optional session

    Returns:
        Snapshot dict or None if not found
    """
    if session is not None:
        return _get_snapshot_by_id_impl(snapshot_id, session)

    with session_scope() as session:
        return _get_snapshot_by_id_impl(snapshot_id, session)


def _get_snapshot_by_id_impl(snapshot_id: int, session: Session) -> Optional[dict]:
    """Internal implementation of get_snapshot_by_id."""
    snapshot = session.get(RecipeSnapshot, snapshot_id)
    if not snapshot:
        return None
    return snapshot.to_dict()


def get_recipe_snapshot(recipe_id: int, snapshot_id: int, session: Session = None) -> dict:
    """
    Get one version of a recipe.

    Args:
        recipe_id: Recipe the caller is looking at
        snapshot_id: Snapshot ID
        session: Optional session

    Returns:
        Snapshot dict

    Raises:
        SnapshotNotFound: If the snapshot does not exist
        ValidationError: If the snapshot belongs to another recipe
    """
    snapshot = get_snapshot_by_id(snapshot_id, session=session)
    if snapshot is None:
        raise SnapshotNotFound(snapshot_id)
    if snapshot["recipe_id"] != recipe_id:
        raise ValidationError(
            [f"Snapshot {snapshot_id} does not belong to recipe {recipe_id}"]
        )
    return snapshot


def get_snapshot_by_production_run(
    production_run_id: int,
    session: Session = None,
) -> Optional[dict]:
    """
    Get the snapshot a production run was started against.

    Args:
        production_run_id: Production run ID
        session: Optional session

    Returns:
        Snapshot dict or None if the run does not exist
    """
    if session is not None:
        return _get_snapshot_by_production_run_impl(production_run_id, session)

    with session_scope() as session:
        return _get_snapshot_by_production_run_impl(production_run_id, session)


def _get_snapshot_by_production_run_impl(
    production_run_id: int,
    session: Session,
) -> Optional[dict]:
    """Internal implementation of get_snapshot_by_production_run."""
    run = session.get(ProductionRun, production_run_id)
    if run is None or run.snapshot is None:
        return None
    return run.snapshot.to_dict()
