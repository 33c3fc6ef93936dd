"""
Production Run Service - lifecycle of production runs.

State machine:

    start ──> in_progress ──finish──> completed <──status override──> loaded
                   │
                   └──abort──> aborted

- start_production(): freezes a RecipeSnapshot and inserts an in_progress
  run with the placeholder lot "TEMP". At most one run per recipe may be
  in progress; the partial unique index on production_runs enforces it
  against concurrent starts.
- finish_production(): encodes the lot code from the recipe name, the
  operator name and the start/finish instants, and writes finished_at,
  status and production_lot in one guarded UPDATE.
- set_production_status() / mark_loaded(): administrative override between
  completed and loaded.
- abort_production(): administrative exit for a run that will never finish.

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly (caller owns the transaction)
- If session is None, create a new session via session_scope()
"""

import logging
from contextlib import nullcontext
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from bakery_trace.models import Operator, ProductionRun, ProductionRunStatus, Recipe
from bakery_trace.services.database import session_scope
from bakery_trace.services.exceptions import (
    ActiveProductionExists,
    InvalidProductionState,
    OperatorNotFound,
    ProductionRunNotFound,
    RecipeNotFound,
    ValidationError,
)
from bakery_trace.services.logging_utils import get_service_logger, log_operation
from bakery_trace.services.lot_codec import encode_lot, fits_lot
from bakery_trace.services.recipe_snapshot_service import create_recipe_snapshot
from bakery_trace.utils.constants import PLACEHOLDER_LOT
from bakery_trace.utils.datetime_utils import ensure_utc, to_storage, utc_now

logger = get_service_logger(__name__)

# Administrative status overrides: current status -> allowed targets
_STATUS_OVERRIDES = {
    ProductionRunStatus.COMPLETED.value: {ProductionRunStatus.LOADED.value},
    ProductionRunStatus.LOADED.value: {ProductionRunStatus.COMPLETED.value},
}


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    """Trim notes; blank becomes None."""
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None


# =============================================================================
# Start
# =============================================================================


def start_production(
    recipe_id: int,
    operator_id: int,
    *,
    started_at: Optional[datetime] = None,
    notes: Optional[str] = None,
    session=None,
) -> Dict[str, Any]:
    """
    Start a production run for a recipe.

    This function atomically:
    1. Validates the recipe and operator exist
    2. Refuses to start while another run of the recipe is in progress
    3. Creates a new RecipeSnapshot (next version number)
    4. Inserts the in_progress run with the placeholder lot

    Args:
        recipe_id: Recipe to produce
        operator_id: Operator starting the run
        started_at: Start instant; defaults to now. Backdating is accepted
            as-is; naive values are taken as UTC.
        notes: Optional notes (trimmed; blank stored as NULL)
        session: Optional database session (uses session_scope if not provided)

    Returns:
        Dict with keys:
            - "production_run_id": int
            - "recipe_snapshot_id": int
            - "version_number": int
            - "production": Dict - the created run

    Raises:
        RecipeNotFound: If recipe doesn't exist
        OperatorNotFound: If operator doesn't exist
        ActiveProductionExists: If the recipe already has a run in progress,
            including one committed concurrently by another caller
    """
    if session is not None:
        return _start_production_impl(recipe_id, operator_id, started_at, notes, session)

    with session_scope() as session:
        return _start_production_impl(recipe_id, operator_id, started_at, notes, session)


def _start_production_impl(
    recipe_id: int,
    operator_id: int,
    started_at: Optional[datetime],
    notes: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    """Implementation of start_production that uses provided session."""
    recipe = session.get(Recipe, recipe_id)
    if recipe is None:
        raise RecipeNotFound(recipe_id)

    operator = session.get(Operator, operator_id)
    if operator is None:
        raise OperatorNotFound(operator_id)

    active = _find_active_run(recipe_id, session)
    if active is not None:
        log_operation(
            logger,
            operation="start_production",
            outcome="conflict",
            level=logging.WARNING,
            recipe_id=recipe_id,
            active_production_run_id=active.id,
        )
        raise ActiveProductionExists(recipe_id, active.id)

    snapshot = create_recipe_snapshot(recipe_id, operator_id, session=session)

    production_run = ProductionRun(
        recipe_id=recipe_id,
        recipe_snapshot_id=snapshot["id"],
        operator_id=operator_id,
        started_at=to_storage(started_at or utc_now()),
        status=ProductionRunStatus.IN_PROGRESS.value,
        production_lot=PLACEHOLDER_LOT,
        notes=_clean_notes(notes),
    )
    session.add(production_run)
    try:
        session.flush()
    except IntegrityError as e:
        # Lost the race on uq_production_run_active_recipe
        log_operation(
            logger,
            operation="start_production",
            outcome="conflict",
            level=logging.WARNING,
            recipe_id=recipe_id,
            operator_id=operator_id,
        )
        raise ActiveProductionExists(recipe_id) from e

    log_operation(
        logger,
        operation="start_production",
        outcome="success",
        production_run_id=production_run.id,
        recipe_id=recipe_id,
        operator_id=operator_id,
        version_number=snapshot["version_number"],
    )

    return {
        "production_run_id": production_run.id,
        "recipe_snapshot_id": snapshot["id"],
        "version_number": snapshot["version_number"],
        "production": production_run.to_dict(),
    }


def _find_active_run(recipe_id: int, session: Session) -> Optional[ProductionRun]:
    return (
        session.query(ProductionRun)
        .filter_by(recipe_id=recipe_id, status=ProductionRunStatus.IN_PROGRESS.value)
        .first()
    )


# =============================================================================
# Finish
# =============================================================================


def finish_production(
    production_run_id: int,
    *,
    recipe_id: Optional[int] = None,
    notes: Optional[str] = None,
    finished_at: Optional[datetime] = None,
    session=None,
) -> Dict[str, Any]:
    """
    Finish an in-progress production run and assign its lot code.

    finished_at, status and production_lot are written by a single UPDATE
    guarded on status = 'in_progress', so a run is never observable as
    completed with the placeholder lot and two concurrent finishes cannot
    both succeed.

    Args:
        production_run_id: Run to finish
        recipe_id: Recipe the caller believes the run belongs to; when given,
            a run of another recipe is reported as not found
        notes: New notes. Non-blank notes replace the stored notes; blank or
            missing notes keep them.
        finished_at: Finish instant; defaults to now
        session: Optional database session (uses session_scope if not provided)

    Returns:
        The finished run as a dict (including "production_lot")

    Raises:
        ProductionRunNotFound: If the run doesn't exist (for that recipe)
        InvalidProductionState: If the run is not in progress
        RecipeNotFound: If the run's recipe no longer exists
        OperatorNotFound: If the run's operator no longer exists
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        production_run = session.get(ProductionRun, production_run_id)
        if production_run is None or (
            recipe_id is not None and production_run.recipe_id != recipe_id
        ):
            raise ProductionRunNotFound(production_run_id, recipe_id)

        if not production_run.is_active:
            raise InvalidProductionState(production_run_id, production_run.status, "finish")

        recipe = session.get(Recipe, production_run.recipe_id)
        if recipe is None:
            raise RecipeNotFound(production_run.recipe_id)

        operator = session.get(Operator, production_run.operator_id)
        if operator is None:
            raise OperatorNotFound(production_run.operator_id)

        started_at = ensure_utc(production_run.started_at)
        finished_at = ensure_utc(finished_at) if finished_at else utc_now()
        production_lot = encode_lot(recipe.name, operator.name, started_at, finished_at)

        if not (fits_lot(started_at) and fits_lot(finished_at)):
            log_operation(
                logger,
                operation="finish_production",
                outcome="lot_minutes_wrapped",
                level=logging.DEBUG,
                production_run_id=production_run_id,
                production_lot=production_lot,
            )

        result = session.execute(
            update(ProductionRun)
            .where(
                ProductionRun.id == production_run_id,
                ProductionRun.status == ProductionRunStatus.IN_PROGRESS.value,
            )
            .values(
                finished_at=to_storage(finished_at),
                status=ProductionRunStatus.COMPLETED.value,
                production_lot=production_lot,
                notes=_clean_notes(notes) or production_run.notes,
                updated_at=to_storage(utc_now()),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.refresh(production_run)
            raise InvalidProductionState(production_run_id, production_run.status, "finish")

        session.refresh(production_run)

        log_operation(
            logger,
            operation="finish_production",
            outcome="success",
            production_run_id=production_run_id,
            recipe_id=production_run.recipe_id,
            production_lot=production_lot,
        )

        return production_run.to_dict()


# =============================================================================
# Administrative transitions
# =============================================================================


def set_production_status(
    production_run_id: int,
    status: str,
    *,
    session=None,
) -> Dict[str, Any]:
    """
    Administrative status override between completed and loaded.

    Args:
        production_run_id: Run to update
        status: Target status, "completed" or "loaded"
        session: Optional database session

    Returns:
        The updated run as a dict

    Raises:
        ValidationError: If status is not an allowed override target
        ProductionRunNotFound: If the run doesn't exist
        InvalidProductionState: If the run's current status cannot move to status
    """
    target = (status or "").strip()
    if target not in ProductionRunStatus.finished_statuses():
        raise ValidationError([f"Invalid status '{status}'"])

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        production_run = session.get(ProductionRun, production_run_id)
        if production_run is None:
            raise ProductionRunNotFound(production_run_id)

        previous = production_run.status
        if previous != target:
            if target not in _STATUS_OVERRIDES.get(previous, set()):
                raise InvalidProductionState(production_run_id, previous, f"mark {target}")
            production_run.status = target
            session.flush()

        log_operation(
            logger,
            operation="set_production_status",
            outcome="success",
            production_run_id=production_run_id,
            previous_status=previous,
            new_status=target,
        )

        return production_run.to_dict()


def mark_loaded(production_run_id: int, *, session=None) -> Dict[str, Any]:
    """
    Mark a completed run as loaded.

    Raises:
        ProductionRunNotFound: If the run doesn't exist
        InvalidProductionState: If the run is not completed
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        production_run = session.get(ProductionRun, production_run_id)
        if production_run is None:
            raise ProductionRunNotFound(production_run_id)
        if production_run.status != ProductionRunStatus.COMPLETED.value:
            raise InvalidProductionState(production_run_id, production_run.status, "mark loaded")
        return set_production_status(
            production_run_id, ProductionRunStatus.LOADED.value, session=session
        )


def abort_production(
    production_run_id: int,
    *,
    notes: Optional[str] = None,
    session=None,
) -> Dict[str, Any]:
    """
    Abort an in-progress run so the recipe can be started again.

    The run keeps its placeholder lot and gets finished_at = now.

    Args:
        production_run_id: Run to abort
        notes: Optional reason; replaces stored notes when non-blank
        session: Optional database session

    Returns:
        The aborted run as a dict

    Raises:
        ProductionRunNotFound: If the run doesn't exist
        InvalidProductionState: If the run is not in progress
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        production_run = session.get(ProductionRun, production_run_id)
        if production_run is None:
            raise ProductionRunNotFound(production_run_id)
        if not production_run.is_active:
            raise InvalidProductionState(production_run_id, production_run.status, "abort")

        production_run.status = ProductionRunStatus.ABORTED.value
        production_run.finished_at = to_storage(utc_now())
        production_run.notes = _clean_notes(notes) or production_run.notes
        session.flush()

        log_operation(
            logger,
            operation="abort_production",
            outcome="success",
            level=logging.WARNING,
            production_run_id=production_run_id,
            recipe_id=production_run.recipe_id,
        )

        return production_run.to_dict()


# =============================================================================
# Queries
# =============================================================================


def get_active_production(recipe_id: int, *, session=None) -> Optional[Dict[str, Any]]:
    """
    Get the in-progress run of a recipe.

    Returns:
        Run dict, or None if no run is in progress
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        active = _find_active_run(recipe_id, session)
        return active.to_dict() if active else None


def get_production_run(production_run_id: int, *, session=None) -> Dict[str, Any]:
    """
    Get a production run with recipe, operator and snapshot details.

    Raises:
        ProductionRunNotFound: If the run doesn't exist
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        production_run = session.get(ProductionRun, production_run_id)
        if production_run is None:
            raise ProductionRunNotFound(production_run_id)
        return production_run.to_dict(include_relationships=True)


def get_production_history(
    recipe_id: Optional[int] = None,
    *,
    session=None,
) -> List[Dict[str, Any]]:
    """
    Get production runs, newest start first, with their frozen recipe.

    Args:
        recipe_id: Optional filter by recipe
        session: Optional database session

    Returns:
        List of dicts with keys "production" (run with names and version),
        "recipe_snapshot" (parsed recipe_data) and "ingredients"
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        query = session.query(ProductionRun).options(
            joinedload(ProductionRun.recipe),
            joinedload(ProductionRun.operator),
            joinedload(ProductionRun.snapshot),
        )
        if recipe_id is not None:
            query = query.filter(ProductionRun.recipe_id == recipe_id)
        runs = query.order_by(ProductionRun.started_at.desc(), ProductionRun.id.desc()).all()

        history = []
        for run in runs:
            history.append(
                {
                    "production": run.to_dict(include_relationships=True),
                    "recipe_snapshot": run.snapshot.get_recipe_data() if run.snapshot else None,
                    "ingredients": run.snapshot.get_ingredients_data() if run.snapshot else [],
                }
            )
        return history
