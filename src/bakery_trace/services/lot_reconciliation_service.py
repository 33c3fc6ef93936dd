"""
Lot Reconciliation Service - turn a printed lot code back into names.

A lot code only carries initials and minute-precision instants, so the
names behind it have to be recovered from the database:

1. Exact match: a finished run whose started_at and finished_at are each
   within LOT_MATCH_TOLERANCE_SECONDS of the decoded instants. Because the
   time fields wrap every 36**4 minutes, every cycle up to the reference
   instant is tried, newest first, then the cycle after it.
2. Otherwise, candidates: recipes and operators whose names reduce to the
   decoded initials, in storage order, at most MAX_LOT_CANDIDATES each.

Only malformed input is an error. No match is a normal, empty result.
"""

from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from bakery_trace.models import Operator, ProductionRun, ProductionRunStatus, Recipe
from bakery_trace.services.database import session_scope
from bakery_trace.services.exceptions import ValidationError
from bakery_trace.services.logging_utils import get_service_logger, log_operation
from bakery_trace.services.lot_codec import (
    LotData,
    decode_lot,
    is_valid_lot_format,
    normalize_lot,
)
from bakery_trace.utils.constants import LOT_MATCH_TOLERANCE_SECONDS, MAX_LOT_CANDIDATES
from bakery_trace.utils.datetime_utils import to_storage, utc_now
from bakery_trace.utils.initials import matches_initials

logger = get_service_logger(__name__)

_TOLERANCE = timedelta(seconds=LOT_MATCH_TOLERANCE_SECONDS)


@dataclass
class LotResolution:
    """
    Result of resolving a lot code.

    Attributes:
        lot: Normalized lot code
        decoded: Decoded lot, placed in the cycle of the exact match when
            there is one, else in the latest cycle before the reference
        recipe_name: Recipe of the exactly matching run, if found
        operator_name: Operator of the exactly matching run, if found
        production_run_id: ID of the exactly matching run, if found
        candidate_recipes: Recipe names matching the recipe initials
        candidate_operators: Operator names matching the operator initials
    """

    lot: str
    decoded: LotData
    recipe_name: Optional[str] = None
    operator_name: Optional[str] = None
    production_run_id: Optional[int] = None
    candidate_recipes: List[str] = field(default_factory=list)
    candidate_operators: List[str] = field(default_factory=list)

    @property
    def is_exact(self) -> bool:
        return self.production_run_id is not None

    def to_dict(self) -> dict:
        return {
            "lot": self.lot,
            "decoded": self.decoded.to_dict(),
            "recipe_name": self.recipe_name,
            "operator_name": self.operator_name,
            "production_run_id": self.production_run_id,
            "possible_recipes": list(self.candidate_recipes),
            "possible_operators": list(self.candidate_operators),
        }


def decode_lot_input(lot: Optional[str], reference: Optional[datetime] = None) -> LotData:
    """
    Validate and decode user-typed lot input.

    Args:
        lot: Raw input; surrounding whitespace is ignored, case is folded
        reference: Cycle reference passed to decode_lot

    Returns:
        Decoded lot

    Raises:
        ValidationError: If the input is empty, malformed or undecodable
    """
    code = normalize_lot(lot)
    if not code:
        raise ValidationError(["Lot is required"])
    if not is_valid_lot_format(code):
        raise ValidationError(["Invalid lot format. Lot must be 12 alphanumeric characters."])
    decoded = decode_lot(code, reference=reference)
    if decoded is None:
        raise ValidationError(["Unable to decode lot. Invalid format."])
    return decoded


def resolve_lot(
    lot: Optional[str],
    *,
    reference: Optional[datetime] = None,
    session=None,
) -> LotResolution:
    """
    Resolve a lot code to the run, recipe and operator behind it.

    Args:
        lot: Lot code as typed by the user
        reference: Instant the run is expected to have started by (default:
            now). Cycles up to the reference are searched newest first, then
            the one following it, so a forward-dated start still matches.
        session: Optional database session

    Returns:
        LotResolution with exact names, or candidate lists when no run matches

    Raises:
        ValidationError: If the lot code is malformed
    """
    code = normalize_lot(lot)
    reference = reference or utc_now()
    decoded = decode_lot_input(code, reference=reference)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        resolution = LotResolution(lot=code, decoded=decoded)

        placements = list(decoded.cycles_until(reference))
        # A forward-dated start lies in the cycle after the reference
        placements.append(placements[0].in_cycle(placements[0].cycle + 1))

        for placement in placements:
            run = find_exact_production(placement, code, session=session)
            if run is not None:
                resolution.decoded = placement
                resolution.production_run_id = run.id
                resolution.recipe_name = run.recipe.name if run.recipe else None
                resolution.operator_name = run.operator.name if run.operator else None
                break

        if resolution.recipe_name is None:
            resolution.candidate_recipes = find_candidate_recipes(
                decoded.recipe_initials, session=session
            )
        if resolution.operator_name is None:
            resolution.candidate_operators = find_candidate_operators(
                decoded.operator_initials, session=session
            )

        log_operation(
            logger,
            operation="resolve_lot",
            outcome="exact" if resolution.is_exact else "candidates",
            production_lot=code,
            production_run_id=resolution.production_run_id,
            candidate_recipe_count=len(resolution.candidate_recipes),
            candidate_operator_count=len(resolution.candidate_operators),
        )

        return resolution


def find_exact_production(
    decoded: LotData,
    lot: Optional[str] = None,
    *,
    session: Session,
) -> Optional[ProductionRun]:
    """
    Find the finished run whose start and finish match the decoded instants.

    Completed and loaded runs are considered. When several runs fall in the
    window, one whose stored lot equals lot is preferred.

    Args:
        decoded: Decoded lot placed in the cycle to search
        lot: The lot code itself, used as a tie-breaker
        session: Database session

    Returns:
        Matching run (with recipe and operator loaded) or None
    """
    runs = (
        session.query(ProductionRun)
        .options(joinedload(ProductionRun.recipe), joinedload(ProductionRun.operator))
        .filter(
            ProductionRun.status.in_(ProductionRunStatus.finished_statuses()),
            ProductionRun.started_at >= to_storage(decoded.started_at - _TOLERANCE),
            ProductionRun.started_at <= to_storage(decoded.started_at + _TOLERANCE),
            ProductionRun.finished_at >= to_storage(decoded.finished_at - _TOLERANCE),
            ProductionRun.finished_at <= to_storage(decoded.finished_at + _TOLERANCE),
        )
        .order_by(ProductionRun.id)
        .all()
    )
    if not runs:
        return None
    for run in runs:
        if lot is not None and run.production_lot == lot:
            return run
    return runs[0]


def find_candidate_recipes(
    recipe_initials: str,
    *,
    limit: int = MAX_LOT_CANDIDATES,
    session: Session,
) -> List[str]:
    """
    Names of recipes that reduce to the given initials, in storage order.

    Args:
        recipe_initials: Two characters from the lot code
        limit: Maximum number of names returned
        session: Database session

    Returns:
        Up to limit recipe names
    """
    names = []
    for (name,) in session.query(Recipe.name).order_by(Recipe.id).all():
        if matches_initials(name, recipe_initials):
            names.append(name)
            if len(names) >= limit:
                break
    return names


def find_candidate_operators(
    operator_initials: str,
    *,
    limit: int = MAX_LOT_CANDIDATES,
    session: Session,
) -> List[str]:
    """
    Names of operators that reduce to the given initials, in storage order.

    The display name is used, falling back to the username, matching how
    the lot code was built.
    """
    names = []
    for operator in session.query(Operator).order_by(Operator.id).all():
        if matches_initials(operator.name, operator_initials):
            names.append(operator.name)
            if len(names) >= limit:
                break
    return names
