"""
ProductionRun model for tracking one execution of a recipe.

A run is created in_progress with a placeholder lot ("TEMP") and bound to
the RecipeSnapshot taken at start. Finishing assigns finished_at and the
12-character lot code in the same transaction.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import ProductionRunStatus
from bakery_trace.utils.constants import PLACEHOLDER_LOT
from bakery_trace.utils.datetime_utils import utc_now, ensure_utc

_ACTIVE_CLAUSE = text(f"status = '{ProductionRunStatus.IN_PROGRESS.value}'")
_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in ProductionRunStatus)


class ProductionRun(BaseModel):
    """
    ProductionRun model.

    Attributes:
        recipe_id: Recipe being produced
        recipe_snapshot_id: Snapshot frozen when the run started
        operator_id: Operator who started the run
        started_at: Start instant (UTC); may be backdated by the caller
        finished_at: Finish instant (UTC); NULL while in progress
        status: in_progress, completed, loaded or aborted
        production_lot: "TEMP" until finished, then the lot code
        notes: Optional free text

    Note:
        The partial unique index on recipe_id allows at most one
        in_progress run per recipe. A concurrent start that loses the race
        fails with an IntegrityError on insert.
    """

    __tablename__ = "production_runs"

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="RESTRICT"), nullable=False
    )
    recipe_snapshot_id = Column(
        Integer,
        ForeignKey("recipe_snapshots.id", ondelete="RESTRICT"),
        nullable=False,
    )
    operator_id = Column(
        Integer, ForeignKey("operators.id", ondelete="RESTRICT"), nullable=False
    )

    started_at = Column(DateTime, nullable=False, default=utc_now)
    finished_at = Column(DateTime, nullable=True)
    status = Column(
        String(20), nullable=False, default=ProductionRunStatus.IN_PROGRESS.value
    )
    production_lot = Column(String(255), nullable=False, default=PLACEHOLDER_LOT)
    notes = Column(Text, nullable=True)

    recipe = relationship("Recipe", back_populates="production_runs")
    snapshot = relationship("RecipeSnapshot", back_populates="production_runs")
    operator = relationship("Operator", back_populates="production_runs")

    __table_args__ = (
        Index(
            "uq_production_run_active_recipe",
            "recipe_id",
            unique=True,
            sqlite_where=_ACTIVE_CLAUSE,
            postgresql_where=_ACTIVE_CLAUSE,
        ),
        Index("idx_production_run_recipe", "recipe_id"),
        Index("idx_production_run_started_at", "started_at"),
        Index("idx_production_run_finished_at", "finished_at"),
        Index("idx_production_run_status", "status"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_production_run_status"),
    )

    @property
    def is_active(self) -> bool:
        """True while the run is in progress."""
        return self.status == ProductionRunStatus.IN_PROGRESS.value

    def __repr__(self) -> str:
        """String representation of production run."""
        return (
            f"ProductionRun(id={self.id}, recipe_id={self.recipe_id}, "
            f"status='{self.status}', production_lot='{self.production_lot}')"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert production run to dictionary.

        Args:
            include_relationships: If True, include recipe/operator names and
                the snapshot version number

        Returns:
            Dictionary representation with ISO-8601 UTC timestamps
        """
        result = super().to_dict()

        result["started_at"] = ensure_utc(self.started_at).isoformat() if self.started_at else None
        result["finished_at"] = (
            ensure_utc(self.finished_at).isoformat() if self.finished_at else None
        )

        if include_relationships:
            result["recipe_name"] = self.recipe.name if self.recipe else None
            if self.operator:
                result["operator_name"] = self.operator.name
                result["operator_username"] = self.operator.username
            else:
                result["operator_name"] = None
                result["operator_username"] = None
            result["version_number"] = self.snapshot.version_number if self.snapshot else None

        return result
