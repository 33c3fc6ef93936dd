"""
RecipeSnapshot model for capturing immutable recipe state at production start.

Each snapshot stores the full recipe field set (including oven and mixing
schedules) and the ordered ingredient list as JSON, stamped with a version
number that is strictly increasing per recipe. Snapshots are write-once:
the service layer exposes no update or delete operation.
"""

import json

from sqlalchemy import (
    Column,
    Integer,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class RecipeSnapshot(BaseModel):
    """
    Immutable, versioned snapshot of a recipe.

    Attributes:
        recipe_id: FK to the source recipe
        version_number: 1, 2, 3, ... per recipe; UNIQUE with recipe_id
        created_by_operator_id: Operator who started the production that
            triggered the snapshot
        recipe_data: JSON string with recipe fields and schedules
        ingredients_data: JSON string with the ordered ingredient list

    Note:
        - created_at (from BaseModel) is the snapshot instant
        - JSON columns use Text type for SQLite compatibility
    """

    __tablename__ = "recipe_snapshots"

    recipe_id = Column(
        Integer,
        ForeignKey("recipes.id", ondelete="RESTRICT"),
        nullable=False,
    )
    version_number = Column(Integer, nullable=False)
    created_by_operator_id = Column(
        Integer,
        ForeignKey("operators.id", ondelete="RESTRICT"),
        nullable=False,
    )

    recipe_data = Column(Text, nullable=False)
    ingredients_data = Column(Text, nullable=False)

    recipe = relationship("Recipe", back_populates="snapshots")
    created_by = relationship("Operator")
    production_runs = relationship("ProductionRun", back_populates="snapshot")

    __table_args__ = (
        UniqueConstraint("recipe_id", "version_number", name="uq_recipe_snapshot_version"),
        CheckConstraint("version_number >= 1", name="ck_recipe_snapshot_version_positive"),
        Index("idx_recipe_snapshot_recipe", "recipe_id"),
    )

    def get_recipe_data(self) -> dict:
        """
        Parse and return the recipe data from JSON.

        Returns:
            Dictionary containing recipe fields at snapshot time.
            Empty dict if recipe_data is None or invalid JSON.
        """
        if not self.recipe_data:
            return {}
        try:
            return json.loads(self.recipe_data)
        except json.JSONDecodeError:
            return {}

    def get_ingredients_data(self) -> list:
        """
        Parse and return the ingredients data from JSON.

        Returns:
            List of ingredient dictionaries at snapshot time.
            Empty list if ingredients_data is None or invalid JSON.
        """
        if not self.ingredients_data:
            return []
        try:
            return json.loads(self.ingredients_data)
        except json.JSONDecodeError:
            return []

    def __repr__(self) -> str:
        """String representation of recipe snapshot."""
        return (
            f"RecipeSnapshot(id={self.id}, recipe_id={self.recipe_id}, "
            f"version_number={self.version_number})"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert snapshot to dictionary with parsed JSON payloads.

        Args:
            include_relationships: If True, include related objects

        Returns:
            Dictionary with recipe_data/ingredients_data decoded
        """
        result = super().to_dict(include_relationships)
        result["recipe_data"] = self.get_recipe_data()
        result["ingredients_data"] = self.get_ingredients_data()
        return result
