"""
Recipe models for bakery recipes.

This module contains:
- Recipe: Main recipe model with production parameters
- RecipeIngredient: Ordered ingredient lines of a recipe
- RecipeOvenTemperature: Ordered oven temperature schedule
- RecipeMixingTime: Ordered mixing time schedule
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    Boolean,
    Numeric,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class Recipe(BaseModel):
    """
    Recipe model representing a bakery recipe.

    Attributes:
        name: Recipe name (required); source of the lot code recipe initials
        sku: Optional product SKU
        notes: Additional notes
        total_qty_for_recipe: Total dough quantity in kg
        waste_percent: Expected processing waste
        water_percent: Water as a percentage of flour
        package_weight: Weight of one package
        number_of_packages: Packages produced per batch
        time_minutes: Baking time
        temperature_celsius: Baking temperature
        last_snapshot_version: Highest RecipeSnapshot.version_number issued.
            Incremented atomically when a snapshot is created.
    """

    __tablename__ = "recipes"

    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Yields
    total_qty_for_recipe = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    waste_percent = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    water_percent = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    package_weight = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    number_of_packages = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    # Process parameters
    time_minutes = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    temperature_celsius = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    last_snapshot_version = Column(Integer, nullable=False, default=0)

    # Relationships
    recipe_ingredients = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.position",
    )
    oven_temperatures = relationship(
        "RecipeOvenTemperature",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeOvenTemperature.position",
    )
    mixing_times = relationship(
        "RecipeMixingTime",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeMixingTime.position",
    )
    snapshots = relationship("RecipeSnapshot", back_populates="recipe")
    production_runs = relationship("ProductionRun", back_populates="recipe")

    __table_args__ = (Index("idx_recipe_name", "name"),)

    def __repr__(self) -> str:
        """String representation of recipe."""
        return f"Recipe(id={self.id}, name='{self.name}')"


class RecipeIngredient(BaseModel):
    """
    One ingredient line of a recipe.

    Attributes:
        recipe_id: Owning recipe
        position: Sort order within the recipe
        sku: Ingredient SKU
        name: Ingredient name
        qty_original: Quantity as entered
        price_cost_per_kg: Cost per kg at the time of entry
        is_powder_ingredient: Counts toward flour weight
        supplier: Optional supplier name
        warehouse_location: Optional storage location
        lot: Supplier lot of the ingredient, if recorded
    """

    __tablename__ = "recipe_ingredients"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    qty_original = Column(Numeric(12, 2), nullable=False)
    price_cost_per_kg = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    is_powder_ingredient = Column(Boolean, nullable=False, default=False)
    supplier = Column(String(255), nullable=True)
    warehouse_location = Column(String(255), nullable=True)
    lot = Column(String(255), nullable=True)

    recipe = relationship("Recipe", back_populates="recipe_ingredients")

    __table_args__ = (Index("idx_recipe_ingredient_recipe", "recipe_id", "position"),)

    def __repr__(self) -> str:
        """String representation of recipe ingredient."""
        return f"RecipeIngredient(recipe_id={self.recipe_id}, sku='{self.sku}', qty={self.qty_original})"


class RecipeOvenTemperature(BaseModel):
    """One step of a recipe's oven temperature schedule."""

    __tablename__ = "recipe_oven_temperatures"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    temperature = Column(Numeric(12, 2), nullable=False)
    minutes = Column(Numeric(12, 2), nullable=False)

    recipe = relationship("Recipe", back_populates="oven_temperatures")


class RecipeMixingTime(BaseModel):
    """One step of a recipe's mixing schedule."""

    __tablename__ = "recipe_mixing_times"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    minutes = Column(Numeric(12, 2), nullable=False)
    speed = Column(Numeric(12, 2), nullable=False)

    recipe = relationship("Recipe", back_populates="mixing_times")
