"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import ProductionRunStatus
from .operator import Operator
from .recipe import Recipe, RecipeIngredient, RecipeOvenTemperature, RecipeMixingTime
from .recipe_snapshot import RecipeSnapshot
from .production_run import ProductionRun

__all__ = [
    "Base",
    "BaseModel",
    "ProductionRunStatus",
    "Operator",
    "Recipe",
    "RecipeIngredient",
    "RecipeOvenTemperature",
    "RecipeMixingTime",
    "RecipeSnapshot",
    "ProductionRun",
]
