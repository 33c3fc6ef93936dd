"""Pytest configuration and fixtures for Bakery Trace tests."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker, scoped_session

from bakery_trace.models import (
    Operator,
    Recipe,
    RecipeIngredient,
    RecipeMixingTime,
    RecipeOvenTemperature,
)
from bakery_trace.models.base import Base
from bakery_trace.services.database import create_database_engine, init_database


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_database_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import bakery_trace.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def file_db(tmp_path):
    """Provide a file-backed SQLite database shared by several threads.

    In-memory databases funnel every thread through one connection, so
    tests that race transactions against each other need a real file.
    Each session_scope() call gets its own session and connection.
    """
    engine = create_database_engine(f"sqlite:///{tmp_path / 'bakery_trace.db'}")
    init_database(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    import bakery_trace.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: session_factory

    yield session_factory

    engine.dispose()
    db_module.get_session_factory = original_get_session


def _add_recipe(session, name="Panettone"):
    recipe = Recipe(
        name=name,
        sku="PAN-001",
        total_qty_for_recipe=Decimal("12.50"),
        waste_percent=Decimal("3.00"),
        water_percent=Decimal("58.00"),
        package_weight=Decimal("1.00"),
        number_of_packages=Decimal("12"),
        time_minutes=Decimal("55"),
        temperature_celsius=Decimal("170"),
    )
    recipe.recipe_ingredients = [
        RecipeIngredient(
            position=0,
            sku="FLR-00",
            name="Flour 00",
            qty_original=Decimal("5.00"),
            price_cost_per_kg=Decimal("0.90"),
            is_powder_ingredient=True,
            supplier="Molino Rossi",
            lot="F2401",
        ),
        RecipeIngredient(
            position=1,
            sku="BTR-01",
            name="Butter",
            qty_original=Decimal("2.00"),
            price_cost_per_kg=Decimal("8.40"),
        ),
    ]
    recipe.oven_temperatures = [
        RecipeOvenTemperature(position=0, temperature=Decimal("180"), minutes=Decimal("15")),
        RecipeOvenTemperature(position=1, temperature=Decimal("165"), minutes=Decimal("40")),
    ]
    recipe.mixing_times = [
        RecipeMixingTime(position=0, minutes=Decimal("4"), speed=Decimal("1")),
    ]
    session.add(recipe)
    return recipe


@pytest.fixture
def sample_recipe(test_db):
    """Panettone with two ingredients, oven and mixing schedules."""
    session = test_db()
    recipe = _add_recipe(session)
    session.commit()
    return recipe


@pytest.fixture
def sample_operator(test_db):
    """Operator 'Mario Rossi' (initials MI)."""
    session = test_db()
    operator = Operator(username="mrossi", display_name="Mario Rossi")
    session.add(operator)
    session.commit()
    return operator


@pytest.fixture
def shared_recipe(file_db):
    """Recipe and operator committed to the file-backed database."""
    session = file_db()
    try:
        recipe = _add_recipe(session)
        operator = Operator(username="mrossi", display_name="Mario Rossi")
        session.add(operator)
        session.commit()
        return recipe.id, operator.id
    finally:
        session.close()
