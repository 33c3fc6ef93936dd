"""Service layer exception classes for Bakery Trace.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── NotFoundError
    │   ├── RecipeNotFound
    │   ├── OperatorNotFound
    │   ├── ProductionRunNotFound
    │   └── SnapshotNotFound
    ├── ConflictError
    │   └── ActiveProductionExists
    ├── InvalidStateError
    │   └── InvalidProductionState
    ├── EncodingError
    ├── CapabilityDenied
    └── DatabaseError
"""

from datetime import datetime
from typing import Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when input validation fails (malformed lot code, bad fields).

    Args:
        errors: List of human-readable validation messages

    Example:
        >>> raise ValidationError(["Lot is required"])
        ValidationError: Validation failed: Lot is required
    """

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class NotFoundError(ServiceError):
    """Base class for missing recipes, operators, runs and snapshots."""

    pass


class RecipeNotFound(NotFoundError):
    """Raised when a recipe cannot be found by ID."""

    def __init__(self, recipe_id: int):
        self.recipe_id = recipe_id
        super().__init__(f"Recipe with ID {recipe_id} not found")


class OperatorNotFound(NotFoundError):
    """Raised when an operator cannot be found by ID."""

    def __init__(self, operator_id: int):
        self.operator_id = operator_id
        super().__init__(f"Operator with ID {operator_id} not found")


class ProductionRunNotFound(NotFoundError):
    """Raised when a production run cannot be found.

    Args:
        production_run_id: The run ID that was not found
        recipe_id: The recipe the caller claimed the run belongs to, if any
    """

    def __init__(self, production_run_id: int, recipe_id: Optional[int] = None):
        self.production_run_id = production_run_id
        self.recipe_id = recipe_id
        if recipe_id is None:
            message = f"Production run with ID {production_run_id} not found"
        else:
            message = (
                f"Production run with ID {production_run_id} not found "
                f"for recipe {recipe_id}"
            )
        super().__init__(message)


class SnapshotNotFound(NotFoundError):
    """Raised when a recipe snapshot cannot be found by ID."""

    def __init__(self, snapshot_id: int):
        self.snapshot_id = snapshot_id
        super().__init__(f"Recipe snapshot with ID {snapshot_id} not found")


class ConflictError(ServiceError):
    """Raised when an operation conflicts with concurrent state."""

    pass


class ActiveProductionExists(ConflictError):
    """Raised when starting a run for a recipe that already has one in progress.

    Args:
        recipe_id: The recipe being started
        production_run_id: The active run, when known

    Example:
        >>> raise ActiveProductionExists(12, 40)
        ActiveProductionExists: There is already an active production for recipe 12 (run 40)
    """

    def __init__(self, recipe_id: int, production_run_id: Optional[int] = None):
        self.recipe_id = recipe_id
        self.production_run_id = production_run_id
        message = f"There is already an active production for recipe {recipe_id}"
        if production_run_id is not None:
            message += f" (run {production_run_id})"
        super().__init__(message)


class InvalidStateError(ServiceError):
    """Raised when a lifecycle transition is not allowed from the current state."""

    pass


class InvalidProductionState(InvalidStateError):
    """Raised when a production run is not in the state an operation requires.

    Args:
        production_run_id: The run being transitioned
        current_status: Its current status
        action: The attempted operation (e.g. "finish", "mark loaded")
    """

    def __init__(self, production_run_id: int, current_status: str, action: str):
        self.production_run_id = production_run_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} production run {production_run_id}: status is '{current_status}'"
        )


class EncodingError(ServiceError):
    """Raised by strict lot encoding when an instant falls outside the 4-digit base-36 range."""

    def __init__(self, instant: datetime, minutes: int):
        self.instant = instant
        self.minutes = minutes
        super().__init__(
            f"Instant {instant.isoformat()} ({minutes} minutes from lot epoch) "
            f"does not fit in a lot code"
        )


class CapabilityDenied(ServiceError):
    """Raised by the boundary layer when the caller lacks a capability."""

    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"Insufficient permissions: '{capability}' required")


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
