"""Services package - Business logic layer for Bakery Trace.

Architecture:
- Services: Stateless functions organized by domain
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy

Service Modules:
- lot_codec: Pure encode/decode of 12-character lot codes
- recipe_snapshot_service: Immutable, versioned recipe snapshots
- production_run_service: Production run lifecycle
- lot_reconciliation_service: Lot code -> run, recipe and operator names

Infrastructure:
- database: Session management and database utilities
- exceptions: Custom exception classes for service layer errors
- logging_utils: Structured operation logging
"""

from . import (
    database,
    lot_codec,
    recipe_snapshot_service,
    production_run_service,
    lot_reconciliation_service,
)
from .exceptions import (
    ServiceError,
    ValidationError,
    NotFoundError,
    RecipeNotFound,
    OperatorNotFound,
    ProductionRunNotFound,
    SnapshotNotFound,
    ConflictError,
    ActiveProductionExists,
    InvalidStateError,
    InvalidProductionState,
    EncodingError,
    CapabilityDenied,
    DatabaseError,
)

__all__ = [
    "database",
    "lot_codec",
    "recipe_snapshot_service",
    "production_run_service",
    "lot_reconciliation_service",
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "RecipeNotFound",
    "OperatorNotFound",
    "ProductionRunNotFound",
    "SnapshotNotFound",
    "ConflictError",
    "ActiveProductionExists",
    "InvalidStateError",
    "InvalidProductionState",
    "EncodingError",
    "CapabilityDenied",
    "DatabaseError",
]
