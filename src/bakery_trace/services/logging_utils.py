"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across production, snapshot and lot
reconciliation operations.

Usage:
    from bakery_trace.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="finish_production",
        outcome="success",
        production_run_id=123,
        production_lot="PEMI1Q2W1Q4T",
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'bakery_trace.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'bakery_trace.services.production_run_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"bakery_trace.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "start_production", "resolve_lot")
        outcome: Outcome description (e.g., "success", "conflict", "wrapped")
        level: Log level (default: INFO)
        **context: Additional context fields (entity IDs, lot codes, ...)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
