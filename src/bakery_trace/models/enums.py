"""
Enumerations for production tracking.

- ProductionRunStatus: lifecycle state of a production run
"""

from enum import Enum


class ProductionRunStatus(str, Enum):
    """
    Production run lifecycle status.

    Values:
        IN_PROGRESS: Started, lot code not yet assigned ("TEMP")
        COMPLETED: Finished, lot code assigned
        LOADED: Administrative post-completion marker (batch loaded out)
        ABORTED: Abandoned before finishing; frees the recipe for a new run
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    LOADED = "loaded"
    ABORTED = "aborted"

    @classmethod
    def finished_statuses(cls) -> tuple:
        """Statuses of runs that carry a real lot code."""
        return (cls.COMPLETED.value, cls.LOADED.value)
