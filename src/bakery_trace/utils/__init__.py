"""Utilities package for bakery-trace."""

from .datetime_utils import utc_now, ensure_utc
from .initials import initials, matches_initials

__all__ = [
    "utc_now",
    "ensure_utc",
    "initials",
    "matches_initials",
]
