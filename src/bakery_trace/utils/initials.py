"""
Initials derivation for lot codes.

A name collapses to two uppercase characters: the first and last character
of the name with all whitespace removed. The mapping is lossy, so
many recipes or operators share the same pair; the reconciliation service
turns a pair back into a list of candidates.

Examples:
    >>> initials("Panettone")
    'PE'
    >>> initials("Mario Rossi")
    'MI'
    >>> initials("X")
    'XX'
    >>> initials("   ")
    'XX'
"""

from typing import Optional

from .constants import EMPTY_INITIALS


def _upper_first(char: str) -> str:
    # Some characters uppercase to two ("ß" -> "SS"); keep one
    return char.upper()[0]


def _upper_last(char: str) -> str:
    return char.upper()[-1]


def clean_name(name: Optional[str]) -> str:
    """Remove every whitespace character from a name."""
    if not name:
        return ""
    return "".join(name.split())


def initials(name: Optional[str]) -> str:
    """
    Derive the 2-character initials of a name.

    Args:
        name: Free-text name (recipe name, operator display name)

    Returns:
        First + last character of the whitespace-stripped name, uppercased.
        A single character is doubled; an empty name yields "XX".
    """
    cleaned = clean_name(name)
    if not cleaned:
        return EMPTY_INITIALS
    return _upper_first(cleaned[0]) + _upper_last(cleaned[-1])


def matches_initials(name: Optional[str], pair: str) -> bool:
    """
    Check whether a name reduces to the given initials pair.

    Empty names never match, even against "XX": the placeholder initials
    carry no information about the name.

    Args:
        name: Candidate name
        pair: Two-character initials taken from a lot code

    Returns:
        True if the first and last characters of the cleaned name match
    """
    cleaned = clean_name(name)
    if not cleaned or len(pair) != 2:
        return False
    return (
        _upper_first(cleaned[0]) == _upper_first(pair[0])
        and _upper_last(cleaned[-1]) == _upper_last(pair[1])
    )
