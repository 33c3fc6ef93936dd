"""
Lot code encoding and decoding.

A lot code is 12 uppercase alphanumeric characters laid out RRUUIIIIFFFF:

- RR: recipe initials
- UU: operator initials
- IIII: start instant, whole minutes since 2020-01-01T00:00:00Z, base 36
- FFFF: finish instant, same encoding

Sub-minute precision is discarded on encode. Four base-36 digits hold
36**4 minutes (about 3.19 years); larger minute counts keep only their four
least significant digits and instants before the epoch encode as 0000.
Printed labels depend on this exact behavior, so it is the default;
pass strict=True to get an EncodingError instead.

Decoding recovers only the initials and the minute-floored instants. It
never raises: anything that is not a decodable code yields None. Without a
reference instant the time fields are read as offsets from the epoch; with
one, they are placed in the most recent 36**4-minute cycle that starts no
later than the reference.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional

from bakery_trace.services.exceptions import EncodingError
from bakery_trace.utils.constants import (
    BASE36_ALPHABET,
    LOT_EPOCH,
    LOT_FORMAT_PATTERN,
    LOT_INITIALS_WIDTH,
    LOT_LENGTH,
    LOT_MAX_MINUTES,
    LOT_MINUTES_WIDTH,
)
from bakery_trace.utils.datetime_utils import ensure_utc
from bakery_trace.utils.initials import initials

_LOT_RE = re.compile(LOT_FORMAT_PATTERN)
_BASE36_VALUES = {char: index for index, char in enumerate(BASE36_ALPHABET)}
_ONE_MINUTE = timedelta(minutes=1)

# Number of distinct values of one 4-digit minute field
LOT_CYCLE_MINUTES = LOT_MAX_MINUTES + 1


@dataclass(frozen=True)
class LotData:
    """
    Decoded content of a lot code.

    Attributes:
        recipe_initials: Two characters, verbatim from the code
        operator_initials: Two characters, verbatim from the code
        started_at: Start instant (UTC, minute precision)
        finished_at: Finish instant (UTC, minute precision)
        start_minutes: Raw start field value
        finish_minutes: Raw finish field value
        cycle: Which 36**4-minute cycle the instants were placed in
    """

    recipe_initials: str
    operator_initials: str
    started_at: datetime
    finished_at: datetime
    start_minutes: int
    finish_minutes: int
    cycle: int = 0

    def in_cycle(self, cycle: int) -> "LotData":
        """Return the same code placed in another cycle."""
        started_at = LOT_EPOCH + (self.start_minutes + cycle * LOT_CYCLE_MINUTES) * _ONE_MINUTE
        duration = (self.finish_minutes - self.start_minutes) % LOT_CYCLE_MINUTES
        return LotData(
            recipe_initials=self.recipe_initials,
            operator_initials=self.operator_initials,
            started_at=started_at,
            finished_at=started_at + duration * _ONE_MINUTE,
            start_minutes=self.start_minutes,
            finish_minutes=self.finish_minutes,
            cycle=cycle,
        )

    def cycles_until(self, reference: datetime) -> Iterator["LotData"]:
        """
        Yield every placement whose start is not after reference, newest first.

        Yields the raw placement when even cycle 0 starts after reference.
        """
        latest = max(_latest_cycle(self.start_minutes, reference), 0)
        for cycle in range(latest, -1, -1):
            yield self.in_cycle(cycle)

    def to_dict(self) -> dict:
        return {
            "recipe_initials": self.recipe_initials,
            "operator_initials": self.operator_initials,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
        }


def minutes_since_epoch(instant: datetime) -> int:
    """Whole minutes from the lot epoch to instant, floored (negative before the epoch)."""
    return (ensure_utc(instant) - LOT_EPOCH) // _ONE_MINUTE


def fits_lot(instant: datetime) -> bool:
    """True if instant encodes without clamping or wrapping."""
    return 0 <= minutes_since_epoch(instant) <= LOT_MAX_MINUTES


def _latest_cycle(start_minutes: int, reference: datetime) -> int:
    return (minutes_since_epoch(reference) - start_minutes) // LOT_CYCLE_MINUTES


def to_base36(value: int, width: int = LOT_MINUTES_WIDTH) -> str:
    """
    Encode a non-negative integer as zero-padded uppercase base 36.

    Negative values encode as zero. Values needing more than width digits
    keep their width least significant digits.
    """
    if value < 0:
        value = 0
    digits = ""
    while value > 0 and len(digits) < width:
        digits = BASE36_ALPHABET[value % 36] + digits
        value //= 36
    return digits.rjust(width, "0")


def from_base36(digits: str) -> Optional[int]:
    """
    Decode base-36 digits (case-insensitive).

    Returns:
        The integer value, or None if any character is not a base-36 digit
    """
    value = 0
    for char in digits:
        digit = _BASE36_VALUES.get(char.upper())
        if digit is None:
            return None
        value = value * 36 + digit
    return value


def _encode_instant(instant: datetime, strict: bool) -> str:
    minutes = minutes_since_epoch(instant)
    if strict and not 0 <= minutes <= LOT_MAX_MINUTES:
        raise EncodingError(ensure_utc(instant), minutes)
    return to_base36(minutes)


def encode_lot(
    recipe_name: str,
    operator_name: str,
    started_at: datetime,
    finished_at: datetime,
    *,
    strict: bool = False,
) -> str:
    """
    Build the lot code for a production run.

    Args:
        recipe_name: Recipe name (initials are derived from it)
        operator_name: Operator display name, or username if none
        started_at: Run start instant; naive values are taken as UTC
        finished_at: Run finish instant; naive values are taken as UTC
        strict: Raise EncodingError instead of clamping/wrapping instants
            outside the 4-digit base-36 range

    Returns:
        12-character lot code

    Raises:
        EncodingError: Only when strict is True and an instant is out of range

    Example:
        >>> encode_lot("Panettone", "Mario Rossi",
        ...            datetime(2024, 1, 10, 8, 0),
        ...            datetime(2024, 1, 10, 10, 30))
        'PEMI9DPC9DTI'
    """
    return (
        initials(recipe_name)
        + initials(operator_name)
        + _encode_instant(started_at, strict)
        + _encode_instant(finished_at, strict)
    )


def decode_lot(lot: str, reference: Optional[datetime] = None) -> Optional[LotData]:
    """
    Decode a lot code.

    Args:
        lot: Candidate lot code
        reference: Optional instant the run is known to have started by
            (typically now). When given, the instants are placed in the
            latest cycle starting no later than reference.

    Returns:
        LotData with the initials verbatim and instants rebuilt at minute
        granularity, or None if lot is not 12 characters or a time field
        holds a non base-36 character
    """
    if not isinstance(lot, str) or len(lot) != LOT_LENGTH:
        return None

    initials_end = LOT_INITIALS_WIDTH * 2
    start_minutes = from_base36(lot[initials_end:initials_end + LOT_MINUTES_WIDTH])
    finish_minutes = from_base36(lot[initials_end + LOT_MINUTES_WIDTH:])

    if start_minutes is None or finish_minutes is None:
        return None

    data = LotData(
        recipe_initials=lot[:LOT_INITIALS_WIDTH],
        operator_initials=lot[LOT_INITIALS_WIDTH:initials_end],
        started_at=LOT_EPOCH + start_minutes * _ONE_MINUTE,
        finished_at=LOT_EPOCH + finish_minutes * _ONE_MINUTE,
        start_minutes=start_minutes,
        finish_minutes=finish_minutes,
    )
    if reference is None:
        return data
    return data.in_cycle(max(_latest_cycle(start_minutes, reference), 0))


def is_valid_lot_format(lot: str) -> bool:
    """Syntactic check: exactly 12 characters from [A-Z0-9]."""
    if not isinstance(lot, str):
        return False
    return _LOT_RE.fullmatch(lot) is not None


def normalize_lot(lot: Optional[str]) -> str:
    """Trim and uppercase user-typed lot input."""
    return (lot or "").strip().upper()
