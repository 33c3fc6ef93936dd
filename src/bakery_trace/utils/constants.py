"""
Constants for the Bakery Trace application.

This module defines system-wide constants including:
- Application metadata
- Lot code layout and base-36 alphabet
- Reconciliation limits
"""

from datetime import datetime, timezone

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Bakery Trace"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "bakery_trace.db"
DATABASE_VERSION = "1.0"

# ============================================================================
# Lot Codes
# ============================================================================

# Layout RRUUIIIIFFFF: recipe initials, operator initials,
# start minutes (base 36), finish minutes (base 36)
LOT_EPOCH = datetime(2020, 1, 1, tzinfo=timezone.utc)
LOT_LENGTH = 12
LOT_INITIALS_WIDTH = 2
LOT_MINUTES_WIDTH = 4
BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOT_MAX_MINUTES = 36**LOT_MINUTES_WIDTH - 1
LOT_FORMAT_PATTERN = r"^[A-Z0-9]{12}$"

# Stored in ProductionRun.production_lot until the run is finished
PLACEHOLDER_LOT = "TEMP"

EMPTY_INITIALS = "XX"

# ============================================================================
# Lot Reconciliation
# ============================================================================

# Decoded instants are floored to the minute; matching runs may be up to
# this many seconds away from them
LOT_MATCH_TOLERANCE_SECONDS = 60
MAX_LOT_CANDIDATES = 10
