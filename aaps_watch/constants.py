"""
Application constants and magic number definitions.

This module centralizes all hardcoded values for better maintainability.
"""

from enum import Enum


# =============================================================================
# Mailbox Files
# =============================================================================

STATUS_FILE = "aaps.current.status"
HISTORY_BG_FILE = "aaps.history.bg"
HISTORY_INSULIN_FILE = "aaps.history.insulin"
HISTORY_BASALS_FILE = "aaps.history.basals"

# Event files are named aaps.events.00 .. aaps.events.04
EVENT_FILE_PREFIX = "aaps.events."
MAX_NUMBER_OF_EVENT_FILES = 5

DEBUG_FILE_PREFIX = "aaps.debug."


# =============================================================================
# Buffer Timing
# =============================================================================

MINUTE_MS = 60 * 1000

# Trailing window kept in every history buffer (90 minutes)
RETENTION_WINDOW_MS = 90 * MINUTE_MS

# Minimum gap before a snapshot glucose value is appended to the buffer
GLUCOSE_INSERT_INTERVAL_MS = int(4.5 * MINUTE_MS)

# Watermark value meaning "never updated"
NEVER_UPDATED = -1


# =============================================================================
# Polling
# =============================================================================

DEFAULT_POLL_INTERVAL = 5
HOUSEKEEPING_INTERVAL = 60
DEFAULT_CONFIRM_TIMEOUT = 60


# =============================================================================
# Phone Bridge
# =============================================================================

DEFAULT_BRIDGE_HOST = "127.0.0.1"
DEFAULT_BRIDGE_PORT = 28891
DEFAULT_HTTP_TIMEOUT = 10

# Heart rate readings below this confidence are not uploaded
MIN_HEART_RATE_CONFIDENCE = 80


class CommandType(str, Enum):
    """Command names understood by the phone application."""

    REQUEST_INITIAL_DATA = "RequestInitialData"
    BOLUS_PRECHECK = "ActionBolusPreCheck"
    TEMP_TARGET_PRECHECK = "ActionTempTargetPreCheck"
    PROFILE_SWITCH_PRECHECK = "ActionProfileSwitchPreCheck"


class TempTargetPreset(str, Enum):
    """Temp target presets offered in the menu."""

    EATING_SOON = "PRESET_EATING"
    ACTIVITY = "PRESET_ACTIVITY"
    HYPO = "PRESET_HYPO"
    CANCEL = "CANCEL"


CONFIRM_ACTION_EVENT = "ConfirmAction"


# =============================================================================
# Number Entry Ranges
# =============================================================================

class EntryRange:
    """(initial, minimum, maximum, step) for each number entry dialog."""
    CARBS = (0, 0, 300, 5)
    INSULIN = (0.0, 0.0, 20.0, 0.5)
    PERCENT = (100, 10, 200, 10)
    DURATION = (0, 0, 1440, 30)


# =============================================================================
# Glucose Display
# =============================================================================

MGDL_TO_MMOL = 18.0182


class GlucoseThreshold:
    """Default out-of-range thresholds in mmol/L."""
    LOW = 4.0
    HIGH = 10.0


# Readings older than this are shown as stale
STALE_READING_MINUTES = 5

# Age shown when no reading has been received yet
UNKNOWN_AGE_MINUTES = 100

MISSING_TEXT = "---"


class Trend(str, Enum):
    """Trend arrow names sent by the phone application."""

    FLAT = "FLAT"
    UP = "UP"
    DOWN = "DOWN"
    FORTY_FIVE_UP = "FORTY_FIVE_UP"
    FORTY_FIVE_DOWN = "FORTY_FIVE_DOWN"


# =============================================================================
# Logging Constants
# =============================================================================

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_LEVEL = "INFO"
