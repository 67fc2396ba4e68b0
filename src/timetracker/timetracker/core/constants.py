"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

SESSIONS_COLLECTION = "workTimers"
ATTENDANCE_COLLECTION = "attendance"

DEFAULT_TICK_INTERVAL_SECONDS = 1.0
DEFAULT_STORE_TIMEOUT_SECONDS = 10.0
DEFAULT_STORE_READ_ATTEMPTS = 3
DEFAULT_STORE_RETRY_DELAY_SECONDS = 0.5

DEFAULT_HISTORY_LIMIT = 10
