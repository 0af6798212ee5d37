"""Tracking constants and configuration defaults."""

# Movement filter: ~1 m at mid-latitudes
DEFAULT_THRESHOLD_DEGREES = 0.00001

# Position request defaults (mirrors a high-accuracy, uncached watch)
DEFAULT_HIGH_ACCURACY = True
DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_MAX_AGE_MS = 0

# Map centre reported before any fix exists
DEFAULT_CENTER_LAT = 22.3072
DEFAULT_CENTER_LON = 73.1812

# Durable path log
PATH_STORE_KEY = "tracked_path"

# Background execution
DEFERRED_SYNC_TASK = "geotrack-path-sync"
KEEP_ALIVE_PERMISSION = "keep-alive"
DEFERRED_SYNC_PERMISSION = "background-sync"
KEEP_ALIVE_REASON = "geotrack continuous location tracking"

# Diagnostic log
DEFAULT_DIAGNOSTIC_LINES = 200

# NMEA receivers
DEFAULT_BAUD_RATE = 9600
DEFAULT_RECONNECT_DELAY = 3.0
NMEA_UERE_M = 5.0  # nominal user-equivalent range error per unit of HDOP

# Replay source
DEFAULT_REPLAY_INTERVAL_S = 1.0
