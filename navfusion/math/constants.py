"""
Mathematical, physical and pipeline constants for navigation fusion.
"""

# Earth parameters
EARTH_RADIUS_M = 6371000.0      # Earth radius in meters
METERS_PER_DEGREE = 111321.378  # Length of one degree of latitude (and of longitude at the equator)

# Conversion factors
KNOTS_TO_MS = 0.514444

# Time (all pipeline times are integer microseconds)
US_PER_SECOND = 1000000
US_PER_DAY = 86400 * US_PER_SECOND
NOON_US = 43200 * US_PER_SECOND         # 12:00 since midnight
LATE_EVENING_US = 82800 * US_PER_SECOND  # 23:00 since midnight

# Record log growth
RECORD_LOG_BLOCK_SIZE = 512

# Time aligner: drift shift is the minimum over this many trailing entries
DRIFT_WINDOW = 16

# Getter: a cached sample closer than this to the query time is returned as is
VALIDITY_WINDOW_US = 10000

# Smoothing quality (0 = strongest smoothing, 1 = weakest)
DEFAULT_QUALITY = 0.5

# Simplifier, distance threshold = THRESHOLD_MAX_M - THRESHOLD_SPAN_M * quality.
# Empirical values, tunable.
THRESHOLD_MAX_M = 10.0
THRESHOLD_SPAN_M = 9.0

# Simplifier, heading-deviation variant search radius (meters)
SEARCH_RADIUS_M = 50.0

# Two bearings closer than this are considered equal when picking an anchor (radians)
BEARING_TIE_RAD = 1e-9
