"""Constants for the EUC Range integration."""

DOMAIN = "euc_range"

# Config entry data / options
CONF_WHEEL_NAME = "wheel_name"
CONF_CELL_COUNT = "cell_count"
CONF_BATTERY_CAPACITY_WH = "battery_capacity_wh"
OPTION_ENABLED = "enabled"
OPTION_AUTO_DETECT = "auto_detect_wheel"
OPTION_ESTIMATOR = "estimator"
OPTION_WINDOW_PRESET = "window_preset"
OPTION_CALIBRATION = "calibration_enabled"
OPTION_DEBUG_LOG = "debug_log"

# Documented fallbacks for unset or malformed configuration
DEFAULT_WHEEL_NAME = "Electric unicycle"
DEFAULT_CELL_COUNT = 20
DEFAULT_BATTERY_CAPACITY_WH = 2000.0
DEFAULT_ESTIMATOR = "weighted_window"
DEFAULT_WINDOW_PRESET = "balanced"
DEBUG_LOG = False

ESTIMATOR_SIMPLE_LINEAR = "simple_linear"
ESTIMATOR_WEIGHTED_WINDOW = "weighted_window"
ESTIMATORS = (ESTIMATOR_SIMPLE_LINEAR, ESTIMATOR_WEIGHTED_WINDOW)
WINDOW_PRESETS = ("conservative", "balanced", "responsive")

SUPPORTED_CELL_COUNTS = (16, 20, 24, 30, 36, 40)
MIN_BATTERY_CAPACITY_WH = 100
MAX_BATTERY_CAPACITY_WH = 10000

# Li-ion cell voltage window (V per cell)
CELL_VOLTAGE_MAX = 4.2
CELL_VOLTAGE_MIN = 3.0

# Sample validation
TIME_GAP_SECONDS = 5.0
DISTANCE_JUMP_KM = 0.5
DISTANCE_JUMP_WINDOW_SECONDS = 10.0
CHARGING_FLAG_BATTERY_RISE = 3.0
CHARGING_FLAG_VOLTAGE_RISE = 1.0
STATIONARY_SPEED_KMH = 1.0
MAX_SPEED_KMH = 80.0
MAX_ACCELERATION_KMH_PER_S = 20.0
MAX_INSTANT_EFFICIENCY = 200.0
MIN_MOVING_SPEED_KMH = 1.0

# Trip lifecycle
CONNECTION_GAP_SECONDS = 2.0
INTERPOLATION_INTERVAL_SECONDS = 5.0
MAX_INTERPOLATED_SAMPLES = 720  # ~1 hour at 5 s spacing
STALE_AFTER_SECONDS = 60.0
CHARGING_VOLTAGE_RISE = 0.5
CHARGING_BATTERY_RISE = 1.0
CHARGING_MAX_DISTANCE_KM = 0.01

# Estimation gate (measured from the current baseline segment)
MIN_TRAVEL_MINUTES = 10.0
MIN_TRAVEL_KM = 10.0
MIN_EFFICIENCY_WH_PER_KM = 5.0
MAX_EFFICIENCY_WH_PER_KM = 200.0
LOW_CONFIDENCE_THRESHOLD = 0.5

# Recompute throttling
RECOMPUTE_COLLECTING_SECONDS = 10.0
RECOMPUTE_HIGH_BATTERY_SECONDS = 5 * 60.0
RECOMPUTE_LOW_BATTERY_SECONDS = 60.0
RECOMPUTE_BATTERY_THRESHOLD = 50.0

# Historical calibration
MILESTONE_PERCENTS = tuple(range(95, 0, -5))
HISTORY_MAX_SEGMENTS = 100
HISTORY_MIN_DISTANCE_KM = 2.0
HISTORY_MIN_PERCENT_DELTA = 5
CALIBRATION_MIN_FACTOR = 0.8
CALIBRATION_MAX_FACTOR = 1.2

# Persistence
HISTORY_STORE_KEY = "history"
HISTORY_STORE_VERSION = 1
RECOVERY_STORE_KEY = "recovery"
RECOVERY_STORE_VERSION = 1
RECOVERY_MAX_AGE_SECONDS = 5 * 60.0
RECOVERY_SAVE_DELAY_SECONDS = 5.0

# Service names
SERVICE_PUSH_SAMPLE = "push_sample"
SERVICE_RESET_TRIP = "reset_trip"
SERVICE_MARK_DISCONNECTED = "mark_disconnected"
SERVICE_GET_STATISTICS = "get_statistics"
