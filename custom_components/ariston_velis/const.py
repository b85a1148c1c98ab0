"""Constants for the Ariston Velis integration.

This module contains all the constants used throughout the integration,
including API endpoints, configuration keys, defaults and wire mappings.
"""

from .models import HeaterMode, TargetMode

DOMAIN = "ariston_velis"
MANUFACTURER = "Ariston"

BASE_URL = "https://www.ariston-net.remotethermo.com/api/v2"
LOGIN_PATH = "/accounts/login"
PLANT_DATA_PATH = "/velis/medPlantData/{plant_id}"

AUTH_HEADER = "ar.authToken"
APP_VERSION = "5.6.7772.40151"
APP_ID = "com.remotethermo.aristonnet"
APP_OS = 2

CONF_PLANT_ID = "plant_id"
CONF_MODEL = "model"
CONF_SERIAL_NUMBER = "serial_number"
CONF_MIN_TEMPERATURE = "min_temperature"
CONF_MAX_TEMPERATURE = "max_temperature"
CONF_CACHE_TTL = "cache_ttl"
CONF_REFRESH_INTERVAL = "refresh_interval"
CONF_DEBOUNCE_DELAY = "debounce_delay"
CONF_RETRY_ATTEMPTS = "retry_attempts"
CONF_RETRY_BACKOFF = "retry_backoff"
CONF_TOKEN_LIFETIME = "token_lifetime"
CONF_REQUEST_TIMEOUT = "request_timeout"

DEVICE_MIN_TEMPERATURE = 40.0  # Device floor, never configurable below
DEFAULT_MIN_TEMPERATURE = DEVICE_MIN_TEMPERATURE
DEFAULT_MAX_TEMPERATURE = 80.0
DEFAULT_TARGET_TEMPERATURE = DEFAULT_MIN_TEMPERATURE
DEFAULT_CACHE_TTL = 30.0
DEFAULT_REFRESH_INTERVAL = 60.0
DEFAULT_DEBOUNCE_DELAY = 5.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF = 5.0
DEFAULT_TOKEN_LIFETIME = 3600.0  # Server does not advertise an expiry
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_MODEL = "Velis"
DEFAULT_SERIAL_NUMBER = "Unknown"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"
ERROR_INVALID_LIMITS = "invalid_limits"

ATTR_TARGET_TEMPERATURE = "target_temperature"
ATTR_MODE = "mode"

HEATER_MODE_MAP = {
    HeaterMode.MANUAL: 1,
    HeaterMode.TIMER: 5,
}
HEATER_MODE_REVERSE_MAP = {value: key for key, value in HEATER_MODE_MAP.items()}

OPERATION_MODES = [TargetMode.OFF, TargetMode.HEAT, TargetMode.AUTO]
