API_BASE_URL = "http://testserver/api"
API_TIMEOUT_SECONDS = 5.0
API_TOKEN = "test-token"

SCHOOL_START_TIME = "08:00"
CHECK_IN_START = "06:00"
CHECK_IN_END = "10:00"
CHECK_OUT_START = "14:00"
CHECK_OUT_END = "20:00"

OTC_LENGTH = 6
OTC_TTL_MINUTES = 5
OTC_MAX_ATTEMPTS = 5

QR_TAG = "GE"
QR_CACHE_HOURS = 24

CONSENT_WINDOW_HOURS = 24

LOG_LEVEL = "INFO"
