"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

from datetime import time, timedelta

DEFAULT_CHECK_IN_START = time(6, 0)
DEFAULT_CHECK_IN_END = time(10, 0)
DEFAULT_CHECK_OUT_START = time(14, 0)
DEFAULT_CHECK_OUT_END = time(20, 0)
DEFAULT_SCHOOL_START = time(8, 0)

OTC_LENGTH = 6
OTC_TTL_MINUTES = 5
OTC_MAX_ATTEMPTS = 5
OTC_DEFAULT_PURPOSE = "attendance"
OTC_STORAGE_KEY = "@otc_codes"

QR_TAG = "GE"
QR_CACHE_DURATION = timedelta(hours=24)
QR_STORAGE_KEY = "@qr_codes"

BIOMETRIC_STORAGE_KEY = "@biometric_data"

CONSENT_WINDOW = timedelta(hours=24)

DEFAULT_API_TIMEOUT_SECONDS = 15.0
DEFAULT_TREND_DAYS = 7
