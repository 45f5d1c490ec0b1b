import os

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000/api")
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "15"))
API_TOKEN = os.getenv("API_TOKEN")

SCHOOL_START_TIME = os.getenv("SCHOOL_START_TIME", "08:00")
CHECK_IN_START = os.getenv("CHECK_IN_START", "06:00")
CHECK_IN_END = os.getenv("CHECK_IN_END", "10:00")
CHECK_OUT_START = os.getenv("CHECK_OUT_START", "14:00")
CHECK_OUT_END = os.getenv("CHECK_OUT_END", "20:00")

OTC_LENGTH = int(os.getenv("OTC_LENGTH", "6"))
OTC_TTL_MINUTES = int(os.getenv("OTC_TTL_MINUTES", "5"))
OTC_MAX_ATTEMPTS = int(os.getenv("OTC_MAX_ATTEMPTS", "5"))

QR_TAG = os.getenv("QR_TAG", "GE")
QR_CACHE_HOURS = int(os.getenv("QR_CACHE_HOURS", "24"))

CONSENT_WINDOW_HOURS = int(os.getenv("CONSENT_WINDOW_HOURS", "24"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
