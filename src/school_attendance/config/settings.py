from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from datetime import timedelta
from types import ModuleType
from typing import Optional

from dotenv import load_dotenv

from ..attendance.model import AttendanceSchedule
from ..common.datetime_utils import parse_time_of_day
from ..core import constants
from . import get_settings_module


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    api_timeout_seconds: float = constants.DEFAULT_API_TIMEOUT_SECONDS
    api_token: Optional[str] = None
    schedule: AttendanceSchedule = field(default_factory=AttendanceSchedule)
    otc_length: int = constants.OTC_LENGTH
    otc_ttl_minutes: int = constants.OTC_TTL_MINUTES
    otc_max_attempts: int = constants.OTC_MAX_ATTEMPTS
    qr_tag: str = constants.QR_TAG
    qr_cache_duration: timedelta = constants.QR_CACHE_DURATION
    consent_window: timedelta = constants.CONSENT_WINDOW
    log_level: str = "INFO"
    module: str = ""


def settings_from_module(settings: ModuleType) -> Settings:
    def _get(name: str, default=None):
        return getattr(settings, name, default)

    schedule = AttendanceSchedule(
        check_in_start=parse_time_of_day(_get("CHECK_IN_START", "06:00")),
        check_in_end=parse_time_of_day(_get("CHECK_IN_END", "10:00")),
        check_out_start=parse_time_of_day(_get("CHECK_OUT_START", "14:00")),
        check_out_end=parse_time_of_day(_get("CHECK_OUT_END", "20:00")),
        school_start=parse_time_of_day(_get("SCHOOL_START_TIME", "08:00")),
    )
    return Settings(
        api_base_url=str(_get("API_BASE_URL")),
        api_timeout_seconds=float(_get("API_TIMEOUT_SECONDS", constants.DEFAULT_API_TIMEOUT_SECONDS)),
        api_token=_get("API_TOKEN"),
        schedule=schedule,
        otc_length=int(_get("OTC_LENGTH", constants.OTC_LENGTH)),
        otc_ttl_minutes=int(_get("OTC_TTL_MINUTES", constants.OTC_TTL_MINUTES)),
        otc_max_attempts=int(_get("OTC_MAX_ATTEMPTS", constants.OTC_MAX_ATTEMPTS)),
        qr_tag=str(_get("QR_TAG", constants.QR_TAG)),
        qr_cache_duration=timedelta(hours=int(_get("QR_CACHE_HOURS", 24))),
        consent_window=timedelta(hours=int(_get("CONSENT_WINDOW_HOURS", 24))),
        log_level=str(_get("LOG_LEVEL", "INFO")).upper(),
        module=settings.__name__,
    )


def load_settings(module_name: Optional[str] = None) -> Settings:
    """Read ``.env`` (without overriding the real environment) and build Settings."""

    load_dotenv(override=False)
    settings = importlib.import_module(module_name or get_settings_module())
    return settings_from_module(settings)
