from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from .api.client import ApiClient, StaticTokenProvider, TokenProvider
from .attendance.dashboard import AttendanceDashboard
from .attendance.factory import AttendanceStrategyFactory
from .attendance.guard import DedupGuard
from .attendance.http_attendance_repository import HttpAttendanceRepository
from .attendance.service import IngestionGateway
from .attendance.window import TimeWindowValidator
from .biometric.device import LocalAuthenticator, UnavailableAuthenticator
from .biometric.http_biometric_repository import HttpBiometricRepository
from .biometric.service import BiometricVerifier
from .common.datetime_utils import Clock, SystemClock
from .common.storage import InMemoryStore, KeyValueStore
from .config.settings import Settings
from .consent.http_consent_repository import HttpConsentRepository, HttpGuardianDirectory, HttpTeacherDirectory
from .consent.service import GuardianConsentService
from .notifications.emitter import NotificationEmitter
from .otc.http_otc_repository import HttpOTCRepository
from .otc.service import OTCManager
from .qr.http_qr_repository import HttpQRRepository
from .qr.service import QRTokenManager


@dataclass(frozen=True)
class Container:
    settings: Settings
    api: ApiClient
    store: KeyValueStore
    clock: Clock
    notifier: NotificationEmitter

    attendance_repo: HttpAttendanceRepository
    otc_repo: HttpOTCRepository
    qr_repo: HttpQRRepository
    biometric_repo: HttpBiometricRepository
    consent_repo: HttpConsentRepository
    guardian_directory: HttpGuardianDirectory
    teacher_directory: HttpTeacherDirectory

    gateway: IngestionGateway
    otc_manager: OTCManager
    qr_manager: QRTokenManager
    biometric_verifier: BiometricVerifier
    consent_service: GuardianConsentService
    dashboard: AttendanceDashboard

    async def aclose(self) -> None:
        self.dashboard.detach()
        await self.api.aclose()


def build_container(
    settings: Settings,
    *,
    store: Optional[KeyValueStore] = None,
    authenticator: Optional[LocalAuthenticator] = None,
    tokens: Optional[TokenProvider] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Clock] = None,
) -> Container:
    clock = clock or SystemClock()
    store = store if store is not None else InMemoryStore()
    notifier = NotificationEmitter()

    api = ApiClient(
        settings.api_base_url,
        timeout=settings.api_timeout_seconds,
        tokens=tokens or StaticTokenProvider(settings.api_token),
        transport=transport,
    )

    attendance_repo = HttpAttendanceRepository(api)
    otc_repo = HttpOTCRepository(api)
    qr_repo = HttpQRRepository(api)
    biometric_repo = HttpBiometricRepository(api)
    consent_repo = HttpConsentRepository(api, window=settings.consent_window)
    guardian_directory = HttpGuardianDirectory(api)
    teacher_directory = HttpTeacherDirectory(api)

    validator = TimeWindowValidator()
    gateway = IngestionGateway(
        attendance_repo,
        schedule=settings.schedule,
        validator=validator,
        guard=DedupGuard(),
        strategy_factory=AttendanceStrategyFactory(validator),
        notifier=notifier,
        clock=clock,
    )
    otc_manager = OTCManager(
        otc_repo,
        gateway,
        store,
        clock=clock,
        notifier=notifier,
        length=settings.otc_length,
        ttl_minutes=settings.otc_ttl_minutes,
        max_attempts=settings.otc_max_attempts,
    )
    qr_manager = QRTokenManager(
        qr_repo,
        gateway,
        store,
        clock=clock,
        notifier=notifier,
        tag=settings.qr_tag,
        cache_duration=settings.qr_cache_duration,
    )
    biometric_verifier = BiometricVerifier(
        biometric_repo,
        authenticator or UnavailableAuthenticator(),
        gateway,
        store,
        clock=clock,
    )
    consent_service = GuardianConsentService(
        consent_repo, guardian_directory, teacher_directory, clock=clock, notifier=notifier
    )

    dashboard = AttendanceDashboard(clock=clock)
    dashboard.attach(notifier)

    return Container(
        settings=settings,
        api=api,
        store=store,
        clock=clock,
        notifier=notifier,
        attendance_repo=attendance_repo,
        otc_repo=otc_repo,
        qr_repo=qr_repo,
        biometric_repo=biometric_repo,
        consent_repo=consent_repo,
        guardian_directory=guardian_directory,
        teacher_directory=teacher_directory,
        gateway=gateway,
        otc_manager=otc_manager,
        qr_manager=qr_manager,
        biometric_verifier=biometric_verifier,
        consent_service=consent_service,
        dashboard=dashboard,
    )
