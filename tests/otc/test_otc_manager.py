import asyncio
from datetime import datetime

import httpx
import pytest

from school_attendance.api.client import ApiClient
from school_attendance.core.enums import AttendanceStatus, Direction, ErrorKind, Method
from school_attendance.core.exceptions import (
    Conflict,
    DuplicateRecord,
    NetworkError,
    NotFound,
    TooManyAttempts,
    ValidationError,
    WindowClosed,
)
from school_attendance.notifications.emitter import OTC_GENERATED
from school_attendance.otc.http_otc_repository import HttpOTCRepository
from school_attendance.otc.service import OTCManager


@pytest.fixture
def manager(otc_repo, gateway, store, clock, notifier):
    return OTCManager(otc_repo, gateway, store, clock=clock, notifier=notifier)


def test_code_valid_before_expiry_and_expired_after(manager, clock):
    asyncio.run(manager.generate("S1"))

    clock.advance(minutes=4)
    ok = asyncio.run(manager.validate("123-456"))

    clock.advance(minutes=2)
    late = asyncio.run(manager.validate("123456"))

    assert ok.valid
    assert ok.student_id == "S1"
    assert not late.valid
    assert late.reason is ErrorKind.EXPIRED


def test_malformed_code_is_rejected_without_backend_call(manager, otc_repo):
    result = asyncio.run(manager.validate("12ab56"))

    assert not result.valid
    assert result.reason is ErrorKind.VALIDATION
    assert otc_repo.validate_calls == 0

    with pytest.raises(ValidationError):
        asyncio.run(manager.submit("12345", Direction.CHECK_IN))


def test_generate_caches_and_notifies(manager, notifier):
    seen = []
    notifier.subscribe(OTC_GENERATED, lambda topic, payload: seen.append(payload))

    otc = asyncio.run(manager.generate("S1", ttl_minutes=10))
    cached = asyncio.run(manager.get_cached("S1"))

    assert cached == otc
    assert manager.remaining(otc.expires_at).minutes == 10
    assert not manager.is_expired(otc)
    assert manager.is_expired(None)
    assert seen == [{"studentId": "S1", "expiresAt": otc.expires_at}]


def test_generate_rejects_non_positive_lifetime(manager):
    with pytest.raises(ValidationError):
        asyncio.run(manager.generate("S1", ttl_minutes=0))


def test_too_many_wrong_codes_blocks_until_regenerated(manager, otc_repo):
    asyncio.run(manager.generate("S1"))

    for _ in range(5):
        wrong = asyncio.run(manager.validate("999999", "S1"))
        assert wrong.reason is ErrorKind.NOT_FOUND

    blocked = asyncio.run(manager.validate("123456", "S1"))
    assert blocked.reason is ErrorKind.TOO_MANY_ATTEMPTS

    otc_repo.next_code = "654321"
    asyncio.run(manager.generate("S1"))
    assert asyncio.run(manager.validate("654321", "S1")).valid


def test_submit_records_attendance_and_evicts_cache(manager, otc_repo):
    asyncio.run(manager.generate("S1"))

    event = asyncio.run(manager.submit("123 456", Direction.CHECK_IN))

    assert event.method is Method.OTC
    assert event.status is AttendanceStatus.LATE
    assert event.late_minutes == 5
    assert asyncio.run(manager.get_cached("S1")) is None
    assert otc_repo.codes["123456"].consumed

    with pytest.raises(Conflict):
        asyncio.run(manager.submit("123456", Direction.CHECK_IN, "S1"))


def test_failed_submit_keeps_cached_code(manager, clock):
    clock.set(datetime(2025, 3, 3, 8, 25))
    asyncio.run(manager.generate("S1"))

    with pytest.raises(WindowClosed):
        asyncio.run(manager.submit("123456", Direction.CHECK_IN, "S1"))

    assert asyncio.run(manager.get_cached("S1")) is not None


def test_network_errors_are_raised_not_folded(manager, otc_repo):
    async def offline(**kwargs):
        raise NetworkError()

    otc_repo.validate = offline

    with pytest.raises(NetworkError):
        asyncio.run(manager.validate("123456", "S1"))


def test_clear_all_caches(manager, otc_repo):
    asyncio.run(manager.generate("S1"))
    otc_repo.next_code = "222222"
    asyncio.run(manager.generate("S2"))

    assert asyncio.run(manager.clear_all_caches()) == 2
    assert asyncio.run(manager.get_cached("S2")) is None


def test_repeat_submit_is_refused_before_backend(manager, otc_repo):
    asyncio.run(manager.generate("S1"))
    asyncio.run(manager.submit("123456", Direction.CHECK_IN, "S1"))
    calls = otc_repo.validate_calls

    with pytest.raises(DuplicateRecord):
        asyncio.run(manager.submit("123456", Direction.CHECK_IN, "S1"))

    assert otc_repo.validate_calls == calls


def _otc_backend(submit_response):
    seen = []

    def handler(request):
        seen.append(request.url.path)
        if request.url.path.endswith("/otc/generate/"):
            return httpx.Response(201, json={"otc": {"code": "123456", "studentId": "S1"}})
        if request.url.path.endswith("/otc/validate/"):
            body = request.content.decode()
            if "123456" in body:
                return httpx.Response(200, json={"valid": True, "studentId": "S1"})
            return httpx.Response(200, json={"valid": False, "reason": "not_found", "message": "Unknown code"})
        return submit_response

    return handler, seen


def _drive(handler, gateway, store, clock, steps):
    async def main():
        async with ApiClient("http://testserver/api", transport=httpx.MockTransport(handler)) as api:
            manager = OTCManager(HttpOTCRepository(api), gateway, store, clock=clock)
            await manager.generate("S1")
            return await steps(manager)

    return asyncio.run(main())


def test_backend_429_on_submit_blocks_the_student(gateway, store, clock, attendance_repo):
    handler, seen = _otc_backend(httpx.Response(429, json={"detail": "Too many attempts"}))

    async def steps(manager):
        with pytest.raises(TooManyAttempts):
            await manager.submit("123456", Direction.CHECK_IN, "S1")
        return await manager.validate("123456", "S1")

    blocked = _drive(handler, gateway, store, clock, steps)

    assert blocked.reason is ErrorKind.TOO_MANY_ATTEMPTS
    assert seen.count("/api/otc/submit/") == 1
    assert seen.count("/api/otc/validate/") == 1
    assert attendance_repo.events == []
    # The dedup key is released so a fresh code can still be redeemed today.
    gateway.check_duplicate("S1", Direction.CHECK_IN)


def test_wrong_code_is_not_reported_as_too_many_attempts(gateway, store, clock):
    handler, seen = _otc_backend(httpx.Response(500))

    async def steps(manager):
        with pytest.raises(NotFound):
            await manager.submit("654321", Direction.CHECK_IN, "S1")
        return await manager.validate("123456", "S1")

    after = _drive(handler, gateway, store, clock, steps)

    assert after.valid
    assert "/api/otc/submit/" not in seen
