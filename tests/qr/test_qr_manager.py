import asyncio
from datetime import datetime, timedelta

import pytest

from school_attendance.core.enums import Direction, ErrorKind, Method
from school_attendance.core.exceptions import Conflict, DuplicateRecord, Expired, ValidationError, WindowClosed
from school_attendance.notifications.emitter import QR_REGENERATED
from school_attendance.qr.payload import parse_payload
from school_attendance.qr.service import QRTokenManager


@pytest.fixture
def manager(qr_repo, gateway, store, clock, notifier):
    return QRTokenManager(qr_repo, gateway, store, clock=clock, notifier=notifier)


def test_garbage_payload_fails_before_backend(manager, qr_repo):
    result = asyncio.run(manager.validate("not-a-qr"))

    assert not result.valid
    assert result.reason is ErrorKind.VALIDATION
    assert qr_repo.validate_calls == 0


def test_scan_records_qr_attendance(manager):
    token = asyncio.run(manager.generate("S1"))

    event = asyncio.run(manager.scan(token.payload, Direction.CHECK_IN))

    assert event.method is Method.QR
    assert event.student_id == "S1"


def test_expiry_must_be_in_the_future(manager, clock):
    with pytest.raises(ValidationError):
        asyncio.run(manager.generate("S1", expires_at=clock.now()))


def test_expired_token_is_rejected_locally(manager, clock, qr_repo):
    token = asyncio.run(manager.generate("S1", expires_at=clock.now() + timedelta(minutes=1)))
    clock.advance(minutes=2)

    result = asyncio.run(manager.validate(token.payload))

    assert result.reason is ErrorKind.EXPIRED
    assert qr_repo.validate_calls == 0


def test_regenerated_token_never_validates_again(manager, qr_repo, notifier, store):
    seen = []
    notifier.subscribe(QR_REGENERATED, lambda topic, payload: seen.append(payload))
    old = asyncio.run(manager.generate("S1"))

    new = asyncio.run(manager.regenerate("S1", "Lost badge"))

    assert new.payload != old.payload
    assert asyncio.run(manager.validate(old.payload)).reason is ErrorKind.EXPIRED
    assert qr_repo.revocations == [("S1", "Lost badge")]
    assert seen == [{"studentId": "S1", "reason": "Lost badge"}]

    # Even with the remembered list gone the backend still refuses it.
    asyncio.run(store.delete("@qr_revoked"))
    assert not asyncio.run(manager.validate(old.payload)).valid

    with pytest.raises(Expired):
        asyncio.run(manager.scan(old.payload, Direction.CHECK_IN))


def test_single_use_token_is_consumed(manager, clock):
    token = asyncio.run(manager.generate("S1", single_use=True))
    asyncio.run(manager.scan(token.payload, Direction.CHECK_IN))

    clock.set(datetime(2025, 3, 3, 15, 0))
    result = asyncio.run(manager.validate(token.payload))

    assert result.reason is ErrorKind.CONFLICT
    with pytest.raises(Conflict):
        asyncio.run(manager.scan(token.payload, Direction.CHECK_OUT))


def test_cache_lifetime(manager, clock, qr_repo):
    token = asyncio.run(manager.generate("S1"))
    assert asyncio.run(manager.get_token("S1")) == token

    clock.advance(hours=24)
    assert asyncio.run(manager.get_cached("S1")) is None
    assert asyncio.run(manager.get_token("S1")) == token


def test_revoke_clears_cache(manager):
    token = asyncio.run(manager.generate("S1"))

    asyncio.run(manager.revoke("S1"))

    assert asyncio.run(manager.get_cached("S1")) is None
    assert asyncio.run(manager.validate(token.payload)).reason is ErrorKind.EXPIRED


def test_regenerate_within_the_same_millisecond_issues_a_new_payload(manager):
    first = asyncio.run(manager.generate("S1"))
    second = asyncio.run(manager.regenerate("S1", "Lost badge"))
    third = asyncio.run(manager.regenerate("S1", "Lost again"))

    tokens = [parse_payload(t.payload).issued_at_token for t in (first, second, third)]
    assert tokens == [tokens[0], tokens[0] + 1, tokens[0] + 2]
    assert asyncio.run(manager.validate(first.payload)).reason is ErrorKind.EXPIRED
    assert asyncio.run(manager.validate(second.payload)).reason is ErrorKind.EXPIRED
    assert asyncio.run(manager.validate(third.payload)).valid

    event = asyncio.run(manager.scan(third.payload, Direction.CHECK_IN))
    assert event.student_id == "S1"


def test_remembered_payloads_are_dropped_after_cache_lifetime(manager, clock, store):
    first = asyncio.run(manager.generate("S1"))
    asyncio.run(manager.revoke("S1"))
    assert list(asyncio.run(store.get("@qr_revoked"))) == [first.payload]

    clock.advance(hours=25)
    second = asyncio.run(manager.generate("S2"))
    asyncio.run(manager.revoke("S2"))

    assert list(asyncio.run(store.get("@qr_revoked"))) == [second.payload]
    # The backend still refuses the forgotten payload.
    assert asyncio.run(manager.validate(first.payload)).reason is ErrorKind.EXPIRED


def test_repeat_scan_is_refused_before_backend(manager, qr_repo):
    token = asyncio.run(manager.generate("S1"))
    asyncio.run(manager.scan(token.payload, Direction.CHECK_IN))
    calls = qr_repo.validate_calls

    with pytest.raises(DuplicateRecord):
        asyncio.run(manager.scan(token.payload, Direction.CHECK_IN))

    assert qr_repo.validate_calls == calls


def test_scan_outside_window_is_refused_before_backend(manager, qr_repo, clock):
    token = asyncio.run(manager.generate("S1"))
    clock.set(datetime(2025, 3, 3, 11, 0))

    with pytest.raises(WindowClosed):
        asyncio.run(manager.scan(token.payload, Direction.CHECK_IN))

    assert qr_repo.validate_calls == 0
