from __future__ import annotations

from typing import Protocol, Sequence

from ..core.enums import BiometricType
from .model import LocalAuthResult


class LocalAuthenticator(Protocol):
    """Device biometric capability (fingerprint reader, face unlock).

    ``authenticate`` shows a user-dismissible prompt; a dismissal is reported
    as ``LocalAuthResult(cancelled=True)``, not as an exception.
    """

    async def has_hardware(self) -> bool:
        raise NotImplementedError

    async def is_enrolled(self) -> bool:
        raise NotImplementedError

    async def supported_types(self) -> Sequence[BiometricType]:
        raise NotImplementedError

    async def authenticate(self, prompt: str) -> LocalAuthResult:
        raise NotImplementedError


class UnavailableAuthenticator(LocalAuthenticator):
    """Used on hosts with no biometric hardware."""

    async def has_hardware(self) -> bool:
        return False

    async def is_enrolled(self) -> bool:
        return False

    async def supported_types(self) -> Sequence[BiometricType]:
        return ()

    async def authenticate(self, prompt: str) -> LocalAuthResult:
        return LocalAuthResult(success=False, error="Biometric hardware not available")
