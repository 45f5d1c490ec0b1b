from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..core.enums import ConsentState
from .model import GuardianLinkRequest


class ConsentRepository(Protocol):
    """Backend of record for guardian link requests."""

    async def create(self, *, student_id: str, new_guardian_id: str) -> GuardianLinkRequest:
        raise NotImplementedError

    async def get(self, request_id: str) -> Optional[GuardianLinkRequest]:
        raise NotImplementedError

    async def list_requests(
        self,
        *,
        student_id: Optional[str] = None,
        state: Optional[ConsentState] = None,
    ) -> Sequence[GuardianLinkRequest]:
        raise NotImplementedError

    async def approve(self, *, request_id: str, actor_id: str) -> GuardianLinkRequest:
        raise NotImplementedError

    async def reject(self, *, request_id: str, actor_id: str) -> GuardianLinkRequest:
        raise NotImplementedError

    async def finalize(self, *, request_id: str, actor_id: str) -> GuardianLinkRequest:
        raise NotImplementedError


class GuardianDirectory(Protocol):
    async def list_guardian_ids(self, student_id: str) -> Sequence[str]:
        """Current guardians of a student."""

        raise NotImplementedError


class TeacherDirectory(Protocol):
    async def list_teacher_ids(self, student_id: str) -> Sequence[str]:
        """Teachers allowed to act on this student's requests."""

        raise NotImplementedError
