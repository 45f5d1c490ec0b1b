from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..common.datetime_utils import Clock, Remaining, SystemClock
from ..common.validators import require_non_empty
from ..core.enums import ConsentState, Role
from ..core.exceptions import Conflict, NotFound, PermissionDenied
from ..notifications.emitter import (
    CONSENT_APPROVED,
    CONSENT_CREATED,
    CONSENT_FINALIZED,
    CONSENT_REJECTED,
    NotificationEmitter,
)
from .model import ApprovalProgress, GuardianLinkRequest
from .repository import ConsentRepository, GuardianDirectory, TeacherDirectory

logger = logging.getLogger(__name__)


class GuardianConsentService:
    """Multi-party approval for linking a new guardian to a student.

    Every existing guardian must approve, then one of the student's teachers
    finalizes. Requests lapse after their expiry; reads report the lapsed state
    without a write.
    Each action re-reads the request and checks the transition locally before
    the backend is asked.
    """

    def __init__(
        self,
        requests: ConsentRepository,
        guardians: GuardianDirectory,
        teachers: TeacherDirectory,
        *,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationEmitter] = None,
    ):
        self._requests = requests
        self._guardians = guardians
        self._teachers = teachers
        self._clock = clock or SystemClock()
        self._notifier = notifier

    async def _emit(self, topic: str, request: GuardianLinkRequest) -> None:
        if self._notifier is not None:
            await self._notifier.emit(
                topic,
                {
                    "requestId": request.id,
                    "studentId": request.student_id,
                    "newGuardianId": request.new_guardian_id,
                    "state": request.state.value,
                },
            )

    async def _require_guardian(self, student_id: str, actor_id: str) -> list[str]:
        current = list(await self._guardians.list_guardian_ids(student_id))
        if actor_id not in current:
            raise PermissionDenied("Only a current guardian of this student can do this")
        return current

    async def _require_teacher(self, student_id: str, actor_id: str) -> None:
        if actor_id not in await self._teachers.list_teacher_ids(student_id):
            raise PermissionDenied("Only a teacher of this student can do this")

    async def create_request(self, student_id: str, new_guardian_id: str) -> GuardianLinkRequest:
        student_id = require_non_empty(student_id, "Student ID")
        new_guardian_id = require_non_empty(new_guardian_id, "Guardian ID")

        current = await self._guardians.list_guardian_ids(student_id)
        if new_guardian_id in current:
            raise Conflict("This guardian is already linked to the student")

        request = await self._requests.create(student_id=student_id, new_guardian_id=new_guardian_id)
        logger.info(
            "Guardian link request %s created for student %s (%d approvals needed)",
            request.id,
            student_id,
            request.total_guardians_required,
        )
        await self._emit(CONSENT_CREATED, request)
        return request

    async def get_request(self, request_id: str) -> GuardianLinkRequest:
        request_id = require_non_empty(request_id, "Request ID")
        request = await self._requests.get(request_id)
        if request is None:
            raise NotFound("Guardian request not found")
        return request.view(self._clock.now())

    async def approve(self, request_id: str, guardian_id: str) -> GuardianLinkRequest:
        guardian_id = require_non_empty(guardian_id, "Guardian ID")
        request = await self.get_request(request_id)
        await self._require_guardian(request.student_id, guardian_id)

        if request.with_approval(guardian_id, self._clock.now()) is request:
            return request

        updated = (await self._requests.approve(request_id=request.id, actor_id=guardian_id)).view(self._clock.now())
        logger.info(
            "Guardian %s approved request %s (%d/%d)",
            guardian_id,
            request.id,
            len(updated.approvals),
            updated.total_guardians_required,
        )
        await self._emit(CONSENT_APPROVED, updated)
        return updated

    async def reject(self, request_id: str, actor_id: str, role: Role = Role.GUARDIAN) -> GuardianLinkRequest:
        actor_id = require_non_empty(actor_id, "Actor ID")
        request = await self.get_request(request_id)
        if role is Role.TEACHER:
            await self._require_teacher(request.student_id, actor_id)
        else:
            await self._require_guardian(request.student_id, actor_id)
        request.with_rejection(actor_id, self._clock.now())

        updated = (await self._requests.reject(request_id=request.id, actor_id=actor_id)).view(self._clock.now())
        logger.warning("Request %s rejected by %s %s", request.id, role.value, actor_id)
        await self._emit(CONSENT_REJECTED, updated)
        return updated

    async def teacher_finalize(self, request_id: str, teacher_id: str) -> GuardianLinkRequest:
        teacher_id = require_non_empty(teacher_id, "Teacher ID")
        request = await self.get_request(request_id)
        await self._require_teacher(request.student_id, teacher_id)
        request.with_finalization(teacher_id, self._clock.now())

        # Approvals only count while the approver is still a guardian.
        current = set(await self._guardians.list_guardian_ids(request.student_id))
        still_valid = request.approvals & current
        if len(still_valid) < request.total_guardians_required:
            raise Conflict("Guardian approvals are no longer sufficient")

        updated = (await self._requests.finalize(request_id=request.id, actor_id=teacher_id)).view(self._clock.now())
        logger.info("Request %s finalized by teacher %s", request.id, teacher_id)
        await self._emit(CONSENT_FINALIZED, updated)
        return updated

    async def list_pending_for_guardian(self, guardian_id: str, student_ids: Sequence[str]) -> list[GuardianLinkRequest]:
        """Pending requests for the given students that this guardian has not approved yet."""

        now = self._clock.now()
        out: list[GuardianLinkRequest] = []
        for student_id in student_ids:
            if guardian_id not in await self._guardians.list_guardian_ids(student_id):
                continue
            for request in await self._requests.list_requests(student_id=student_id):
                request = request.view(now)
                if request.state is ConsentState.PENDING and guardian_id not in request.approvals:
                    out.append(request)
        return sorted(out, key=lambda r: r.created_at)

    async def list_awaiting_teacher(self, student_id: Optional[str] = None) -> list[GuardianLinkRequest]:
        now = self._clock.now()
        rows = await self._requests.list_requests(student_id=student_id, state=ConsentState.APPROVED)
        views = [r.view(now) for r in rows]
        return sorted((r for r in views if r.state is ConsentState.APPROVED), key=lambda r: r.created_at)

    def approval_progress(self, request: GuardianLinkRequest) -> ApprovalProgress:
        return request.progress

    def time_remaining(self, request: GuardianLinkRequest) -> Remaining:
        return request.time_remaining(self._clock.now())
