from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import Remaining, remaining
from ..core.enums import ConsentState
from ..core.exceptions import Conflict, Expired, ValidationError

# Allowed forward moves; everything else is rejected.
TRANSITIONS: dict[ConsentState, frozenset[ConsentState]] = {
    ConsentState.PENDING: frozenset({ConsentState.APPROVED, ConsentState.REJECTED, ConsentState.EXPIRED}),
    ConsentState.APPROVED: frozenset({ConsentState.FINALIZED, ConsentState.REJECTED, ConsentState.EXPIRED}),
    ConsentState.REJECTED: frozenset(),
    ConsentState.EXPIRED: frozenset(),
    ConsentState.FINALIZED: frozenset(),
}


@dataclass(frozen=True)
class ApprovalProgress:
    approved: int
    required: int

    @property
    def remaining(self) -> int:
        return max(0, self.required - self.approved)

    @property
    def is_complete(self) -> bool:
        return self.approved >= self.required


@dataclass(frozen=True)
class GuardianLinkRequest:
    """Request to attach a new guardian to a student.

    Instances are snapshots: every transition returns a new object. Expiry is
    evaluated lazily against the ``now`` passed in, never by a timer.
    """

    id: str
    student_id: str
    new_guardian_id: str
    created_at: datetime
    expires_at: datetime
    total_guardians_required: int
    approvals: frozenset[str] = field(default_factory=frozenset)
    state: ConsentState = ConsentState.PENDING
    finalized_by: Optional[str] = None
    rejected_by: Optional[str] = None

    def __post_init__(self):
        if self.total_guardians_required < 1:
            raise ValidationError("At least one guardian approval is required")
        if len(self.approvals) > self.total_guardians_required:
            raise ValidationError("More approvals than guardians required")

    def effective_state(self, now: datetime) -> ConsentState:
        if self.state in {ConsentState.PENDING, ConsentState.APPROVED} and now > self.expires_at:
            return ConsentState.EXPIRED
        return self.state

    def view(self, now: datetime) -> "GuardianLinkRequest":
        state = self.effective_state(now)
        return self if state is self.state else replace(self, state=state)

    @property
    def progress(self) -> ApprovalProgress:
        return ApprovalProgress(approved=len(self.approvals), required=self.total_guardians_required)

    def time_remaining(self, now: datetime) -> Remaining:
        return remaining(self.expires_at, now)

    def _move(self, target: ConsentState, now: datetime, **changes) -> "GuardianLinkRequest":
        current = self.effective_state(now)
        if current is ConsentState.EXPIRED:
            raise Expired("This request has expired. Start a new request.")
        if target not in TRANSITIONS[current]:
            raise Conflict(f"Cannot move a {current.value} request to {target.value}")
        return replace(self, state=target, **changes)

    def with_approval(self, guardian_id: str, now: datetime) -> "GuardianLinkRequest":
        current = self.effective_state(now)
        if current is ConsentState.EXPIRED:
            raise Expired("This request has expired. Start a new request.")
        if guardian_id in self.approvals and current in {ConsentState.PENDING, ConsentState.APPROVED}:
            return self
        if current is not ConsentState.PENDING:
            raise Conflict(f"Cannot approve a {current.value} request")

        approvals = self.approvals | {guardian_id}
        if len(approvals) >= self.total_guardians_required:
            return self._move(ConsentState.APPROVED, now, approvals=approvals)
        return replace(self, approvals=approvals)

    def with_rejection(self, actor_id: str, now: datetime) -> "GuardianLinkRequest":
        return self._move(ConsentState.REJECTED, now, rejected_by=actor_id)

    def with_finalization(self, teacher_id: str, now: datetime) -> "GuardianLinkRequest":
        current = self.effective_state(now)
        if current is ConsentState.PENDING:
            raise Conflict(
                f"Guardian approvals incomplete ({len(self.approvals)}/{self.total_guardians_required})"
            )
        return self._move(ConsentState.FINALIZED, now, finalized_by=teacher_id)
