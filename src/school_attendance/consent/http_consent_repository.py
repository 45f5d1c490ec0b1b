from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional, Sequence

from ..api.client import ApiClient
from ..common.datetime_utils import parse_timestamp
from ..core.constants import CONSENT_WINDOW
from ..core.enums import ConsentState
from ..core.exceptions import NotFound, ServerError, ValidationError
from .model import GuardianLinkRequest
from .repository import ConsentRepository, GuardianDirectory, TeacherDirectory


def _ids(values: Any) -> frozenset[str]:
    out = set()
    for v in values or []:
        out.add(str(v["id"]) if isinstance(v, dict) else str(v))
    return frozenset(out)


def request_from_payload(data: Any, *, window: timedelta = CONSENT_WINDOW) -> GuardianLinkRequest:
    if not isinstance(data, dict):
        raise ServerError("Malformed guardian request from server.")
    try:
        created_at = parse_timestamp(data["createdAt"])
        expires_at = parse_timestamp(data["expiresAt"]) if data.get("expiresAt") else created_at + window
        return GuardianLinkRequest(
            id=str(data["id"]),
            student_id=str(data["studentId"]),
            new_guardian_id=str(data["newGuardianId"]),
            created_at=created_at,
            expires_at=expires_at,
            total_guardians_required=int(data["totalGuardiansRequired"]),
            approvals=_ids(data.get("approvals")),
            state=ConsentState(data.get("state") or ConsentState.PENDING.value),
            finalized_by=str(data["finalizedBy"]) if data.get("finalizedBy") else None,
            rejected_by=str(data["rejectedBy"]) if data.get("rejectedBy") else None,
        )
    except (KeyError, ValueError, ValidationError) as exc:
        raise ServerError(f"Malformed guardian request from server: {exc}")


class HttpConsentRepository(ConsentRepository):
    def __init__(self, api: ApiClient, *, window: timedelta = CONSENT_WINDOW):
        self._api = api
        self._window = window

    def _parse(self, data: Any) -> GuardianLinkRequest:
        return request_from_payload(data, window=self._window)

    async def create(self, *, student_id: str, new_guardian_id: str) -> GuardianLinkRequest:
        data = await self._api.post("/guardian-requests/", {"studentId": student_id, "newGuardianId": new_guardian_id})
        return self._parse(data)

    async def get(self, request_id: str) -> Optional[GuardianLinkRequest]:
        try:
            data = await self._api.get(f"/guardian-requests/{request_id}/")
        except NotFound:
            return None
        return self._parse(data)

    async def list_requests(
        self,
        *,
        student_id: Optional[str] = None,
        state: Optional[ConsentState] = None,
    ) -> Sequence[GuardianLinkRequest]:
        params: dict[str, str] = {}
        if student_id:
            params["studentId"] = student_id
        if state:
            params["state"] = state.value
        data = await self._api.get("/guardian-requests/", params=params or None)
        rows = data.get("results", []) if isinstance(data, dict) else (data or [])
        return [self._parse(r) for r in rows]

    async def _act(self, action: str, request_id: str, actor_id: str) -> GuardianLinkRequest:
        data = await self._api.post(
            f"/guardian-requests/{request_id}/{action}/",
            {"requestId": request_id, "actorId": actor_id},
        )
        return self._parse(data)

    async def approve(self, *, request_id: str, actor_id: str) -> GuardianLinkRequest:
        return await self._act("approve", request_id, actor_id)

    async def reject(self, *, request_id: str, actor_id: str) -> GuardianLinkRequest:
        return await self._act("reject", request_id, actor_id)

    async def finalize(self, *, request_id: str, actor_id: str) -> GuardianLinkRequest:
        return await self._act("finalize", request_id, actor_id)


class HttpGuardianDirectory(GuardianDirectory):
    def __init__(self, api: ApiClient):
        self._api = api

    async def list_guardian_ids(self, student_id: str) -> Sequence[str]:
        data = await self._api.get(f"/students/{student_id}/guardians/")
        rows = data.get("results", []) if isinstance(data, dict) else (data or [])
        return sorted(_ids(rows))


class HttpTeacherDirectory(TeacherDirectory):
    def __init__(self, api: ApiClient):
        self._api = api

    async def list_teacher_ids(self, student_id: str) -> Sequence[str]:
        data = await self._api.get(f"/students/{student_id}/teachers/")
        rows = data.get("results", []) if isinstance(data, dict) else (data or [])
        return sorted(_ids(rows))
