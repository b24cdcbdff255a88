"""HTTP client for the escalation endpoints.

Every call has a bounded timeout. Timeouts, connection failures and 5xx
answers raise :class:`EscalationTransportError` (worth retrying); other
error answers raise :class:`EscalationApiError` (not worth retrying).
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from wakecheck.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class EscalationApiError(Exception):
    """The server rejected the request."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


class EscalationTransportError(Exception):
    """The server could not be reached or failed internally."""


@dataclass(frozen=True)
class RemoteEscalation:
    """The server's view of an escalation event."""

    event_id: uuid.UUID
    status: str
    escalation_time: datetime


@dataclass(frozen=True)
class DismissResult:
    status: str
    changed: bool


class EscalationApiClient:
    """Authenticated client for one user's escalation calls."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning(
                "Escalation API unreachable",
                method=method,
                path=path,
                error=str(exc) or type(exc).__name__,
            )
            raise EscalationTransportError(str(exc) or type(exc).__name__) from exc

        if response.status_code >= 500:
            raise EscalationTransportError(
                f"Server error {response.status_code} on {method} {path}"
            )
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise EscalationApiError(response.status_code, str(detail))

        return response.json()

    async def create_escalation(
        self,
        *,
        alarm_id: str,
        trigger_time: datetime,
        delay_minutes: int,
        friend_ids: list[uuid.UUID],
        message: str | None = None,
        event_id: uuid.UUID | None = None,
    ) -> RemoteEscalation:
        """Open an escalation.

        Sending the same ``event_id`` again returns the existing event, so
        the call can be retried after a lost response.
        """
        data = await self._request(
            "POST",
            "/api/escalations",
            json={
                "event_id": str(event_id) if event_id else None,
                "alarm_id": alarm_id,
                "trigger_time": trigger_time.isoformat(),
                "delay_minutes": delay_minutes,
                "friend_ids": [str(friend_id) for friend_id in friend_ids],
                "message": message,
            },
        )
        return RemoteEscalation(
            event_id=uuid.UUID(data["event_id"]),
            status="pending",
            escalation_time=datetime.fromisoformat(data["escalation_time"]),
        )

    async def dismiss(self, event_id: uuid.UUID) -> DismissResult:
        data = await self._request("POST", f"/api/escalations/{event_id}/dismiss")
        return DismissResult(status=data["status"], changed=data["changed"])

    async def snooze(
        self,
        event_id: uuid.UUID,
        additional_minutes: int,
        *,
        expected_escalation_time: datetime | None = None,
    ) -> datetime:
        """Extend the deadline; returns the new server-side deadline.

        With ``expected_escalation_time`` the server extends from that
        deadline and acknowledges a repeat without extending twice.
        """
        body: dict[str, Any] = {"additional_minutes": additional_minutes}
        if expected_escalation_time is not None:
            body["expected_escalation_time"] = expected_escalation_time.isoformat()
        data = await self._request(
            "POST",
            f"/api/escalations/{event_id}/snooze",
            json=body,
        )
        return datetime.fromisoformat(data["escalation_time"])

    async def get_escalation(self, event_id: uuid.UUID) -> RemoteEscalation:
        data = await self._request("GET", f"/api/escalations/{event_id}")
        return RemoteEscalation(
            event_id=uuid.UUID(data["id"]),
            status=data["status"],
            escalation_time=datetime.fromisoformat(data["escalation_time"]),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "EscalationApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
