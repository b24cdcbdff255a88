"""Push gateway client.

Delivery itself is an external collaborator: this module posts one
message per recipient to the configured gateway and reports whether the
gateway accepted it. Delivery is best-effort; nothing is retried here.
"""

from dataclasses import dataclass, field

import httpx

from wakecheck.config import settings
from wakecheck.logging_config import get_logger

logger = get_logger(__name__)


class PushDeliveryError(Exception):
    """The push gateway rejected the message or could not be reached."""


@dataclass(frozen=True)
class PushMessage:
    """A single notification addressed to one device token."""

    token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    time_sensitive: bool = False


def _build_payload(message: PushMessage) -> dict:
    aps: dict[str, object] = {"sound": "default", "badge": 1}
    if message.time_sensitive:
        aps["interruption-level"] = "time-sensitive"

    return {
        "message": {
            "token": message.token,
            "notification": {"title": message.title, "body": message.body},
            "data": message.data,
            "apns": {"payload": {"aps": aps}},
        }
    }


async def send_push(message: PushMessage) -> bool:
    """Send one notification through the push gateway.

    Returns:
        True if the gateway accepted the message.

    Raises:
        PushDeliveryError: If the gateway is not configured, times out or
            answers with an error.
    """
    if not settings.push_gateway_url:
        raise PushDeliveryError("Push gateway is not configured")

    headers = {}
    if settings.push_api_key:
        headers["Authorization"] = f"Bearer {settings.push_api_key}"

    try:
        async with httpx.AsyncClient(timeout=settings.push_timeout_seconds) as client:
            response = await client.post(
                settings.push_gateway_url,
                json=_build_payload(message),
                headers=headers,
            )
    except httpx.HTTPError as exc:
        raise PushDeliveryError(f"Push gateway request failed: {exc}") from exc

    if response.status_code >= 400:
        raise PushDeliveryError(
            f"Push gateway error: {response.status_code} {response.text}"
        )

    return True
