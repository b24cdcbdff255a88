"""Friend notification decisions.

Decides who gets messaged and with what, and enforces the per-friend
rate limit. Actual delivery is delegated to :mod:`wakecheck.services.push`.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.config import settings
from wakecheck.logging_config import get_logger
from wakecheck.services.escalation_store import count_recent_escalations_for_friend
from wakecheck.services.push import PushDeliveryError, PushMessage, send_push

logger = get_logger(__name__)

FRIEND_ALARM_TYPE = "friend_alarm"
FALLBACK_OWNER_NAME = "Someone"

PushSender = Callable[[PushMessage], Awaitable[bool]]


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one delivery attempt."""

    event_id: uuid.UUID
    friend_id: uuid.UUID
    delivered: bool
    error: str | None = None


async def can_notify_friend(
    db: AsyncSession,
    friend_id: uuid.UUID,
    now: datetime | None = None,
) -> bool:
    """Whether ``friend_id`` is below the escalation rate limit.

    Counts ESCALATED events naming the friend within the trailing window
    (default: 3 per 60 minutes). Events older than the window do not count.
    """
    now = now or datetime.now(UTC)
    since = now - timedelta(minutes=settings.escalation_rate_limit_window_minutes)
    recent = await count_recent_escalations_for_friend(db, friend_id, since)
    return recent < settings.escalation_rate_limit_max


def elapsed_minutes(trigger_time: datetime, now: datetime) -> int:
    """Whole minutes the alarm has been ringing, rounded to nearest."""
    return max(0, round((now - trigger_time).total_seconds() / 60))


def build_friend_alarm_message(
    *,
    token: str,
    owner_name: str | None,
    owner_id: uuid.UUID,
    event_id: uuid.UUID,
    minutes: int,
    custom_message: str | None = None,
) -> PushMessage:
    """Build the notification sent to one friend of a sleeping user."""
    name = (owner_name or "").strip() or FALLBACK_OWNER_NAME
    unit = "minute" if minutes == 1 else "minutes"
    body = f"Their alarm has been going off for {minutes} {unit}."
    if custom_message and custom_message.strip():
        body = f"{body} \"{custom_message.strip()}\""

    return PushMessage(
        token=token,
        title=f"{name} needs help waking up!",
        body=body,
        data={
            "type": FRIEND_ALARM_TYPE,
            "user_id": str(owner_id),
            "event_id": str(event_id),
        },
        time_sensitive=True,
    )


async def _deliver(
    sender: PushSender,
    event_id: uuid.UUID,
    friend_id: uuid.UUID,
    message: PushMessage,
) -> DispatchOutcome:
    try:
        delivered = await asyncio.wait_for(
            sender(message), timeout=settings.push_timeout_seconds
        )
    except (PushDeliveryError, TimeoutError) as exc:
        logger.warning(
            "Friend notification failed",
            event_id=str(event_id),
            friend_id=str(friend_id),
            error=str(exc) or type(exc).__name__,
        )
        return DispatchOutcome(event_id, friend_id, False, str(exc) or "timeout")

    if delivered:
        logger.info(
            "Friend notification sent",
            event_id=str(event_id),
            friend_id=str(friend_id),
        )
    return DispatchOutcome(event_id, friend_id, bool(delivered))


async def dispatch_notifications(
    planned: list[tuple[uuid.UUID, uuid.UUID, PushMessage]],
    sender: PushSender | None = None,
) -> list[DispatchOutcome]:
    """Deliver planned notifications concurrently.

    Args:
        planned: (event_id, friend_id, message) triples.
        sender: Delivery coroutine; defaults to :func:`send_push`.

    Returns:
        One outcome per planned message. A failing delivery never
        prevents the others.
    """
    if not planned:
        return []

    sender = sender or send_push
    results = await asyncio.gather(
        *(_deliver(sender, event_id, friend_id, msg) for event_id, friend_id, msg in planned),
        return_exceptions=True,
    )

    outcomes: list[DispatchOutcome] = []
    for (event_id, friend_id, _msg), result in zip(planned, results):
        if isinstance(result, BaseException):
            logger.error(
                "Unexpected error delivering friend notification",
                event_id=str(event_id),
                friend_id=str(friend_id),
                error=repr(result),
            )
            outcomes.append(DispatchOutcome(event_id, friend_id, False, repr(result)))
        else:
            outcomes.append(result)
    return outcomes


async def notify_user(
    token: str | None,
    title: str,
    body: str,
    data: dict[str, str],
    sender: PushSender | None = None,
) -> bool:
    """Best-effort single notification (friend request events).

    Returns False instead of raising when the user has no push address
    or delivery fails.
    """
    if not token:
        return False

    sender = sender or send_push
    try:
        return bool(
            await asyncio.wait_for(
                sender(PushMessage(token=token, title=title, body=body, data=data)),
                timeout=settings.push_timeout_seconds,
            )
        )
    except (PushDeliveryError, TimeoutError) as exc:
        logger.warning(
            "Notification delivery failed",
            notification_type=data.get("type"),
            error=str(exc) or type(exc).__name__,
        )
        return False
