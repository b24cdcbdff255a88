"""Escalation lifecycle operations used by the API.

Thin layer over the event store that applies the caller-facing rules:
only friends can be escalation recipients, only the owner can dismiss,
snooze or read an event, and dismissing a terminal event is a no-op.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.config import settings
from wakecheck.logging_config import get_logger
from wakecheck.models.escalation_event import EscalationEvent, EscalationStatus
from wakecheck.services.escalation_store import (
    EscalationAlreadyExistsError,
    EscalationNotFoundError,
    create_event,
    get_event,
    list_events_for_user,
    snooze_event,
    transition_event,
)
from wakecheck.services.friends import filter_non_friends

logger = get_logger(__name__)


class HistoryAccessDeniedError(Exception):
    """A user asked for someone else's escalation history."""


@dataclass(frozen=True)
class DismissOutcome:
    event: EscalationEvent
    changed: bool


@dataclass(frozen=True)
class WakeStats:
    """Aggregate wake-up statistics for one user."""

    total_alarms: int
    dismissed_on_time: int
    escalated: int
    current_streak: int
    best_streak: int

    @property
    def success_rate(self) -> float:
        if self.total_alarms == 0:
            return 0.0
        return round(self.dismissed_on_time / self.total_alarms * 100, 1)


async def _find_replayed_event(
    db: AsyncSession,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    alarm_id: str,
) -> EscalationEvent | None:
    """The existing event a repeated trigger refers to, if any.

    Raises:
        EscalationAlreadyExistsError: If the id is taken by another
            owner or alarm.
    """
    try:
        event = await get_event(db, event_id)
    except EscalationNotFoundError:
        return None

    if event.user_id != user_id or event.alarm_id != alarm_id:
        raise EscalationAlreadyExistsError(f"Escalation {event_id} already exists")

    logger.info(
        "Escalation trigger repeated, returning existing event",
        event_id=str(event_id),
        user_id=str(user_id),
    )
    return event


async def trigger_escalation(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    alarm_id: str,
    trigger_time: datetime,
    delay_minutes: int,
    friend_ids: Sequence[uuid.UUID],
    message: str | None = None,
    event_id: uuid.UUID | None = None,
) -> EscalationEvent:
    """Open a PENDING escalation for an alarm that just fired.

    A client-chosen ``event_id`` makes the call safe to repeat: when an
    event with that id already exists for the same owner and alarm, it
    is returned as is rather than opening a second one.

    Raises:
        ValueError: If no friends are given, any of them is not a friend
            of ``user_id``, or the delay is negative.
        EscalationAlreadyExistsError: If ``event_id`` belongs to a
            different owner or alarm.
    """
    if event_id is not None:
        existing = await _find_replayed_event(db, event_id, user_id, alarm_id)
        if existing is not None:
            return existing

    if delay_minutes < 0:
        raise ValueError("delay_minutes must not be negative")

    ordered_friends = list(dict.fromkeys(friend_ids))
    if not ordered_friends:
        raise ValueError("At least one friend is required")

    strangers = await filter_non_friends(db, user_id, ordered_friends)
    if strangers:
        logger.warning(
            "Escalation named users who are not friends",
            user_id=str(user_id),
            stranger_count=len(strangers),
        )
        raise ValueError(
            "Not friends with: " + ", ".join(str(stranger) for stranger in strangers)
        )

    if trigger_time.tzinfo is None:
        trigger_time = trigger_time.replace(tzinfo=UTC)

    try:
        return await create_event(
            db,
            user_id=user_id,
            alarm_id=alarm_id,
            trigger_time=trigger_time,
            escalation_time=trigger_time + timedelta(minutes=delay_minutes),
            friend_ids=ordered_friends,
            message=message,
            event_id=event_id,
        )
    except EscalationAlreadyExistsError:
        if event_id is None:
            raise
        existing = await _find_replayed_event(db, event_id, user_id, alarm_id)
        if existing is None:
            raise
        return existing


async def dismiss_escalation(
    db: AsyncSession,
    user_id: uuid.UUID,
    event_id: uuid.UUID,
) -> DismissOutcome:
    """Dismiss the user's event.

    Losing the race against the sweep (or dismissing twice) is not an
    error: the outcome reports ``changed=False`` with the final status.

    Raises:
        EscalationNotFoundError: If the event is missing or not owned.
    """
    event = await get_event(db, event_id, user_id=user_id)

    changed = False
    if event.status == EscalationStatus.PENDING.value:
        changed = await transition_event(
            db,
            event_id,
            EscalationStatus.PENDING,
            EscalationStatus.DISMISSED,
        )
        event = await get_event(db, event_id)

    if not changed:
        logger.info(
            "Dismiss was a no-op",
            event_id=str(event_id),
            status=event.status,
        )

    return DismissOutcome(event=event, changed=changed)


async def snooze_escalation(
    db: AsyncSession,
    user_id: uuid.UUID,
    event_id: uuid.UUID,
    additional_minutes: int,
    expected_escalation_time: datetime | None = None,
) -> EscalationEvent:
    """Extend the user's event deadline by ``additional_minutes``.

    ``expected_escalation_time`` anchors the extension to the deadline
    the client last saw, so a retried request is applied once.
    """
    event = await snooze_event(
        db,
        event_id,
        additional_minutes,
        user_id=user_id,
        expected_current=expected_escalation_time,
    )
    logger.info(
        "Escalation snoozed",
        event_id=str(event_id),
        additional_minutes=additional_minutes,
        escalation_time=event.escalation_time.isoformat(),
    )
    return event


async def get_escalation_history(
    db: AsyncSession,
    caller_id: uuid.UUID,
    user_id: uuid.UUID,
    limit: int | None = None,
) -> list[EscalationEvent]:
    """Past events for ``user_id``, newest trigger first.

    Raises:
        HistoryAccessDeniedError: If ``caller_id`` is not ``user_id``.
    """
    if caller_id != user_id:
        raise HistoryAccessDeniedError("Can only view your own escalation history")

    limit = limit or settings.history_default_limit
    limit = max(1, min(limit, settings.history_max_limit))
    return await list_events_for_user(db, user_id, limit=limit)


def compute_streaks(days: set[date], today: date) -> tuple[int, int]:
    """Current and best run of consecutive days.

    The current streak counts back from ``today`` and is zero when
    ``today`` is not in ``days``.
    """
    current = 0
    cursor = today
    while cursor in days:
        current += 1
        cursor -= timedelta(days=1)

    best = 0
    run = 0
    previous: date | None = None
    for day in sorted(days):
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day

    return current, best


async def get_wake_stats(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> WakeStats:
    """Totals and dismissal streaks over all of a user's events.

    A streak day is a UTC calendar day on which at least one alarm was
    dismissed before escalating.
    """
    now = now or datetime.now(UTC)
    result = await db.execute(
        select(EscalationEvent.status, EscalationEvent.trigger_time).where(
            EscalationEvent.user_id == user_id
        )
    )
    rows = result.all()

    dismissed_days = {
        row.trigger_time.astimezone(UTC).date()
        for row in rows
        if row.status == EscalationStatus.DISMISSED.value
    }
    current, best = compute_streaks(dismissed_days, now.astimezone(UTC).date())

    return WakeStats(
        total_alarms=len(rows),
        dismissed_on_time=sum(
            1 for row in rows if row.status == EscalationStatus.DISMISSED.value
        ),
        escalated=sum(
            1 for row in rows if row.status == EscalationStatus.ESCALATED.value
        ),
        current_streak=current,
        best_streak=best,
    )
