"""Escalation event store.

Durable lifecycle record for every escalation. All status changes go
through :func:`transition_event`, a single conditional UPDATE guarded by
the expected current status, so a user's dismissal and the sweep's
escalation can race freely: exactly one of them changes the row and the
other sees ``False``.

Indexed queries:
- by owner (history, stats)
- by status + escalation_time (sweep due-set)
- by friend + status + escalated_at (rate limiting)
"""

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.logging_config import get_logger
from wakecheck.models.escalation_event import (
    EscalationEvent,
    EscalationRecipient,
    EscalationStatus,
)

logger = get_logger(__name__)

# Terminal timestamp written alongside each terminal status
_TERMINAL_TIMESTAMP_FIELD = {
    EscalationStatus.DISMISSED: "dismissed_at",
    EscalationStatus.ESCALATED: "escalated_at",
}

# Optimistic retries when a concurrent snooze moved the deadline first
_EXTEND_MAX_ATTEMPTS = 3


class EscalationStoreError(Exception):
    """Base error for escalation store operations."""


class EscalationNotFoundError(EscalationStoreError):
    """No escalation event with the given id (or not owned by the caller)."""


class EscalationAlreadyExistsError(EscalationStoreError):
    """An escalation event with the given id already exists."""


class InvalidStateError(EscalationStoreError):
    """The event is not in a status that allows the requested change."""

    def __init__(self, event_id: uuid.UUID, status: str, operation: str):
        self.event_id = event_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} escalation {event_id} with status '{status}'"
        )


class InvalidDeadlineError(EscalationStoreError):
    """A deadline change would move escalation_time backwards."""


async def create_event(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    alarm_id: str,
    trigger_time: datetime,
    escalation_time: datetime,
    friend_ids: Sequence[uuid.UUID],
    message: str | None = None,
    event_id: uuid.UUID | None = None,
) -> EscalationEvent:
    """Persist a new PENDING escalation event.

    Args:
        db: Database session.
        user_id: Alarm owner.
        alarm_id: Client-side alarm identifier.
        trigger_time: When the alarm fired.
        escalation_time: Deadline after which friends are notified.
        friend_ids: Friends to notify, in order. Duplicates are dropped.
        message: Optional free-text message from the owner.
        event_id: Explicit id; a fresh uuid4 when omitted.

    Returns:
        The created event.

    Raises:
        ValueError: If escalation_time precedes trigger_time.
        EscalationAlreadyExistsError: If event_id collides.
    """
    if escalation_time < trigger_time:
        raise ValueError("escalation_time must not be earlier than trigger_time")

    ordered_friends = list(dict.fromkeys(friend_ids))
    event = EscalationEvent(
        id=event_id or uuid.uuid4(),
        user_id=user_id,
        alarm_id=alarm_id,
        trigger_time=trigger_time,
        escalation_time=escalation_time,
        message=message,
        status=EscalationStatus.PENDING.value,
        recipients=[
            EscalationRecipient(friend_id=friend_id, position=position)
            for position, friend_id in enumerate(ordered_friends)
        ],
    )
    db.add(event)

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise EscalationAlreadyExistsError(
            f"Escalation {event.id} already exists"
        ) from exc

    event = await get_event(db, event.id)

    logger.info(
        "Created escalation event",
        event_id=str(event.id),
        user_id=str(user_id),
        alarm_id=alarm_id,
        escalation_time=escalation_time.isoformat(),
        friend_count=len(ordered_friends),
    )

    return event


async def get_event(
    db: AsyncSession,
    event_id: uuid.UUID,
    *,
    user_id: uuid.UUID | None = None,
) -> EscalationEvent:
    """Load an event, optionally scoped to its owner.

    Raises:
        EscalationNotFoundError: If missing or owned by someone else.
    """
    query = select(EscalationEvent).where(EscalationEvent.id == event_id)
    if user_id is not None:
        query = query.where(EscalationEvent.user_id == user_id)

    result = await db.execute(query.execution_options(populate_existing=True))
    event = result.scalar_one_or_none()
    if event is None:
        raise EscalationNotFoundError(f"Escalation {event_id} not found")
    return event


async def transition_event(
    db: AsyncSession,
    event_id: uuid.UUID,
    expected: EscalationStatus,
    target: EscalationStatus,
    *,
    at: datetime | None = None,
    extra_fields: dict[str, Any] | None = None,
    commit: bool = True,
) -> bool:
    """Compare-and-swap the status of an event.

    The UPDATE only matches while the row still has ``expected`` status,
    so of two concurrent transitions out of PENDING exactly one succeeds.

    Args:
        db: Database session.
        event_id: Event to transition.
        expected: Status the row must currently have.
        target: New status.
        at: Terminal timestamp value (defaults to now, UTC).
        extra_fields: Additional column values to write.
        commit: Commit immediately. The sweep passes False to batch
            every transition of a tick into one commit.

    Returns:
        True if this call changed the row, False if the guard did not
        match (already transitioned, or no such event).
    """
    if expected.is_terminal:
        raise InvalidStateError(event_id, expected.value, f"transition to {target.value}")

    values: dict[str, Any] = {"status": target.value}
    timestamp_field = _TERMINAL_TIMESTAMP_FIELD.get(target)
    if timestamp_field is not None:
        values[timestamp_field] = at or datetime.now(UTC)
    if extra_fields:
        values.update(extra_fields)

    result = await db.execute(
        update(EscalationEvent)
        .where(
            and_(
                EscalationEvent.id == event_id,
                EscalationEvent.status == expected.value,
            )
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    changed = result.rowcount == 1

    if commit:
        await db.commit()

    if changed:
        logger.info(
            "Escalation transitioned",
            event_id=str(event_id),
            from_status=expected.value,
            to_status=target.value,
        )
    else:
        logger.debug(
            "Escalation transition was a no-op",
            event_id=str(event_id),
            from_status=expected.value,
            to_status=target.value,
        )

    return changed


async def extend_deadline(
    db: AsyncSession,
    event_id: uuid.UUID,
    new_escalation_time: datetime,
    *,
    expected_current: datetime | None = None,
) -> EscalationEvent:
    """Move a PENDING event's deadline to ``new_escalation_time``.

    The update is conditional on the event still being PENDING (and, when
    given, still having ``expected_current`` as its deadline), so it can
    never resurrect or alter a terminal event.

    Raises:
        EscalationNotFoundError: If the event does not exist.
        InvalidStateError: If the event is no longer PENDING.
        InvalidDeadlineError: If the new deadline is earlier than the
            current one, or the deadline moved concurrently.
    """
    conditions = [
        EscalationEvent.id == event_id,
        EscalationEvent.status == EscalationStatus.PENDING.value,
        EscalationEvent.escalation_time <= new_escalation_time,
    ]
    if expected_current is not None:
        conditions.append(EscalationEvent.escalation_time == expected_current)

    result = await db.execute(
        update(EscalationEvent)
        .where(and_(*conditions))
        .values(escalation_time=new_escalation_time)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    event = await get_event(db, event_id)

    if result.rowcount == 1:
        logger.info(
            "Escalation deadline extended",
            event_id=str(event_id),
            escalation_time=new_escalation_time.isoformat(),
        )
        return event

    if event.status != EscalationStatus.PENDING.value:
        raise InvalidStateError(event_id, event.status, "extend deadline of")
    if event.escalation_time > new_escalation_time:
        raise InvalidDeadlineError(
            f"Escalation deadline cannot move backwards "
            f"({event.escalation_time.isoformat()} > {new_escalation_time.isoformat()})"
        )
    raise InvalidDeadlineError("Escalation deadline changed concurrently")


async def _snooze_from(
    db: AsyncSession,
    event_id: uuid.UUID,
    additional_minutes: int,
    expected_current: datetime,
    *,
    user_id: uuid.UUID | None = None,
) -> EscalationEvent:
    if expected_current.tzinfo is None:
        expected_current = expected_current.replace(tzinfo=UTC)

    event = await get_event(db, event_id, user_id=user_id)
    if event.status != EscalationStatus.PENDING.value:
        raise InvalidStateError(event_id, event.status, "snooze")

    target = expected_current + timedelta(minutes=additional_minutes)
    if event.escalation_time == target:
        logger.info(
            "Snooze already applied",
            event_id=str(event_id),
            escalation_time=target.isoformat(),
        )
        return event

    return await extend_deadline(db, event_id, target, expected_current=expected_current)


async def snooze_event(
    db: AsyncSession,
    event_id: uuid.UUID,
    additional_minutes: int,
    *,
    user_id: uuid.UUID | None = None,
    expected_current: datetime | None = None,
) -> EscalationEvent:
    """Push the deadline forward by ``additional_minutes``.

    The extension is added to the current deadline, not to "now". A
    concurrent snooze is retried against the fresh deadline so both
    extensions apply.

    With ``expected_current`` the extension is anchored to the deadline
    the caller last saw: the new deadline is ``expected_current +
    additional_minutes``, and a repeat of a request that already landed
    returns the event unchanged instead of extending it twice.

    Raises:
        ValueError: If additional_minutes is not positive.
        EscalationNotFoundError: If missing or not owned by ``user_id``.
        InvalidStateError: If the event is no longer PENDING.
        InvalidDeadlineError: If ``expected_current`` is given and the
            deadline has moved to something else.
    """
    if additional_minutes <= 0:
        raise ValueError("additional_minutes must be positive")

    if expected_current is not None:
        return await _snooze_from(
            db, event_id, additional_minutes, expected_current, user_id=user_id
        )

    attempt = 1
    while True:
        event = await get_event(db, event_id, user_id=user_id)
        if event.status != EscalationStatus.PENDING.value:
            raise InvalidStateError(event_id, event.status, "snooze")

        current = event.escalation_time
        try:
            return await extend_deadline(
                db,
                event_id,
                current + timedelta(minutes=additional_minutes),
                expected_current=current,
            )
        except InvalidDeadlineError:
            if attempt >= _EXTEND_MAX_ATTEMPTS:
                raise
            logger.debug(
                "Concurrent deadline change, retrying snooze",
                event_id=str(event_id),
                attempt=attempt,
            )
            attempt += 1


async def list_due_events(
    db: AsyncSession,
    now: datetime,
) -> list[EscalationEvent]:
    """PENDING events whose deadline is at or before ``now``, oldest first.

    No lower bound on staleness: an event missed during an outage is
    still due when the store comes back.
    """
    result = await db.execute(
        select(EscalationEvent)
        .where(
            and_(
                EscalationEvent.status == EscalationStatus.PENDING.value,
                EscalationEvent.escalation_time <= now,
            )
        )
        .order_by(EscalationEvent.escalation_time)
    )
    return list(result.scalars().all())


async def list_events_for_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int | None = None,
) -> list[EscalationEvent]:
    """A user's events, newest trigger first."""
    query = (
        select(EscalationEvent)
        .where(EscalationEvent.user_id == user_id)
        .order_by(EscalationEvent.trigger_time.desc())
    )
    if limit is not None:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def count_recent_escalations_for_friend(
    db: AsyncSession,
    friend_id: uuid.UUID,
    since: datetime,
) -> int:
    """Count ESCALATED events naming ``friend_id`` with escalated_at >= since."""
    result = await db.execute(
        select(func.count())
        .select_from(EscalationEvent)
        .join(
            EscalationRecipient,
            EscalationRecipient.event_id == EscalationEvent.id,
        )
        .where(
            and_(
                EscalationRecipient.friend_id == friend_id,
                EscalationEvent.status == EscalationStatus.ESCALATED.value,
                EscalationEvent.escalated_at >= since,
            )
        )
    )
    return result.scalar_one()
