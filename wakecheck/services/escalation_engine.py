"""Escalation sweep.

Each tick finds PENDING events whose deadline has passed and moves them
to ESCALATED, messaging the owner's friends. A tick runs in three phases:

1. Plan: per event, resolve the owner's name, each friend's push address
   and rate-limit headroom. A failure here drops only that event; it
   stays PENDING and is retried next tick.
2. Commit: compare-and-swap every planned event PENDING -> ESCALATED in
   one transaction. Events a user dismissed in the meantime fail the
   guard and are dropped with their notifications.
3. Fan out: send the notifications of the events this tick won.
   Delivery failures are logged and never undo the transition.
"""

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.config import settings
from wakecheck.logging_config import get_logger
from wakecheck.models.escalation_event import EscalationEvent, EscalationStatus
from wakecheck.models.user import User
from wakecheck.services.escalation_store import (
    count_recent_escalations_for_friend,
    list_due_events,
    transition_event,
)
from wakecheck.services.notification_dispatch import (
    PushSender,
    build_friend_alarm_message,
    dispatch_notifications,
    elapsed_minutes,
)
from wakecheck.services.push import PushMessage

logger = get_logger(__name__)


@dataclass(frozen=True)
class DueEscalation:
    """Detached snapshot of a due event.

    Taken before planning so a rollback after one event's failure does
    not expire the ORM state of the others.
    """

    event_id: uuid.UUID
    owner_id: uuid.UUID
    trigger_time: datetime
    friend_ids: tuple[uuid.UUID, ...]
    message: str | None = None

    @classmethod
    def from_event(cls, event: EscalationEvent) -> "DueEscalation":
        return cls(
            event_id=event.id,
            owner_id=event.user_id,
            trigger_time=event.trigger_time,
            friend_ids=tuple(event.friend_ids),
            message=event.message,
        )


@dataclass
class EscalationPlan:
    """Notifications one due event will send if its transition wins."""

    event_id: uuid.UUID
    owner_id: uuid.UUID
    messages: list[tuple[uuid.UUID, PushMessage]] = field(default_factory=list)
    skipped_no_address: list[uuid.UUID] = field(default_factory=list)
    skipped_rate_limited: list[uuid.UUID] = field(default_factory=list)


@dataclass
class SweepResult:
    """Summary of one sweep tick."""

    due: int = 0
    escalated: int = 0
    lost_races: int = 0
    errors: int = 0
    notifications_attempted: int = 0
    notifications_delivered: int = 0
    skipped_no_address: int = 0
    skipped_rate_limited: int = 0
    escalated_event_ids: list[uuid.UUID] = field(default_factory=list)


async def _resolve_owner_name(db: AsyncSession, user_id: uuid.UUID) -> str | None:
    result = await db.execute(select(User.display_name).where(User.id == user_id))
    return result.scalar_one_or_none()


async def _resolve_push_tokens(
    db: AsyncSession,
    friend_ids: list[uuid.UUID],
) -> dict[uuid.UUID, str]:
    if not friend_ids:
        return {}
    result = await db.execute(
        select(User.id, User.push_token).where(
            User.id.in_(friend_ids),
            User.is_active.is_(True),
        )
    )
    return {row.id: row.push_token for row in result.all() if row.push_token}


async def plan_escalation(
    db: AsyncSession,
    event: DueEscalation,
    now: datetime,
    planned_per_friend: Counter | None = None,
) -> EscalationPlan:
    """Work out which friends of a due event get a notification.

    Friends without a push address are skipped. When rate limiting is
    enforced, friends already at the limit (counting notifications
    planned earlier in the same tick) are skipped as well.

    Args:
        db: Database session.
        event: Snapshot of a due PENDING event.
        now: Tick time.
        planned_per_friend: Notifications already planned this tick, by
            friend; updated in place.
    """
    planned_per_friend = planned_per_friend if planned_per_friend is not None else Counter()
    plan = EscalationPlan(event_id=event.event_id, owner_id=event.owner_id)

    owner_name = await _resolve_owner_name(db, event.owner_id)
    minutes = elapsed_minutes(event.trigger_time, now)
    friend_ids = list(event.friend_ids)
    tokens = await _resolve_push_tokens(db, friend_ids)
    window_start = now - timedelta(minutes=settings.escalation_rate_limit_window_minutes)

    for friend_id in friend_ids:
        token = tokens.get(friend_id)
        if token is None:
            logger.warning(
                "Friend has no push address, skipping",
                event_id=str(event.event_id),
                friend_id=str(friend_id),
            )
            plan.skipped_no_address.append(friend_id)
            continue

        if settings.escalation_enforce_rate_limit:
            recent = await count_recent_escalations_for_friend(db, friend_id, window_start)
            if recent + planned_per_friend[friend_id] >= settings.escalation_rate_limit_max:
                logger.info(
                    "Friend is rate limited, skipping notification",
                    event_id=str(event.event_id),
                    friend_id=str(friend_id),
                    recent_escalations=recent,
                )
                plan.skipped_rate_limited.append(friend_id)
                continue

        planned_per_friend[friend_id] += 1
        plan.messages.append(
            (
                friend_id,
                build_friend_alarm_message(
                    token=token,
                    owner_name=owner_name,
                    owner_id=event.owner_id,
                    event_id=event.event_id,
                    minutes=minutes,
                    custom_message=event.message,
                ),
            )
        )

    return plan


async def process_due_escalations(
    db: AsyncSession,
    now: datetime | None = None,
    sender: PushSender | None = None,
) -> SweepResult:
    """Run one sweep tick.

    Args:
        db: Database session used for the whole tick.
        now: Tick time; defaults to the current UTC time.
        sender: Push delivery coroutine (defaults to the gateway client).

    Returns:
        SweepResult with counts for this tick.
    """
    now = now or datetime.now(UTC)
    result = SweepResult()

    due_events = [DueEscalation.from_event(event) for event in await list_due_events(db, now)]
    result.due = len(due_events)
    if not due_events:
        logger.debug("No due escalations")
        return result

    logger.info("Processing due escalations", due_count=len(due_events))

    # Phase 1: plan
    plans: list[EscalationPlan] = []
    planned_per_friend: Counter = Counter()
    for event in due_events:
        try:
            plans.append(await plan_escalation(db, event, now, planned_per_friend))
        except Exception as e:
            logger.error(
                "Failed to plan escalation, will retry next tick",
                event_id=str(event.event_id),
                error=str(e),
            )
            result.errors += 1
            await db.rollback()

    # Phase 2: commit all transitions together
    won: list[EscalationPlan] = []
    try:
        for plan in plans:
            changed = await transition_event(
                db,
                plan.event_id,
                EscalationStatus.PENDING,
                EscalationStatus.ESCALATED,
                at=now,
                commit=False,
            )
            if changed:
                won.append(plan)
            else:
                result.lost_races += 1
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to commit escalation batch, events stay pending",
            event_count=len(plans),
            error=str(e),
        )
        result.errors += len(plans)
        return result

    # Phase 3: fan out
    planned_messages = [
        (plan.event_id, friend_id, message)
        for plan in won
        for friend_id, message in plan.messages
    ]
    outcomes = await dispatch_notifications(planned_messages, sender=sender)

    result.escalated = len(won)
    result.escalated_event_ids = [plan.event_id for plan in won]
    result.notifications_attempted = len(outcomes)
    result.notifications_delivered = sum(1 for outcome in outcomes if outcome.delivered)
    result.skipped_no_address = sum(len(plan.skipped_no_address) for plan in won)
    result.skipped_rate_limited = sum(len(plan.skipped_rate_limited) for plan in won)

    logger.info(
        "Escalation sweep completed",
        due=result.due,
        escalated=result.escalated,
        lost_races=result.lost_races,
        errors=result.errors,
        notifications_attempted=result.notifications_attempted,
        notifications_delivered=result.notifications_delivered,
    )

    return result
