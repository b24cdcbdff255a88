"""Escalation router.

Client lifecycle hooks (alarm fired, dismissed, snoozed) plus read-only
history, stats and the per-friend rate-limit check.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.core.auth import CurrentUser
from wakecheck.database import get_db
from wakecheck.logging_config import get_logger
from wakecheck.schemas.escalation import (
    CanNotifyResponse,
    EscalationCreate,
    EscalationCreateResponse,
    EscalationDismissResponse,
    EscalationEventResponse,
    EscalationHistoryResponse,
    EscalationSnoozeRequest,
    EscalationSnoozeResponse,
    WakeStatsResponse,
)
from wakecheck.services.escalation_store import (
    EscalationAlreadyExistsError,
    EscalationNotFoundError,
    InvalidDeadlineError,
    InvalidStateError,
    get_event,
)
from wakecheck.services.escalations import (
    HistoryAccessDeniedError,
    dismiss_escalation,
    get_escalation_history,
    get_wake_stats,
    snooze_escalation,
    trigger_escalation,
)
from wakecheck.services.friends import are_friends
from wakecheck.services.notification_dispatch import can_notify_friend

logger = get_logger(__name__)

router = APIRouter(prefix="/api/escalations", tags=["escalations"])


def _store_unavailable(exc: Exception, operation: str) -> HTTPException:
    logger.error(
        "Escalation store error",
        operation=operation,
        error=str(exc),
    )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Could not {operation} escalation, please retry",
    )


def _not_found(event_id: uuid.UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Escalation {event_id} not found",
    )


@router.post(
    "",
    response_model=EscalationCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def on_alarm_triggered(
    body: EscalationCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> EscalationCreateResponse:
    """Open an escalation for an alarm that just fired.

    Every friend id must belong to a current friend of the caller.
    """
    try:
        event = await trigger_escalation(
            db,
            current_user.id,
            alarm_id=body.alarm_id,
            trigger_time=body.trigger_time,
            delay_minutes=body.delay_minutes,
            friend_ids=body.friend_ids,
            message=body.message,
            event_id=body.event_id,
        )
    except EscalationAlreadyExistsError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        raise _store_unavailable(exc, "create") from exc

    return EscalationCreateResponse(
        event_id=event.id,
        escalation_time=event.escalation_time,
    )


@router.get("/history", response_model=EscalationHistoryResponse)
async def get_history(
    current_user: CurrentUser,
    user_id: uuid.UUID | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> EscalationHistoryResponse:
    """Past escalations, newest first. Only the caller's own history."""
    try:
        events = await get_escalation_history(
            db,
            current_user.id,
            user_id or current_user.id,
            limit,
        )
    except HistoryAccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc

    return EscalationHistoryResponse(
        events=[EscalationEventResponse.model_validate(event) for event in events],
        count=len(events),
    )


@router.get("/stats", response_model=WakeStatsResponse)
async def get_stats(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> WakeStatsResponse:
    """Wake-up totals and dismissal streaks for the caller."""
    stats = await get_wake_stats(db, current_user.id)
    return WakeStatsResponse.model_validate(stats)


@router.get("/friends/{friend_id}/can-notify", response_model=CanNotifyResponse)
async def check_can_notify_friend(
    friend_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> CanNotifyResponse:
    """Whether the friend is still below the escalation rate limit.

    Only the caller's own friends can be checked.
    """
    if not await are_friends(db, current_user.id, friend_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Friend {friend_id} not found",
        )

    return CanNotifyResponse(
        friend_id=friend_id,
        can_notify=await can_notify_friend(db, friend_id),
    )


@router.get("/{event_id}", response_model=EscalationEventResponse)
async def get_escalation(
    event_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> EscalationEventResponse:
    try:
        event = await get_event(db, event_id, user_id=current_user.id)
    except EscalationNotFoundError as exc:
        raise _not_found(event_id) from exc

    return EscalationEventResponse.model_validate(event)


@router.post("/{event_id}/dismiss", response_model=EscalationDismissResponse)
async def on_alarm_dismissed(
    event_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> EscalationDismissResponse:
    """Cancel a pending escalation.

    Idempotent: dismissing an event that is already terminal succeeds
    with ``changed=false`` and reports the final status.
    """
    try:
        outcome = await dismiss_escalation(db, current_user.id, event_id)
    except EscalationNotFoundError as exc:
        raise _not_found(event_id) from exc
    except SQLAlchemyError as exc:
        raise _store_unavailable(exc, "dismiss") from exc

    return EscalationDismissResponse(
        success=True,
        status=outcome.event.status,
        changed=outcome.changed,
    )


@router.post("/{event_id}/snooze", response_model=EscalationSnoozeResponse)
async def on_alarm_snoozed(
    event_id: uuid.UUID,
    body: EscalationSnoozeRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> EscalationSnoozeResponse:
    """Push the deadline back by ``additional_minutes``.

    The extension is added to the current deadline. When
    ``expected_escalation_time`` is sent, it is added to that deadline
    instead and a repeated request is acknowledged without extending
    again. Snoozing an event that already escalated or was dismissed
    is a conflict.
    """
    try:
        event = await snooze_escalation(
            db,
            current_user.id,
            event_id,
            body.additional_minutes,
            body.expected_escalation_time,
        )
    except EscalationNotFoundError as exc:
        raise _not_found(event_id) from exc
    except InvalidStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except InvalidDeadlineError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        raise _store_unavailable(exc, "snooze") from exc

    return EscalationSnoozeResponse(
        event_id=event.id,
        escalation_time=event.escalation_time,
    )
