"""Escalation event schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EscalationCreate(BaseModel):
    """An alarm with escalation enabled just fired."""

    alarm_id: str = Field(..., min_length=1, max_length=128)
    trigger_time: datetime
    delay_minutes: int = Field(..., ge=0, le=120)
    friend_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=20)
    message: str | None = Field(default=None, max_length=280)
    # Client-chosen id; repeating a trigger with the same id is a no-op
    event_id: uuid.UUID | None = None

    @field_validator("friend_ids")
    @classmethod
    def dedupe_friend_ids(cls, v: list[uuid.UUID]) -> list[uuid.UUID]:
        """Drop repeated ids, keeping the first occurrence."""
        return list(dict.fromkeys(v))

    @field_validator("message")
    @classmethod
    def blank_message_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class EscalationCreateResponse(BaseModel):
    event_id: uuid.UUID
    escalation_time: datetime


class EscalationSnoozeRequest(BaseModel):
    additional_minutes: int = Field(..., ge=1, le=60)
    # Deadline the client is extending from; makes a retried snooze apply once
    expected_escalation_time: datetime | None = None


class EscalationSnoozeResponse(BaseModel):
    event_id: uuid.UUID
    escalation_time: datetime


class EscalationDismissResponse(BaseModel):
    """Dismissal result.

    ``changed`` is False when the event was already terminal, including
    when the sweep escalated it first.
    """

    success: bool
    status: str
    changed: bool


class EscalationEventResponse(BaseModel):
    """Single escalation event response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    alarm_id: str
    trigger_time: datetime
    escalation_time: datetime
    friend_ids: list[uuid.UUID]
    message: str | None = None
    status: str
    dismissed_at: datetime | None = None
    escalated_at: datetime | None = None
    created_at: datetime


class EscalationHistoryResponse(BaseModel):
    events: list[EscalationEventResponse]
    count: int


class WakeStatsResponse(BaseModel):
    """Aggregate wake-up statistics for the caller."""

    model_config = ConfigDict(from_attributes=True)

    total_alarms: int
    dismissed_on_time: int
    escalated: int
    current_streak: int
    best_streak: int
    success_rate: float


class CanNotifyResponse(BaseModel):
    friend_id: uuid.UUID
    can_notify: bool
