"""Escalation event model.

One row per alarm-fire cycle with escalation enabled. The row is the
single source of truth for whether friends get woken up: the client
moves it to DISMISSED, the sweep moves it to ESCALATED, and whichever
compare-and-swap lands first wins.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wakecheck.models.base import Base, UTCDateTime, utcnow


class EscalationStatus(str, enum.Enum):
    """Lifecycle status of an escalation event."""

    PENDING = "pending"
    DISMISSED = "dismissed"
    ESCALATED = "escalated"
    EXPIRED = "expired"  # No transition produces this yet

    @property
    def is_terminal(self) -> bool:
        return self is not EscalationStatus.PENDING


class EscalationEvent(Base):
    """Escalation deadline for a single alarm firing.

    Invariants:
    - escalation_time >= trigger_time at creation and only moves forward.
    - Once status leaves PENDING only the terminal timestamp is written.
    """

    __tablename__ = "escalation_events"
    __table_args__ = (
        # Sweep scan: status == pending AND escalation_time <= now
        Index("ix_escalation_events_status_deadline", "status", "escalation_time"),
        Index("ix_escalation_events_user_trigger", "user_id", "trigger_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    alarm_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )

    trigger_time: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    escalation_time: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=EscalationStatus.PENDING.value,
    )

    dismissed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        default=None,
    )

    escalated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        default=None,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
    )

    # Relationships
    user = relationship("User", back_populates="escalation_events")
    recipients: Mapped[list["EscalationRecipient"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EscalationRecipient.position",
        lazy="selectin",
    )

    @property
    def friend_ids(self) -> list[uuid.UUID]:
        """Friend user ids in the order the alarm owner configured them."""
        return [recipient.friend_id for recipient in self.recipients]

    @property
    def status_enum(self) -> EscalationStatus:
        return EscalationStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<EscalationEvent(id={self.id}, user={self.user_id}, "
            f"status={self.status}, deadline={self.escalation_time.isoformat()})>"
        )


class EscalationRecipient(Base):
    """Friend membership of an escalation event.

    Kept as rows rather than an array column so the per-friend rate
    limit query (friend + status + escalated_at) is an indexed join.
    """

    __tablename__ = "escalation_recipients"
    __table_args__ = (
        Index("ix_escalation_recipients_friend", "friend_id", "event_id"),
    )

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("escalation_events.id", ondelete="CASCADE"),
        primary_key=True,
    )

    friend_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    event: Mapped[EscalationEvent] = relationship(back_populates="recipients")

    def __repr__(self) -> str:
        return f"<EscalationRecipient(event={self.event_id}, friend={self.friend_id})>"
