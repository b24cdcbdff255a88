"""Friend request model.

Directed request from one user to another. PENDING moves exactly once
to one of the terminal statuses.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wakecheck.models.base import Base, TimestampMixin, UTCDateTime


class FriendRequestStatus(str, enum.Enum):
    """Lifecycle status of a friend request."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class FriendRequest(Base, TimestampMixin):
    """A request from ``from_user_id`` to befriend ``to_user_id``."""

    __tablename__ = "friend_requests"
    __table_args__ = (
        Index("ix_friend_requests_to_status", "to_user_id", "status"),
        Index("ix_friend_requests_from_status", "from_user_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    from_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    to_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Sender profile snapshot shown in the recipient's inbox
    from_display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    from_profile_image_url: Mapped[str | None] = mapped_column(
        String(2048),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=FriendRequestStatus.PENDING.value,
    )

    responded_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        default=None,
    )

    sender = relationship("User", foreign_keys=[from_user_id])
    recipient = relationship("User", foreign_keys=[to_user_id])

    def __repr__(self) -> str:
        return (
            f"<FriendRequest(id={self.id}, {self.from_user_id} -> "
            f"{self.to_user_id}, status={self.status})>"
        )
