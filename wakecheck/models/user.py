"""User account model.

A user is identified by a verified phone number. Only the canonical
number and its fingerprint are stored; contact matching works on the
fingerprint alone.
"""

import uuid

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wakecheck.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: Unique user identifier (UUID)
        phone_number: Canonical (E.164-style) verified phone number
        phone_number_hash: SHA-256 hex fingerprint of phone_number
        display_name: Name shown to friends
        profile_image_url: Optional avatar URL
        push_token: Push notification address; None until the device registers
        is_active: Whether the account is active
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    phone_number: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
    )
    phone_number_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    profile_image_url: Mapped[str | None] = mapped_column(
        String(2048),
        nullable=True,
    )
    push_token: Mapped[str | None] = mapped_column(
        String(4096),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        default=True,
    )

    # Relationships
    escalation_events = relationship(
        "EscalationEvent",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    friends = relationship(
        "Friend",
        foreign_keys="Friend.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def has_push_token(self) -> bool:
        return bool(self.push_token)

    def __repr__(self) -> str:
        return f"<User {self.id} ({self.display_name})>"
