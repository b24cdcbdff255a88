"""Friend edge model.

A friendship is one logical relationship stored as two rows, one owned
by each side. Both rows share ``edge_id`` so either side can address
the relationship as a whole. Each side caches the other's display
metadata independently; the copies may drift until refreshed.
"""

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wakecheck.models.base import Base, TimestampMixin


class Friend(Base, TimestampMixin):
    """One direction of a symmetric friendship."""

    __tablename__ = "friends"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_user_id", name="uq_friend_pair"),
        UniqueConstraint("edge_id", "user_id", name="uq_friend_edge_side"),
        CheckConstraint("user_id != friend_user_id", name="ck_no_self_friend"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    edge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    friend_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Cached copy of the friend's profile, owned by user_id's side
    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="",
    )
    profile_image_url: Mapped[str | None] = mapped_column(
        String(2048),
        nullable=True,
    )

    user = relationship("User", foreign_keys=[user_id], back_populates="friends")

    def __repr__(self) -> str:
        return f"<Friend(edge={self.edge_id}, {self.user_id} -> {self.friend_user_id})>"
