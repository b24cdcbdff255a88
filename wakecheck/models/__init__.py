# Database Models
from wakecheck.models.base import Base, TimestampMixin, UTCDateTime
from wakecheck.models.escalation_event import (
    EscalationEvent,
    EscalationRecipient,
    EscalationStatus,
)
from wakecheck.models.friend import Friend
from wakecheck.models.friend_request import FriendRequest, FriendRequestStatus
from wakecheck.models.user import User

__all__ = [
    "Base",
    "EscalationEvent",
    "EscalationRecipient",
    "EscalationStatus",
    "Friend",
    "FriendRequest",
    "FriendRequestStatus",
    "TimestampMixin",
    "UTCDateTime",
    "User",
]
