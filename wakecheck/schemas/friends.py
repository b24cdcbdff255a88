"""Friend and friend request schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class FriendRequestCreate(BaseModel):
    to_user_id: uuid.UUID


class FriendRequestResponse(BaseModel):
    """A friend request as seen by either side."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    from_user_id: uuid.UUID
    to_user_id: uuid.UUID
    from_display_name: str
    from_profile_image_url: str | None = None
    status: str
    created_at: datetime
    responded_at: datetime | None = None


class FriendRequestListResponse(BaseModel):
    requests: list[FriendRequestResponse]
    count: int


class FriendResponse(BaseModel):
    """One friend edge, owned by the caller."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    edge_id: uuid.UUID
    friend_user_id: uuid.UUID
    display_name: str
    profile_image_url: str | None = None
    created_at: datetime


class FriendListResponse(BaseModel):
    friends: list[FriendResponse]
    count: int
