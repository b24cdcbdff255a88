"""User profile schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserCreate(BaseModel):
    """Profile creation after the phone number was verified."""

    phone_number: str = Field(..., min_length=3, max_length=32)
    display_name: str = Field(..., min_length=1, max_length=100)
    profile_image_url: str | None = Field(default=None, max_length=2048)
    push_token: str | None = Field(default=None, max_length=4096)


class UserUpdate(BaseModel):
    """Partial profile update. Omitted fields are left unchanged."""

    display_name: str | None = Field(default=None, min_length=1, max_length=100)
    profile_image_url: str | None = Field(default=None, max_length=2048)
    push_token: str | None = Field(default=None, max_length=4096)


class UserResponse(BaseModel):
    """The caller's own profile."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    phone_number: str
    phone_number_hash: str
    display_name: str
    profile_image_url: str | None = None
    has_push_token: bool = False
    created_at: datetime


class UserCreateResponse(BaseModel):
    """Created profile plus an access token for the new session."""

    user: UserResponse
    access_token: str
    token_type: str = "bearer"
