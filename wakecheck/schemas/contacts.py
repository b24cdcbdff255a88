"""Contact matching schemas."""

import uuid

from pydantic import BaseModel, Field, field_validator

from wakecheck.config import settings
from wakecheck.services.contact_matcher import FINGERPRINT_PATTERN


class ContactMatchRequest(BaseModel):
    """Fingerprints of the numbers in the caller's address book."""

    hashes: list[str] = Field(..., min_length=1)

    @field_validator("hashes")
    @classmethod
    def validate_hashes(cls, v: list[str]) -> list[str]:
        """Lowercase 64-character hex, bounded count."""
        if len(v) > settings.contact_match_max_hashes:
            raise ValueError(
                f"At most {settings.contact_match_max_hashes} hashes per request"
            )
        normalized = [item.strip().lower() for item in v]
        for item in normalized:
            if not FINGERPRINT_PATTERN.match(item):
                raise ValueError("Each hash must be a 64-character hex SHA-256 digest")
        return normalized


class ContactMatchItem(BaseModel):
    """A registered user found among the caller's contacts."""

    user_id: uuid.UUID
    display_name: str
    profile_image_url: str | None = None
    phone_number_hash: str


class ContactMatchResponse(BaseModel):
    matches: list[ContactMatchItem]
    count: int
