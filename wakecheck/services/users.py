"""User profile service.

Accounts are created after the upstream SMS/OTP step has verified the
phone number. The number is normalised and fingerprinted exactly once,
here.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.core.phone import fingerprint_phone_number, normalize_phone_number
from wakecheck.logging_config import get_logger
from wakecheck.models.user import User

logger = get_logger(__name__)

# Fields a user may change on their own profile
_UPDATABLE_FIELDS = ("display_name", "profile_image_url", "push_token")


class UserAlreadyExistsError(Exception):
    """An account already exists for this phone number."""


async def create_user(
    db: AsyncSession,
    *,
    phone_number: str,
    display_name: str,
    profile_image_url: str | None = None,
    push_token: str | None = None,
) -> User:
    """Create an account for a verified phone number.

    Raises:
        ValueError: If the phone number has no digits.
        UserAlreadyExistsError: If the canonical number is taken.
    """
    canonical = normalize_phone_number(phone_number)
    if not canonical:
        raise ValueError("Phone number must contain digits")

    fingerprint = fingerprint_phone_number(canonical)

    existing = await db.execute(
        select(User.id).where(User.phone_number_hash == fingerprint)
    )
    if existing.first() is not None:
        raise UserAlreadyExistsError("An account with this phone number already exists")

    user = User(
        phone_number=canonical,
        phone_number_hash=fingerprint,
        display_name=display_name.strip(),
        profile_image_url=profile_image_url,
        push_token=push_token,
    )
    db.add(user)

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise UserAlreadyExistsError(
            "An account with this phone number already exists"
        ) from exc

    await db.refresh(user)
    logger.info("User created", user_id=str(user.id))
    return user


async def update_profile(db: AsyncSession, user: User, **changes: str | None) -> User:
    """Apply profile changes.

    Only display_name, profile_image_url and push_token may change; the
    phone number and its fingerprint are fixed at creation. Friends'
    cached copies of the profile are not refreshed here.
    """
    unknown = set(changes) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    if "display_name" in changes:
        name = (changes["display_name"] or "").strip()
        if not name:
            raise ValueError("display_name must not be empty")
        changes["display_name"] = name

    for field, value in changes.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)

    logger.info(
        "User profile updated",
        user_id=str(user.id),
        fields=sorted(changes),
    )
    return user
