"""User profile router.

Profile creation is the handoff from the SMS/OTP verification step:
the caller has already proven ownership of the phone number.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.core.auth import CurrentUser
from wakecheck.core.security import create_access_token
from wakecheck.database import get_db
from wakecheck.schemas.user import (
    UserCreate,
    UserCreateResponse,
    UserResponse,
    UserUpdate,
)
from wakecheck.services.users import UserAlreadyExistsError, create_user, update_profile

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post(
    "",
    response_model=UserCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_user_profile(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserCreateResponse:
    """Create the profile for a verified phone number."""
    try:
        user = await create_user(
            db,
            phone_number=body.phone_number,
            display_name=body.display_name,
            profile_image_url=body.profile_image_url,
            push_token=body.push_token,
        )
    except UserAlreadyExistsError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return UserCreateResponse(
        user=UserResponse.model_validate(user),
        access_token=create_access_token(user.id),
    )


@router.get("/me", response_model=UserResponse)
async def get_my_profile(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: UserUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Update display name, photo URL or push address."""
    try:
        user = await update_profile(db, current_user, **body.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return UserResponse.model_validate(user)
