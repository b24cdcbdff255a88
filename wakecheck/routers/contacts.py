"""Contact matching router."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.config import settings
from wakecheck.core.auth import CurrentUser
from wakecheck.database import get_db
from wakecheck.middleware.rate_limit import limiter
from wakecheck.schemas.contacts import (
    ContactMatchItem,
    ContactMatchRequest,
    ContactMatchResponse,
)
from wakecheck.services.contact_matcher import ContactMatchError, match_contacts

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


@router.post("/match", response_model=ContactMatchResponse)
@limiter.limit(settings.contact_match_rate_limit)
async def find_friends_from_contacts(
    request: Request,
    body: ContactMatchRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> ContactMatchResponse:
    """Find registered users among the caller's contact fingerprints.

    The caller is never part of the result. A failed lookup fails the
    whole request; clients retry it from the start.
    """
    try:
        matches = await match_contacts(db, body.hashes, current_user.id)
    except ContactMatchError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return ContactMatchResponse(
        matches=[
            ContactMatchItem(
                user_id=match.user_id,
                display_name=match.display_name,
                profile_image_url=match.profile_image_url,
                phone_number_hash=match.phone_number_hash,
            )
            for match in matches
        ],
        count=len(matches),
    )
