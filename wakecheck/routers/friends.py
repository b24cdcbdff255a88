"""Friends and friend requests router."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.core.auth import CurrentUser
from wakecheck.database import get_db
from wakecheck.schemas.friends import (
    FriendListResponse,
    FriendRequestCreate,
    FriendRequestListResponse,
    FriendRequestResponse,
    FriendResponse,
)
from wakecheck.services.friends import (
    FriendRequestError,
    FriendRequestNotFoundError,
    accept_friend_request,
    cancel_friend_request,
    decline_friend_request,
    list_friends,
    list_incoming_requests,
    list_outgoing_requests,
    remove_friend,
    send_friend_request,
)

router = APIRouter(prefix="/api/friends", tags=["friends"])


def _request_error(exc: FriendRequestError) -> HTTPException:
    if isinstance(exc, FriendRequestNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        )
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=str(exc),
    )


@router.post(
    "/requests",
    response_model=FriendRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_friend_request(
    body: FriendRequestCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> FriendRequestResponse:
    """Send a friend request.

    Rejected when the users are already friends or a request is pending
    between them in either direction.
    """
    try:
        request = await send_friend_request(db, current_user, body.to_user_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except FriendRequestError as exc:
        raise _request_error(exc) from exc

    return FriendRequestResponse.model_validate(request)


@router.get("/requests", response_model=FriendRequestListResponse)
async def list_received_requests(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> FriendRequestListResponse:
    """Pending requests addressed to the caller."""
    requests = await list_incoming_requests(db, current_user.id)
    return FriendRequestListResponse(
        requests=[FriendRequestResponse.model_validate(r) for r in requests],
        count=len(requests),
    )


@router.get("/requests/sent", response_model=FriendRequestListResponse)
async def list_sent_requests(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> FriendRequestListResponse:
    """Pending requests the caller has sent."""
    requests = await list_outgoing_requests(db, current_user.id)
    return FriendRequestListResponse(
        requests=[FriendRequestResponse.model_validate(r) for r in requests],
        count=len(requests),
    )


@router.post("/requests/{request_id}/accept", response_model=FriendResponse)
async def accept_request(
    request_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> FriendResponse:
    """Accept a request addressed to the caller; returns the new friend."""
    try:
        own_edge, _ = await accept_friend_request(db, current_user, request_id)
    except FriendRequestError as exc:
        raise _request_error(exc) from exc

    return FriendResponse.model_validate(own_edge)


@router.post("/requests/{request_id}/decline", response_model=FriendRequestResponse)
async def decline_request(
    request_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> FriendRequestResponse:
    try:
        request = await decline_friend_request(db, current_user.id, request_id)
    except FriendRequestError as exc:
        raise _request_error(exc) from exc

    return FriendRequestResponse.model_validate(request)


@router.post("/requests/{request_id}/cancel", response_model=FriendRequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> FriendRequestResponse:
    try:
        request = await cancel_friend_request(db, current_user.id, request_id)
    except FriendRequestError as exc:
        raise _request_error(exc) from exc

    return FriendRequestResponse.model_validate(request)


@router.get("", response_model=FriendListResponse)
async def get_friends(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> FriendListResponse:
    """The caller's friends, ordered by name."""
    friends = await list_friends(db, current_user.id)
    return FriendListResponse(
        friends=[FriendResponse.model_validate(f) for f in friends],
        count=len(friends),
    )


@router.delete("/{friend_user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_friend(
    friend_user_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> None:
    """Remove a friendship in both directions."""
    if not await remove_friend(db, current_user.id, friend_user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Friend not found",
        )
