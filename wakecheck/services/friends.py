"""Friend requests and friend edges.

A request moves ``pending -> accepted | declined | cancelled`` exactly
once, guarded by a conditional UPDATE. Accepting creates both friend
rows, sharing one ``edge_id``, in the same transaction as the status
change.
"""

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.logging_config import get_logger
from wakecheck.models.friend import Friend
from wakecheck.models.friend_request import FriendRequest, FriendRequestStatus
from wakecheck.models.user import User
from wakecheck.services.notification_dispatch import PushSender, notify_user

logger = get_logger(__name__)

FRIEND_REQUEST_TYPE = "friend_request"
FRIEND_ACCEPTED_TYPE = "friend_accepted"


class FriendRequestError(Exception):
    """A friend request rule was violated."""


class FriendRequestNotFoundError(FriendRequestError):
    """No such request addressed to (or sent by) the caller."""


async def _get_active_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(
        select(User).where(User.id == user_id, User.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def are_friends(
    db: AsyncSession,
    user_id: uuid.UUID,
    other_user_id: uuid.UUID,
) -> bool:
    result = await db.execute(
        select(Friend.id).where(
            Friend.user_id == user_id,
            Friend.friend_user_id == other_user_id,
        )
    )
    return result.first() is not None


async def filter_non_friends(
    db: AsyncSession,
    user_id: uuid.UUID,
    candidate_ids: Iterable[uuid.UUID],
) -> list[uuid.UUID]:
    """Return the candidates that are not friends of ``user_id``."""
    candidates = list(dict.fromkeys(candidate_ids))
    if not candidates:
        return []
    result = await db.execute(
        select(Friend.friend_user_id).where(
            Friend.user_id == user_id,
            Friend.friend_user_id.in_(candidates),
        )
    )
    known = set(result.scalars().all())
    return [candidate for candidate in candidates if candidate not in known]


async def send_friend_request(
    db: AsyncSession,
    sender: User,
    to_user_id: uuid.UUID,
    *,
    push_sender: PushSender | None = None,
) -> FriendRequest:
    """Send a friend request from ``sender`` to ``to_user_id``.

    Raises:
        ValueError: If the sender addresses themselves.
        FriendRequestNotFoundError: If the recipient does not exist.
        FriendRequestError: If the two are already friends or a request
            is pending between them in either direction.
    """
    if to_user_id == sender.id:
        raise ValueError("Cannot send a friend request to yourself")

    recipient = await _get_active_user(db, to_user_id)
    if recipient is None:
        raise FriendRequestNotFoundError(f"User {to_user_id} not found")

    if await are_friends(db, sender.id, to_user_id):
        raise FriendRequestError("Already friends")

    result = await db.execute(
        select(FriendRequest.id).where(
            FriendRequest.status == FriendRequestStatus.PENDING.value,
            or_(
                and_(
                    FriendRequest.from_user_id == sender.id,
                    FriendRequest.to_user_id == to_user_id,
                ),
                and_(
                    FriendRequest.from_user_id == to_user_id,
                    FriendRequest.to_user_id == sender.id,
                ),
            ),
        )
    )
    if result.first() is not None:
        raise FriendRequestError("A friend request is already pending")

    request = FriendRequest(
        from_user_id=sender.id,
        to_user_id=to_user_id,
        from_display_name=sender.display_name,
        from_profile_image_url=sender.profile_image_url,
        status=FriendRequestStatus.PENDING.value,
    )
    db.add(request)
    await db.commit()
    await db.refresh(request)

    logger.info(
        "Friend request sent",
        request_id=str(request.id),
        from_user_id=str(sender.id),
        to_user_id=str(to_user_id),
    )

    await notify_user(
        recipient.push_token,
        "New Friend Request",
        f"{sender.display_name} wants to be your friend",
        {"type": FRIEND_REQUEST_TYPE, "request_id": str(request.id)},
        sender=push_sender,
    )

    return request


async def list_incoming_requests(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> list[FriendRequest]:
    """Pending requests addressed to the user, newest first."""
    result = await db.execute(
        select(FriendRequest)
        .where(
            FriendRequest.to_user_id == user_id,
            FriendRequest.status == FriendRequestStatus.PENDING.value,
        )
        .order_by(FriendRequest.created_at.desc())
    )
    return list(result.scalars().all())


async def list_outgoing_requests(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> list[FriendRequest]:
    """Pending requests sent by the user, newest first."""
    result = await db.execute(
        select(FriendRequest)
        .where(
            FriendRequest.from_user_id == user_id,
            FriendRequest.status == FriendRequestStatus.PENDING.value,
        )
        .order_by(FriendRequest.created_at.desc())
    )
    return list(result.scalars().all())


async def _get_request(
    db: AsyncSession,
    request_id: uuid.UUID,
) -> FriendRequest | None:
    result = await db.execute(
        select(FriendRequest)
        .where(FriendRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _respond(
    db: AsyncSession,
    request_id: uuid.UUID,
    target: FriendRequestStatus,
    *,
    commit: bool = True,
) -> bool:
    result = await db.execute(
        update(FriendRequest)
        .where(
            FriendRequest.id == request_id,
            FriendRequest.status == FriendRequestStatus.PENDING.value,
        )
        .values(status=target.value, responded_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    if commit:
        await db.commit()
    return result.rowcount == 1


async def accept_friend_request(
    db: AsyncSession,
    user: User,
    request_id: uuid.UUID,
    *,
    push_sender: PushSender | None = None,
) -> tuple[Friend, Friend]:
    """Accept a request addressed to ``user``.

    Returns:
        The (user's edge, sender's edge) pair; both carry the same edge_id.

    Raises:
        FriendRequestNotFoundError: If the request is missing or not
            addressed to ``user``.
        FriendRequestError: If the request is no longer pending or the
            sender's account is gone.
    """
    request = await _get_request(db, request_id)
    if request is None or request.to_user_id != user.id:
        raise FriendRequestNotFoundError(f"Friend request {request_id} not found")

    if request.status != FriendRequestStatus.PENDING.value:
        raise FriendRequestError(f"Friend request is already {request.status}")

    requester = await _get_active_user(db, request.from_user_id)
    if requester is None:
        raise FriendRequestError("The requesting user no longer exists")

    if not await _respond(db, request_id, FriendRequestStatus.ACCEPTED, commit=False):
        await db.rollback()
        raise FriendRequestError("Friend request is no longer pending")

    edge_id = uuid.uuid4()
    own_edge = Friend(
        edge_id=edge_id,
        user_id=user.id,
        friend_user_id=requester.id,
        display_name=requester.display_name,
        profile_image_url=requester.profile_image_url,
    )
    their_edge = Friend(
        edge_id=edge_id,
        user_id=requester.id,
        friend_user_id=user.id,
        display_name=user.display_name,
        profile_image_url=user.profile_image_url,
    )
    db.add_all([own_edge, their_edge])

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise FriendRequestError("Already friends") from exc

    logger.info(
        "Friend request accepted",
        request_id=str(request_id),
        edge_id=str(edge_id),
        user_id=str(user.id),
        friend_user_id=str(requester.id),
    )

    await notify_user(
        requester.push_token,
        "Friend Request Accepted",
        f"{user.display_name} accepted your friend request",
        {"type": FRIEND_ACCEPTED_TYPE, "user_id": str(user.id)},
        sender=push_sender,
    )

    return own_edge, their_edge


async def decline_friend_request(
    db: AsyncSession,
    user_id: uuid.UUID,
    request_id: uuid.UUID,
) -> FriendRequest:
    """Decline a request addressed to ``user_id``."""
    request = await _get_request(db, request_id)
    if request is None or request.to_user_id != user_id:
        raise FriendRequestNotFoundError(f"Friend request {request_id} not found")

    if request.status != FriendRequestStatus.PENDING.value:
        raise FriendRequestError(f"Friend request is already {request.status}")
    if not await _respond(db, request_id, FriendRequestStatus.DECLINED):
        raise FriendRequestError("Friend request is no longer pending")

    logger.info("Friend request declined", request_id=str(request_id))
    return await _get_request(db, request_id)


async def cancel_friend_request(
    db: AsyncSession,
    user_id: uuid.UUID,
    request_id: uuid.UUID,
) -> FriendRequest:
    """Cancel a request sent by ``user_id``."""
    request = await _get_request(db, request_id)
    if request is None or request.from_user_id != user_id:
        raise FriendRequestNotFoundError(f"Friend request {request_id} not found")

    if request.status != FriendRequestStatus.PENDING.value:
        raise FriendRequestError(f"Friend request is already {request.status}")
    if not await _respond(db, request_id, FriendRequestStatus.CANCELLED):
        raise FriendRequestError("Friend request is no longer pending")

    logger.info("Friend request cancelled", request_id=str(request_id))
    return await _get_request(db, request_id)


async def list_friends(db: AsyncSession, user_id: uuid.UUID) -> list[Friend]:
    """The user's friend edges ordered by cached display name."""
    result = await db.execute(
        select(Friend)
        .where(Friend.user_id == user_id)
        .order_by(Friend.display_name)
    )
    return list(result.scalars().all())


async def remove_friend(
    db: AsyncSession,
    user_id: uuid.UUID,
    friend_user_id: uuid.UUID,
) -> bool:
    """Remove a friendship in both directions.

    Returns:
        True if a friendship existed.
    """
    result = await db.execute(
        delete(Friend).where(
            or_(
                and_(Friend.user_id == user_id, Friend.friend_user_id == friend_user_id),
                and_(Friend.user_id == friend_user_id, Friend.friend_user_id == user_id),
            )
        )
    )
    await db.commit()

    removed = result.rowcount > 0
    if removed:
        logger.info(
            "Friend removed",
            user_id=str(user_id),
            friend_user_id=str(friend_user_id),
        )
    return removed
