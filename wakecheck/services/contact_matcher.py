"""Contact matching by phone fingerprint.

The caller uploads SHA-256 fingerprints of the numbers in their address
book; the server answers with the accounts registered under any of them.
Lookups run as equality-set queries of at most ``batch_size`` hashes
each, so the input is split into ``ceil(n / batch_size)`` chunks.
"""

import re
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wakecheck.config import settings
from wakecheck.logging_config import get_logger
from wakecheck.models.user import User

logger = get_logger(__name__)

FINGERPRINT_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class ContactMatchError(Exception):
    """A batch lookup failed; the whole match must be retried."""


@dataclass(frozen=True)
class ContactMatch:
    """A registered account found in the caller's contacts."""

    user_id: uuid.UUID
    display_name: str
    profile_image_url: str | None
    phone_number_hash: str


BatchLookup = Callable[[Sequence[str]], Awaitable[list[ContactMatch]]]


def chunk_fingerprints(fingerprints: Iterable[str], batch_size: int) -> list[list[str]]:
    """Split de-duplicated fingerprints into disjoint batches."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    unique = list(dict.fromkeys(fingerprints))
    return [unique[i : i + batch_size] for i in range(0, len(unique), batch_size)]


def _lookup_for(db: AsyncSession) -> BatchLookup:
    async def lookup(batch: Sequence[str]) -> list[ContactMatch]:
        result = await db.execute(
            select(
                User.id,
                User.display_name,
                User.profile_image_url,
                User.phone_number_hash,
            ).where(
                User.phone_number_hash.in_(list(batch)),
                User.is_active.is_(True),
            )
        )
        return [
            ContactMatch(
                user_id=row.id,
                display_name=row.display_name,
                profile_image_url=row.profile_image_url,
                phone_number_hash=row.phone_number_hash,
            )
            for row in result.all()
        ]

    return lookup


async def match_contacts(
    db: AsyncSession,
    fingerprints: Iterable[str],
    exclude_user_id: uuid.UUID,
    *,
    batch_size: int | None = None,
    lookup: BatchLookup | None = None,
) -> list[ContactMatch]:
    """Find registered users among the caller's contact fingerprints.

    Args:
        db: Database session.
        fingerprints: Lowercase hex SHA-256 fingerprints.
        exclude_user_id: The caller; never returned even if self-matched.
        batch_size: Hashes per lookup; defaults to
            ``settings.contact_match_batch_size``.
        lookup: Batch lookup coroutine, defaults to a query on ``users``.

    Returns:
        Matched accounts, each identity at most once.

    Raises:
        ContactMatchError: If any batch lookup fails. No partial result
            is returned.
    """
    batches = chunk_fingerprints(
        fingerprints, batch_size or settings.contact_match_batch_size
    )
    lookup = lookup or _lookup_for(db)

    matches: dict[uuid.UUID, ContactMatch] = {}
    for index, batch in enumerate(batches):
        try:
            found = await lookup(batch)
        except Exception as e:
            logger.error(
                "Contact match batch failed",
                batch_index=index,
                batch_count=len(batches),
                error=str(e),
            )
            raise ContactMatchError("Contact lookup failed, retry the match") from e

        for match in found:
            if match.user_id == exclude_user_id:
                continue
            matches.setdefault(match.user_id, match)

    logger.info(
        "Matched contacts",
        user_id=str(exclude_user_id),
        batch_count=len(batches),
        match_count=len(matches),
    )

    return list(matches.values())
