"""Space repository — membership and profile lookups used by the auth gate."""
import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Profile, Space, SpaceMembership

logger = logging.getLogger(__name__)


async def get_space(session: AsyncSession, space_id: UUID) -> Optional[Space]:
    result = await session.execute(select(Space).where(Space.id == space_id))
    return result.scalar_one_or_none()


async def get_membership(
    session: AsyncSession, space_id: UUID, user_id: UUID
) -> Optional[SpaceMembership]:
    """Return the user's membership in the space, or None."""
    result = await session.execute(
        select(SpaceMembership)
        .where(SpaceMembership.space_id == space_id)
        .where(SpaceMembership.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def filter_member_ids(
    session: AsyncSession, space_id: UUID, user_ids: Iterable[UUID]
) -> set[UUID]:
    """Return the subset of ``user_ids`` that are members of the space."""
    ids = list(user_ids)
    if not ids:
        return set()
    result = await session.execute(
        select(SpaceMembership.user_id)
        .where(SpaceMembership.space_id == space_id)
        .where(SpaceMembership.user_id.in_(ids))
    )
    return {row[0] for row in result.all()}


async def get_profiles(
    session: AsyncSession, user_ids: Iterable[UUID]
) -> dict[UUID, Profile]:
    """Return profiles keyed by id; unknown ids are simply absent."""
    ids = list(user_ids)
    if not ids:
        return {}
    result = await session.execute(select(Profile).where(Profile.id.in_(ids)))
    return {p.id: p for p in result.scalars().all()}
