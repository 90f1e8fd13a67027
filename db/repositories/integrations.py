"""Integration connection repository — calendar OAuth tokens per user."""
import logging
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import IntegrationConnection

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR = "google_calendar"


async def get_active_calendar_connections(
    session: AsyncSession, user_ids: Iterable[UUID]
) -> dict[UUID, IntegrationConnection]:
    """Return each user's active, user-owned Google Calendar connection.

    Users without one are absent from the result. When a user has several,
    the most recently created wins.
    """
    ids = list(user_ids)
    if not ids:
        return {}
    result = await session.execute(
        select(IntegrationConnection)
        .where(IntegrationConnection.provider == GOOGLE_CALENDAR)
        .where(IntegrationConnection.owner_type == "user")
        .where(IntegrationConnection.status == "active")
        .where(IntegrationConnection.owner_id.in_(ids))
        .order_by(IntegrationConnection.created_at)
    )
    return {conn.owner_id: conn for conn in result.scalars().all()}


async def update_tokens(
    session: AsyncSession,
    connection_id: UUID,
    access_token: str,
    token_expires_at: Optional[datetime],
    refreshed_at: datetime,
    refresh_token: Optional[str] = None,
) -> None:
    """Persist a refreshed access token (and a rotated refresh token, if any)."""
    values = {
        "access_token": access_token,
        "token_expires_at": token_expires_at,
        "last_refreshed_at": refreshed_at,
    }
    if refresh_token:
        values["refresh_token"] = refresh_token
    await session.execute(
        update(IntegrationConnection)
        .where(IntegrationConnection.id == connection_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.flush()


async def mark_error(session: AsyncSession, connection_id: UUID) -> None:
    """Flag a connection whose refresh token was rejected."""
    await session.execute(
        update(IntegrationConnection)
        .where(IntegrationConnection.id == connection_id)
        .values(status="error")
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    logger.warning("Integration connection %s marked as error", connection_id)
