"""Meeting repository — rows created when a proposal is confirmed."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Meeting

logger = logging.getLogger(__name__)


async def record_meeting(
    session: AsyncSession,
    *,
    org_id: UUID,
    space_id: UUID,
    proposal_id: UUID,
    title: str,
    start_at: datetime,
    end_at: datetime,
    video_provider: Optional[str],
    created_by: UUID,
) -> Meeting:
    meeting = Meeting(
        org_id=org_id,
        space_id=space_id,
        proposal_id=proposal_id,
        title=title,
        start_at=start_at,
        end_at=end_at,
        status="scheduled",
        video_provider=video_provider,
        created_by=created_by,
    )
    session.add(meeting)
    await session.flush()
    logger.info("Recorded meeting %s for proposal %s", meeting.id, proposal_id)
    return meeting


async def update_video_details(
    session: AsyncSession,
    meeting_id: UUID,
    meeting_url: str,
    external_meeting_id: str,
) -> None:
    """Attach the provider's join URL and id to an existing meeting."""
    await session.execute(
        update(Meeting)
        .where(Meeting.id == meeting_id)
        .values(meeting_url=meeting_url, external_meeting_id=external_meeting_id)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
