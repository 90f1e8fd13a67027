"""Slot response repository — per-respondent answers, upserted by (slot, respondent)."""
import logging
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ProposalRespondent, ProposalSlot, SlotResponse

logger = logging.getLogger(__name__)


async def upsert_responses(
    session: AsyncSession,
    respondent_id: UUID,
    responses: Iterable[tuple[UUID, str]],
    responded_at: datetime,
) -> int:
    """Insert or overwrite one response per (slot_id, respondent_id).

    responses: (slot_id, response) pairs. A later answer for the same slot
    replaces the earlier one and refreshes responded_at.
    Returns the number of rows written.
    """
    rows = [
        {
            "slot_id": slot_id,
            "respondent_id": respondent_id,
            "response": response,
            "responded_at": responded_at,
        }
        for slot_id, response in responses
    ]
    if not rows:
        return 0
    stmt = pg_insert(SlotResponse).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["slot_id", "respondent_id"],
        set_={
            "response": stmt.excluded.response,
            "responded_at": stmt.excluded.responded_at,
        },
    ).returning(SlotResponse.id)
    result = await session.execute(stmt)
    await session.flush()
    written = len(result.fetchall())
    logger.info("Upserted %d slot responses for respondent %s", written, respondent_id)
    return written


async def get_responses_for_proposal(
    session: AsyncSession, proposal_id: UUID
) -> list[SlotResponse]:
    """Return every response recorded against any slot of the proposal."""
    result = await session.execute(
        select(SlotResponse)
        .join(ProposalSlot, ProposalSlot.id == SlotResponse.slot_id)
        .where(ProposalSlot.proposal_id == proposal_id)
        .order_by(ProposalSlot.slot_order, SlotResponse.responded_at)
    )
    return list(result.scalars().all())


async def get_responses_for_slot(
    session: AsyncSession, slot_id: UUID
) -> list[SlotResponse]:
    result = await session.execute(
        select(SlotResponse).where(SlotResponse.slot_id == slot_id)
    )
    return list(result.scalars().all())


async def get_pending_respondents(
    session: AsyncSession, proposal_id: UUID
) -> list[ProposalRespondent]:
    """Return respondents that have not answered any slot of the proposal yet."""
    answered = select(SlotResponse.respondent_id).where(
        SlotResponse.respondent_id == ProposalRespondent.id
    )
    result = await session.execute(
        select(ProposalRespondent)
        .where(ProposalRespondent.proposal_id == proposal_id)
        .where(~answered.exists())
        .order_by(ProposalRespondent.created_at, ProposalRespondent.id)
    )
    return list(result.scalars().all())
