"""Proposal repository — aggregate creation, lookups and conditional transitions.

Every status change is a single ``UPDATE ... WHERE status = 'open'`` (plus a
version check where needed) with RETURNING; callers treat ``None`` as "lost
the race" rather than reading and writing in two steps.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, distinct, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import (
    ProposalRespondent,
    ProposalSlot,
    SchedulingProposal,
    SlotResponse,
    SpaceMembership,
)
from schemas.scheduling import ACCEPTING_RESPONSES, ProposalStatus

logger = logging.getLogger(__name__)

_OPEN = ProposalStatus.OPEN.value


async def create_proposal(
    session: AsyncSession,
    *,
    org_id: UUID,
    space_id: UUID,
    title: str,
    duration_minutes: int,
    created_by: UUID,
    slots: list[dict],
    respondents: list[dict],
    description: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    video_provider: Optional[str] = None,
) -> tuple[SchedulingProposal, list[ProposalSlot], list[ProposalRespondent]]:
    """Insert a proposal with its slots and respondents in the current transaction.

    slots: dicts with start_at, end_at (slot_order is the list index)
    respondents: dicts with user_id, side, is_required
    """
    proposal = SchedulingProposal(
        org_id=org_id,
        space_id=space_id,
        title=title,
        description=description,
        duration_minutes=duration_minutes,
        status=_OPEN,
        expires_at=expires_at,
        video_provider=video_provider,
        created_by=created_by,
    )
    session.add(proposal)
    await session.flush()  # get proposal.id

    slot_rows = [
        ProposalSlot(
            proposal_id=proposal.id,
            start_at=slot["start_at"],
            end_at=slot["end_at"],
            slot_order=idx,
        )
        for idx, slot in enumerate(slots)
    ]
    respondent_rows = [
        ProposalRespondent(
            proposal_id=proposal.id,
            user_id=r["user_id"],
            side=r["side"],
            is_required=r.get("is_required", True),
        )
        for r in respondents
    ]
    session.add_all(slot_rows + respondent_rows)
    await session.flush()
    logger.info(
        "Created proposal %s with %d slots and %d respondents",
        proposal.id,
        len(slot_rows),
        len(respondent_rows),
    )
    return proposal, slot_rows, respondent_rows


async def get_proposal(
    session: AsyncSession, proposal_id: UUID, space_id: Optional[UUID] = None
) -> Optional[SchedulingProposal]:
    """Return the proposal, optionally requiring it to belong to ``space_id``."""
    stmt = select(SchedulingProposal).where(SchedulingProposal.id == proposal_id)
    if space_id is not None:
        stmt = stmt.where(SchedulingProposal.space_id == space_id)
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


def status_clause(status: str, now: datetime):
    """SQL predicate for the reported status, where overdue open rows read as expired."""
    overdue = SchedulingProposal.expires_at < now
    if status == _OPEN:
        return and_(SchedulingProposal.status == _OPEN, _not_expired(now))
    if status == ProposalStatus.EXPIRED.value:
        return or_(
            SchedulingProposal.status == status,
            and_(SchedulingProposal.status == _OPEN, overdue),
        )
    return SchedulingProposal.status == status


async def list_proposals(
    session: AsyncSession,
    space_id: UUID,
    status: Optional[str] = None,
    now: Optional[datetime] = None,
    limit: int = 50,
) -> list[SchedulingProposal]:
    """Return proposals for a space, newest first, with slots and respondents loaded.

    status: reported status to keep (see ``status_clause``); None means all.
    The filter runs before LIMIT, so overdue rows never crowd out live ones.
    """
    stmt = (
        select(SchedulingProposal)
        .where(SchedulingProposal.space_id == space_id)
        .options(
            selectinload(SchedulingProposal.slots),
            selectinload(SchedulingProposal.respondents),
        )
        .order_by(SchedulingProposal.created_at.desc())
        .limit(limit)
    )
    if status is not None:
        stmt = stmt.where(status_clause(status, now or datetime.now(timezone.utc)))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_for_respondent(
    session: AsyncSession,
    user_id: UUID,
    space_ids: Optional[list[UUID]] = None,
    limit: int = 50,
) -> list[tuple[SchedulingProposal, UUID, int]]:
    """Return (proposal, respondent id, answered slot count) for proposals naming ``user_id``.

    Only spaces the user is still a member of are included. Newest first.
    """
    answered = (
        select(func.count(SlotResponse.id))
        .where(SlotResponse.respondent_id == ProposalRespondent.id)
        .correlate(ProposalRespondent)
        .scalar_subquery()
    )
    stmt = (
        select(SchedulingProposal, ProposalRespondent.id, answered)
        .join(
            ProposalRespondent,
            and_(
                ProposalRespondent.proposal_id == SchedulingProposal.id,
                ProposalRespondent.user_id == user_id,
            ),
        )
        .join(
            SpaceMembership,
            and_(
                SpaceMembership.space_id == SchedulingProposal.space_id,
                SpaceMembership.user_id == user_id,
            ),
        )
        .options(
            selectinload(SchedulingProposal.slots),
            selectinload(SchedulingProposal.respondents),
        )
        .order_by(SchedulingProposal.created_at.desc())
        .limit(limit)
    )
    if space_ids is not None:
        stmt = stmt.where(SchedulingProposal.space_id.in_(space_ids))
    result = await session.execute(stmt)
    return [(proposal, respondent_id, count) for proposal, respondent_id, count in result.all()]


async def count_responders(
    session: AsyncSession, proposal_ids: list[UUID]
) -> dict[UUID, int]:
    """Return, per proposal, how many respondents have answered at least one slot."""
    if not proposal_ids:
        return {}
    result = await session.execute(
        select(
            ProposalRespondent.proposal_id,
            func.count(distinct(SlotResponse.respondent_id)),
        )
        .join(SlotResponse, SlotResponse.respondent_id == ProposalRespondent.id)
        .where(ProposalRespondent.proposal_id.in_(proposal_ids))
        .group_by(ProposalRespondent.proposal_id)
    )
    return {row[0]: row[1] for row in result.all()}


async def get_slots(session: AsyncSession, proposal_id: UUID) -> list[ProposalSlot]:
    result = await session.execute(
        select(ProposalSlot)
        .where(ProposalSlot.proposal_id == proposal_id)
        .order_by(ProposalSlot.slot_order)
    )
    return list(result.scalars().all())


async def get_slot(
    session: AsyncSession, proposal_id: UUID, slot_id: UUID
) -> Optional[ProposalSlot]:
    """Return the slot only if it belongs to the proposal."""
    result = await session.execute(
        select(ProposalSlot)
        .where(ProposalSlot.id == slot_id)
        .where(ProposalSlot.proposal_id == proposal_id)
    )
    return result.scalar_one_or_none()


async def get_respondents(
    session: AsyncSession, proposal_id: UUID
) -> list[ProposalRespondent]:
    result = await session.execute(
        select(ProposalRespondent)
        .where(ProposalRespondent.proposal_id == proposal_id)
        .order_by(ProposalRespondent.created_at, ProposalRespondent.id)
    )
    return list(result.scalars().all())


async def get_respondent_by_user(
    session: AsyncSession, proposal_id: UUID, user_id: UUID
) -> Optional[ProposalRespondent]:
    result = await session.execute(
        select(ProposalRespondent)
        .where(ProposalRespondent.proposal_id == proposal_id)
        .where(ProposalRespondent.user_id == user_id)
    )
    return result.scalar_one_or_none()


def _not_expired(now: datetime):
    return or_(
        SchedulingProposal.expires_at.is_(None),
        SchedulingProposal.expires_at >= now,
    )


async def confirm_if_open(
    session: AsyncSession,
    proposal_id: UUID,
    slot_id: UUID,
    confirmed_by: UUID,
    now: datetime,
) -> Optional[SchedulingProposal]:
    """Atomically move an open proposal to confirmed for ``slot_id``.

    The WHERE clause re-checks, in the same statement, that the proposal is
    still open and unexpired and that no required respondent lacks an
    accepting response for the slot. Returns None when nothing was updated.
    """
    blocking_respondent = (
        select(ProposalRespondent.id)
        .where(ProposalRespondent.proposal_id == proposal_id)
        .where(ProposalRespondent.is_required.is_(True))
        .where(
            ~exists().where(
                SlotResponse.respondent_id == ProposalRespondent.id,
                SlotResponse.slot_id == slot_id,
                SlotResponse.response.in_([r.value for r in ACCEPTING_RESPONSES]),
            )
        )
    )
    result = await session.execute(
        update(SchedulingProposal)
        .where(SchedulingProposal.id == proposal_id)
        .where(SchedulingProposal.status == _OPEN)
        .where(_not_expired(now))
        .where(~blocking_respondent.exists())
        .values(
            status=ProposalStatus.CONFIRMED.value,
            confirmed_slot_id=slot_id,
            confirmed_at=now,
            confirmed_by=confirmed_by,
            version=SchedulingProposal.version + 1,
        )
        .returning(SchedulingProposal)
        .execution_options(populate_existing=True, synchronize_session=False)
    )
    await session.flush()
    return result.scalar_one_or_none()


async def set_confirmed_meeting(
    session: AsyncSession, proposal_id: UUID, meeting_id: UUID
) -> None:
    await session.execute(
        update(SchedulingProposal)
        .where(SchedulingProposal.id == proposal_id)
        .values(confirmed_meeting_id=meeting_id)
        .execution_options(synchronize_session=False)
    )
    await session.flush()


async def set_video_details(
    session: AsyncSession,
    proposal_id: UUID,
    meeting_url: str,
    external_meeting_id: str,
) -> None:
    await session.execute(
        update(SchedulingProposal)
        .where(SchedulingProposal.id == proposal_id)
        .values(meeting_url=meeting_url, external_meeting_id=external_meeting_id)
        .execution_options(synchronize_session=False)
    )
    await session.flush()


async def cancel_if_unchanged(
    session: AsyncSession, proposal_id: UUID, expected_version: int
) -> Optional[SchedulingProposal]:
    """Cancel the proposal if it is still open at ``expected_version``."""
    result = await session.execute(
        update(SchedulingProposal)
        .where(SchedulingProposal.id == proposal_id)
        .where(SchedulingProposal.status == _OPEN)
        .where(SchedulingProposal.version == expected_version)
        .values(
            status=ProposalStatus.CANCELLED.value,
            version=SchedulingProposal.version + 1,
        )
        .returning(SchedulingProposal)
        .execution_options(populate_existing=True, synchronize_session=False)
    )
    await session.flush()
    return result.scalar_one_or_none()


async def extend_if_unchanged(
    session: AsyncSession,
    proposal_id: UUID,
    expected_version: int,
    new_expires_at: datetime,
) -> Optional[SchedulingProposal]:
    """Move the deadline if the proposal is still open at ``expected_version``."""
    result = await session.execute(
        update(SchedulingProposal)
        .where(SchedulingProposal.id == proposal_id)
        .where(SchedulingProposal.status == _OPEN)
        .where(SchedulingProposal.version == expected_version)
        .values(
            expires_at=new_expires_at,
            version=SchedulingProposal.version + 1,
        )
        .returning(SchedulingProposal)
        .execution_options(populate_existing=True, synchronize_session=False)
    )
    await session.flush()
    return result.scalar_one_or_none()


async def expire_overdue(session: AsyncSession, now: datetime) -> list[UUID]:
    """Move every open proposal whose deadline has passed to expired.

    Returns the ids that were transitioned.
    """
    result = await session.execute(
        update(SchedulingProposal)
        .where(SchedulingProposal.status == _OPEN)
        .where(SchedulingProposal.expires_at < now)
        .values(
            status=ProposalStatus.EXPIRED.value,
            version=SchedulingProposal.version + 1,
        )
        .returning(SchedulingProposal.id)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    expired = [row[0] for row in result.fetchall()]
    if expired:
        logger.info("Expired %d overdue proposals", len(expired))
    return expired
