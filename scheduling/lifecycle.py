"""Lifecycle maintenance — cancel, extend, and the expiry sweep.

Cancel and extend read the proposal's ``version`` and write with
``WHERE status = 'open' AND version = :seen``. Of two concurrent calls only
one matches; the other gets StateConflictError and should reload.
"""
import logging
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from dateutil import parser as date_parser
from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import proposals as proposals_repo
from scheduling.auth import ActorContext, Authorizer, ensure_authorized
from scheduling.errors import InvalidRequestError, ProposalNotOpenError, StateConflictError
from scheduling.state import require_open, require_proposal, to_proposal_out, utcnow
from schemas.scheduling import ProposalOut, ProposalStatus, SchedulingAction, ensure_utc

logger = logging.getLogger(__name__)


def parse_expiry(value: Union[str, datetime, None]) -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if value is None or value == "":
        raise InvalidRequestError("new_expires_at is required")
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(date_parser.isoparse(value))
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidRequestError(f"Invalid timestamp: {value!r}") from exc


async def cancel_proposal(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    proposal_id: UUID,
    authorizer: Optional[Authorizer] = None,
) -> ProposalOut:
    await ensure_authorized(
        session, space_id, SchedulingAction.MANAGE, actor, proposal_id, authorizer
    )
    proposal = await require_proposal(session, space_id, proposal_id)
    require_open(proposal)

    updated = await proposals_repo.cancel_if_unchanged(session, proposal_id, proposal.version)
    if updated is None:
        raise StateConflictError()
    logger.info("Proposal %s cancelled by %s", proposal_id, actor.user_id)
    return to_proposal_out(updated)


async def extend_proposal(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    proposal_id: UUID,
    new_expires_at: Union[str, datetime],
    authorizer: Optional[Authorizer] = None,
) -> ProposalOut:
    """Move the response deadline of an open proposal to a later time."""
    await ensure_authorized(
        session, space_id, SchedulingAction.MANAGE, actor, proposal_id, authorizer
    )
    now = utcnow()
    expires_at = parse_expiry(new_expires_at)
    if expires_at <= now:
        raise InvalidRequestError("new_expires_at must be in the future")

    proposal = await require_proposal(session, space_id, proposal_id)
    # A lapsed deadline can still be moved until the sweep stores 'expired'
    if proposal.status != ProposalStatus.OPEN.value:
        raise ProposalNotOpenError(proposal.status)

    updated = await proposals_repo.extend_if_unchanged(
        session, proposal_id, proposal.version, expires_at
    )
    if updated is None:
        raise StateConflictError()
    logger.info(
        "Proposal %s deadline moved to %s by %s",
        proposal_id,
        expires_at.isoformat(),
        actor.user_id,
    )
    return to_proposal_out(updated)


async def cancel_or_extend(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    proposal_id: UUID,
    action: str,
    new_expires_at: Union[str, datetime, None] = None,
    authorizer: Optional[Authorizer] = None,
) -> dict:
    """Dispatch ``action`` ("cancel" or "extend"); returns {"ok": True}."""
    if action == "cancel":
        await cancel_proposal(session, actor, space_id, proposal_id, authorizer)
    elif action == "extend":
        if new_expires_at is None:
            raise InvalidRequestError("new_expires_at is required for extend")
        await extend_proposal(
            session, actor, space_id, proposal_id, new_expires_at, authorizer
        )
    else:
        raise InvalidRequestError(f"Unknown action '{action}'")
    return {"ok": True}


async def expire_overdue_proposals(
    session: AsyncSession, now: Optional[datetime] = None
) -> list[UUID]:
    """Store the expired status on every open proposal past its deadline.

    Intended for an external timer; operations already treat such proposals
    as expired before this runs.
    """
    return await proposals_repo.expire_overdue(session, ensure_utc(now) if now else utcnow())
