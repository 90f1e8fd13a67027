"""Shared proposal-state helpers: effective status, open checks, read models."""
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Type
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import proposals as proposals_repo
from scheduling.errors import NotFoundError, ProposalNotOpenError
from schemas.scheduling import (
    ProposalOut,
    ProposalStatus,
    RespondentOut,
    SlotOut,
    ensure_utc,
)

_PROPOSAL_FIELDS = [
    name for name in ProposalOut.model_fields if name not in ("slots", "respondents")
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def effective_status(proposal: Any, now: Optional[datetime] = None) -> str:
    """Stored status, except an open proposal past its deadline reads as expired."""
    status = ProposalStatus(proposal.status).value
    if (
        status == ProposalStatus.OPEN.value
        and proposal.expires_at is not None
        and ensure_utc(proposal.expires_at) < (now or utcnow())
    ):
        return ProposalStatus.EXPIRED.value
    return status


async def require_proposal(session: AsyncSession, space_id: UUID, proposal_id: UUID):
    proposal = await proposals_repo.get_proposal(session, proposal_id, space_id)
    if proposal is None:
        raise NotFoundError("Proposal not found")
    return proposal


def require_open(proposal: Any, now: Optional[datetime] = None) -> None:
    status = effective_status(proposal, now)
    if status != ProposalStatus.OPEN.value:
        raise ProposalNotOpenError(status)


def to_proposal_out(
    proposal: Any,
    slots: Iterable[Any] = (),
    respondents: Iterable[Any] = (),
    *,
    out_cls: Type[ProposalOut] = ProposalOut,
    now: Optional[datetime] = None,
    **extra: Any,
) -> ProposalOut:
    """Build a read model from a proposal row and already-loaded children.

    Relationships on the row are never touched, so this is safe to call on
    freshly inserted objects inside an async session.
    """
    data = {name: getattr(proposal, name, None) for name in _PROPOSAL_FIELDS}
    data["status"] = effective_status(proposal, now)
    data.update(extra)
    return out_cls(
        **data,
        slots=[SlotOut.model_validate(s) for s in sorted(slots, key=lambda s: s.slot_order)],
        respondents=[RespondentOut.model_validate(r) for r in respondents],
    )
