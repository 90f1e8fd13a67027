"""Proposal aggregate operations — create, listings, and the responses read model."""
import logging
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import proposals as proposals_repo
from db.repositories import responses as responses_repo
from db.repositories import spaces as spaces_repo
from scheduling.auth import ActorContext, Authorizer, ensure_authorized
from scheduling.confirmation import is_slot_confirmable
from scheduling.errors import AuthorizationError, InvalidRequestError, NotFoundError, invalid_request_from
from scheduling.state import effective_status, require_proposal, to_proposal_out, utcnow
from schemas.scheduling import (
    MyProposalOut,
    ProposalCreate,
    ProposalOut,
    ProposalResponsesOut,
    ProposalStatus,
    ProposalSummaryOut,
    RespondentDetailOut,
    ResponsesSummary,
    SchedulingAction,
    SlotDetailOut,
    SlotResponseOut,
    SlotResponseType,
)

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


async def create_proposal(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    title: str,
    duration_minutes: int,
    slots: List[Any],
    respondents: List[Any],
    *,
    description: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    video_provider: Optional[str] = None,
    authorizer: Optional[Authorizer] = None,
) -> ProposalOut:
    """Validate and persist a new open proposal with its slots and respondents.

    slots: dicts (or SlotInput) with start_at, end_at
    respondents: dicts (or RespondentInput) with user_id, side, is_required
    """
    await ensure_authorized(session, space_id, SchedulingAction.WRITE, actor, authorizer=authorizer)

    try:
        payload = ProposalCreate(
            space_id=space_id,
            title=title,
            description=description,
            duration_minutes=duration_minutes,
            slots=slots,
            respondents=respondents,
            expires_at=expires_at,
            video_provider=video_provider,
        )
    except ValidationError as exc:
        raise invalid_request_from(exc) from exc

    space = await spaces_repo.get_space(session, space_id)
    if space is None:
        raise NotFoundError("Space not found")

    proposal, slot_rows, respondent_rows = await proposals_repo.create_proposal(
        session,
        org_id=space.org_id,
        space_id=space_id,
        title=payload.title,
        description=payload.description,
        duration_minutes=payload.duration_minutes,
        expires_at=payload.expires_at,
        video_provider=payload.video_provider.value if payload.video_provider else None,
        created_by=actor.user_id,
        slots=[s.model_dump() for s in payload.slots],
        respondents=[
            {"user_id": r.user_id, "side": r.side.value, "is_required": r.is_required}
            for r in payload.respondents
        ],
    )
    return to_proposal_out(proposal, slot_rows, respondent_rows)


async def list_proposals(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    status: Optional[str] = None,
    limit: int = 50,
    authorizer: Optional[Authorizer] = None,
) -> List[ProposalSummaryOut]:
    """Proposals in a space, newest first, with respondent/slot/response counts.

    An open proposal past its deadline is reported as expired, and the
    ``status`` filter applies to that reported status.
    """
    await ensure_authorized(session, space_id, SchedulingAction.READ, actor, authorizer=authorizer)

    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise InvalidRequestError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
    if status is not None:
        try:
            status = ProposalStatus(status).value
        except ValueError as exc:
            raise InvalidRequestError(f"Unknown status '{status}'") from exc

    now = utcnow()
    rows = await proposals_repo.list_proposals(session, space_id, status, now, limit)
    responder_counts = await proposals_repo.count_responders(session, [p.id for p in rows])

    return [
        to_proposal_out(
            p,
            p.slots,
            p.respondents,
            out_cls=ProposalSummaryOut,
            now=now,
            respondent_count=len(p.respondents),
            slot_count=len(p.slots),
            response_count=responder_counts.get(p.id, 0),
        )
        for p in rows
    ]


async def list_my_proposals(
    session: AsyncSession,
    actor: ActorContext,
    space_id: Optional[UUID] = None,
    limit: int = 50,
    authorizer: Optional[Authorizer] = None,
) -> List[MyProposalOut]:
    """Proposals that name the acting user as a respondent, newest first.

    Without ``space_id`` this spans every space the user belongs to (narrowed
    to the caller's scoped spaces, if any). Each entry carries the user's
    respondent id and how many of the slots they have answered.
    """
    if space_id is not None:
        await ensure_authorized(session, space_id, SchedulingAction.READ, actor, authorizer=authorizer)
        space_ids = [space_id]
    else:
        if SchedulingAction.READ not in actor.allowed_actions:
            raise AuthorizationError("Action 'read' is not permitted for this caller")
        space_ids = actor.allowed_space_ids

    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise InvalidRequestError(f"limit must be between 1 and {MAX_LIST_LIMIT}")

    now = utcnow()
    rows = await proposals_repo.list_for_respondent(session, actor.user_id, space_ids, limit)
    out = []
    for proposal, respondent_id, answered in rows:
        total = len(proposal.slots)
        out.append(
            to_proposal_out(
                proposal,
                proposal.slots,
                proposal.respondents,
                out_cls=MyProposalOut,
                now=now,
                my_respondent_id=respondent_id,
                answered_slots=answered,
                total_slots=total,
                has_responded=total > 0 and answered >= total,
            )
        )
    return out


async def get_responses(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    proposal_id: UUID,
    authorizer: Optional[Authorizer] = None,
) -> ProposalResponsesOut:
    """Full response matrix for one proposal, with per-slot confirmability."""
    await ensure_authorized(
        session, space_id, SchedulingAction.READ, actor, proposal_id, authorizer
    )

    now = utcnow()
    proposal = await require_proposal(session, space_id, proposal_id)
    slots = await proposals_repo.get_slots(session, proposal_id)
    respondents = await proposals_repo.get_respondents(session, proposal_id)
    responses = await responses_repo.get_responses_for_proposal(session, proposal_id)
    profiles = await spaces_repo.get_profiles(session, [r.user_id for r in respondents])

    by_respondent = {r.id: r for r in respondents}
    by_slot = {s.id: {} for s in slots}
    for resp in responses:
        if resp.slot_id in by_slot and resp.respondent_id in by_respondent:
            by_slot[resp.slot_id][resp.respondent_id] = resp

    def display_name(user_id: UUID) -> str:
        profile = profiles.get(user_id)
        if profile is None:
            return ""
        return profile.display_name or profile.email or ""

    is_open = effective_status(proposal, now) == ProposalStatus.OPEN.value
    required_ids = [r.id for r in respondents if r.is_required]
    responded_ids = {resp.respondent_id for resp in responses}

    slot_details = []
    for slot in slots:
        answers = by_slot[slot.id]
        counts = {value.value: 0 for value in SlotResponseType}
        for resp in answers.values():
            counts[SlotResponseType(resp.response).value] += 1
        counts["pending"] = len(respondents) - len(answers)
        slot_details.append(
            SlotDetailOut(
                id=slot.id,
                start_at=slot.start_at,
                end_at=slot.end_at,
                slot_order=slot.slot_order,
                responses=[
                    SlotResponseOut(
                        respondent_id=rid,
                        user_id=by_respondent[rid].user_id,
                        display_name=display_name(by_respondent[rid].user_id),
                        side=by_respondent[rid].side,
                        response=resp.response,
                        responded_at=resp.responded_at,
                    )
                    for rid, resp in answers.items()
                ],
                counts=counts,
                is_confirmable=is_open
                and is_slot_confirmable(
                    required_ids, {rid: resp.response for rid, resp in answers.items()}
                ),
            )
        )

    respondent_details = [
        RespondentDetailOut(
            id=r.id,
            user_id=r.user_id,
            side=r.side,
            is_required=r.is_required,
            display_name=display_name(r.user_id),
            has_responded=r.id in responded_ids,
        )
        for r in respondents
    ]

    return ProposalResponsesOut(
        proposal=to_proposal_out(proposal, slots, respondents, now=now),
        summary=ResponsesSummary(
            respondent_count=len(respondents),
            responded_count=sum(1 for r in respondents if r.id in responded_ids),
            pending_user_ids=[r.user_id for r in respondents if r.id not in responded_ids],
            confirmable_slot_ids=[s.id for s in slot_details if s.is_confirmable],
        ),
        respondents=respondent_details,
        slots=slot_details,
    )
