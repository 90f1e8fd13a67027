"""Response collection — a respondent's batch of per-slot answers."""
import logging
from typing import Any, List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import proposals as proposals_repo
from db.repositories import responses as responses_repo
from scheduling.auth import ActorContext, Authorizer, ensure_authorized
from scheduling.errors import InvalidRequestError, NotRespondentError, invalid_request_from
from scheduling.state import require_open, require_proposal, utcnow
from schemas.scheduling import ResponseBatch, SchedulingAction, SubmitResponsesResult

logger = logging.getLogger(__name__)


async def submit_responses(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    proposal_id: UUID,
    responses: List[Any],
    authorizer: Optional[Authorizer] = None,
) -> SubmitResponsesResult:
    """Record the actor's answers for one or more slots of an open proposal.

    Checks run in a fixed order and the first failure wins: the proposal
    exists, it is open, the actor is a respondent, every slot belongs to it.
    A repeated answer for a slot replaces the previous one.
    """
    await ensure_authorized(
        session, space_id, SchedulingAction.RESPOND, actor, proposal_id, authorizer
    )

    try:
        batch = ResponseBatch(responses=responses)
    except ValidationError as exc:
        raise invalid_request_from(exc) from exc

    now = utcnow()
    proposal = await require_proposal(session, space_id, proposal_id)
    require_open(proposal, now)

    respondent = await proposals_repo.get_respondent_by_user(
        session, proposal_id, actor.user_id
    )
    if respondent is None:
        raise NotRespondentError()

    slot_ids = {slot.id for slot in await proposals_repo.get_slots(session, proposal_id)}
    unknown = [str(r.slot_id) for r in batch.responses if r.slot_id not in slot_ids]
    if unknown:
        raise InvalidRequestError(
            "Slot does not belong to this proposal", [{"slot_id": s} for s in unknown]
        )

    updated = await responses_repo.upsert_responses(
        session,
        respondent.id,
        [(r.slot_id, r.response.value) for r in batch.responses],
        now,
    )
    logger.info(
        "User %s answered %d slots on proposal %s", actor.user_id, updated, proposal_id
    )
    return SubmitResponsesResult(updated_count=updated)
