"""Slot confirmation — the confirmability rule and the confirm operation.

Confirming is a two-phase operation. Phase one is a single conditional
UPDATE that moves the proposal from open to confirmed only while every
required respondent still accepts the slot; the meeting row is written in the
same transaction and committed. Phase two provisions the video meeting.
Phase two may fail or time out without undoing phase one.
"""
import asyncio
import logging
from typing import Any, Iterable, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import meetings as meetings_repo
from db.repositories import proposals as proposals_repo
from db.repositories import responses as responses_repo
from db.repositories import spaces as spaces_repo
from scheduling.auth import ActorContext, Authorizer, ensure_authorized
from scheduling.errors import (
    AlreadyDecidedError,
    NotFoundError,
    SlotNotConfirmableError,
    UpstreamError,
)
from scheduling.state import require_open, require_proposal, utcnow
from schemas.scheduling import (
    ACCEPTING_RESPONSES,
    ConfirmResult,
    ProposalStatus,
    SchedulingAction,
    VideoProviderName,
)
from schemas.video import CreateMeetingParams, Participant

logger = logging.getLogger(__name__)

DEFAULT_VIDEO_TIMEOUT_SECONDS = 15.0


def blocking_respondents(
    required_respondent_ids: Iterable[UUID], responses: Mapping[UUID, Any]
) -> List[UUID]:
    """Required respondents whose answer for the slot is missing or 'unavailable'.

    responses: respondent_id -> response value for one slot.
    """
    return [
        rid
        for rid in required_respondent_ids
        if responses.get(rid) not in ACCEPTING_RESPONSES
    ]


def is_slot_confirmable(
    required_respondent_ids: Iterable[UUID], responses: Mapping[UUID, Any]
) -> bool:
    """True when every required respondent answered available or unavailable_but_proceed.

    A missing answer counts as pending and blocks. Non-required respondents
    never affect the result.
    """
    return not blocking_respondents(required_respondent_ids, responses)


def idempotency_key(proposal_id: UUID, slot_id: UUID) -> str:
    return f"proposal-{proposal_id}-slot-{slot_id}"


async def confirm_slot(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    proposal_id: UUID,
    slot_id: UUID,
    *,
    video_providers: Optional[Mapping[VideoProviderName, Any]] = None,
    video_timeout: Optional[float] = None,
    authorizer: Optional[Authorizer] = None,
) -> ConfirmResult:
    """Confirm ``slot_id`` for the proposal and provision its video meeting.

    Raises NotFoundError, ProposalNotOpenError, SlotNotConfirmableError or
    AlreadyDecidedError. Video provisioning problems are reported in
    ``ConfirmResult.video_error`` and never raised.
    """
    await ensure_authorized(
        session, space_id, SchedulingAction.MANAGE, actor, proposal_id, authorizer
    )

    now = utcnow()
    proposal = await require_proposal(session, space_id, proposal_id)
    require_open(proposal, now)

    slot = await proposals_repo.get_slot(session, proposal_id, slot_id)
    if slot is None:
        raise NotFoundError("Slot not found in this proposal")

    respondents = await proposals_repo.get_respondents(session, proposal_id)
    required_ids = [r.id for r in respondents if r.is_required]
    slot_responses = {
        r.respondent_id: r.response
        for r in await responses_repo.get_responses_for_slot(session, slot_id)
    }
    blockers = blocking_respondents(required_ids, slot_responses)
    if blockers:
        raise SlotNotConfirmableError(blockers)

    # Phase one: compare-and-set, re-checking confirmability inside the UPDATE
    confirmed = await proposals_repo.confirm_if_open(
        session, proposal_id, slot_id, actor.user_id, now
    )
    if confirmed is None:
        current = await proposals_repo.get_proposal(session, proposal_id)
        current_status = current.status if current is not None else None
        if current_status == ProposalStatus.OPEN.value:
            # Still open: either the deadline passed or an answer changed meanwhile
            require_open(current, now)
            raise SlotNotConfirmableError()
        raise AlreadyDecidedError(current_status)

    meeting = await meetings_repo.record_meeting(
        session,
        org_id=proposal.org_id,
        space_id=space_id,
        proposal_id=proposal_id,
        title=proposal.title,
        start_at=slot.start_at,
        end_at=slot.end_at,
        video_provider=proposal.video_provider,
        created_by=actor.user_id,
    )
    await proposals_repo.set_confirmed_meeting(session, proposal_id, meeting.id)
    await session.commit()
    logger.info(
        "Proposal %s confirmed for slot %s by %s (meeting %s)",
        proposal_id,
        slot_id,
        actor.user_id,
        meeting.id,
    )

    result = ConfirmResult(
        meeting_id=meeting.id, slot_start=slot.start_at, slot_end=slot.end_at
    )
    if not proposal.video_provider:
        return result

    # Phase two: best-effort video provisioning
    provider_name = VideoProviderName(proposal.video_provider)
    provider = (video_providers or {}).get(provider_name)
    if provider is None or not provider.is_configured():
        result.video_error = f"Video provider '{provider_name.value}' is not configured"
        logger.warning("Proposal %s: %s", proposal_id, result.video_error)
        return result

    profiles = await spaces_repo.get_profiles(session, [r.user_id for r in respondents])
    participants = [
        Participant(email=p.email, name=p.display_name or "")
        for p in profiles.values()
        if p.email
    ]
    params = CreateMeetingParams(
        title=proposal.title,
        start_at=slot.start_at,
        end_at=slot.end_at,
        participants=participants,
        idempotency_key=idempotency_key(proposal_id, slot_id),
        description=proposal.description,
        created_by_user_id=str(proposal.created_by),
    )
    timeout = video_timeout if video_timeout is not None else DEFAULT_VIDEO_TIMEOUT_SECONDS
    try:
        video = await asyncio.wait_for(provider.create_meeting(params), timeout=timeout)
    except asyncio.TimeoutError:
        result.video_error = f"{provider_name.value}: timed out after {timeout:g}s"
        logger.warning("Proposal %s: video provisioning %s", proposal_id, result.video_error)
        return result
    except UpstreamError as exc:
        result.video_error = exc.message
        logger.warning(
            "Proposal %s: video provisioning failed: %s", proposal_id, exc.message, exc_info=True
        )
        return result
    except Exception as exc:
        result.video_error = f"{provider_name.value}: {exc}"
        logger.exception("Proposal %s: unexpected video provisioning error", proposal_id)
        return result

    try:
        await proposals_repo.set_video_details(
            session, proposal_id, video.meeting_url, video.external_meeting_id
        )
        await meetings_repo.update_video_details(
            session, meeting.id, video.meeting_url, video.external_meeting_id
        )
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception(
            "Proposal %s: could not store video meeting %s, cancelling it",
            proposal_id,
            video.external_meeting_id,
        )
        await _cancel_orphaned_meeting(provider, video.external_meeting_id, params)
        result.video_error = "Video meeting was created but could not be saved"
        return result

    result.meeting_url = video.meeting_url
    result.external_meeting_id = video.external_meeting_id
    return result


async def _cancel_orphaned_meeting(provider: Any, external_id: str, params) -> None:
    try:
        await provider.cancel_meeting(external_id, params.created_by_user_id)
    except Exception:
        logger.warning("Could not cancel orphaned video meeting %s", external_id, exc_info=True)
