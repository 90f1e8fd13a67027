"""Reminder dispatch — nudge respondents who have not answered any slot."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import notifications as notifications_repo
from db.repositories import responses as responses_repo
from scheduling.auth import ActorContext, Authorizer, ensure_authorized
from scheduling.state import require_open, require_proposal
from schemas.scheduling import ReminderResult, ReminderType, SchedulingAction

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "scheduling_reminder"


def reminder_dedupe_key(
    proposal_id: UUID, user_id: UUID, reminder_type: ReminderType = ReminderType.MANUAL
) -> str:
    return f"{NOTIFICATION_TYPE}:{proposal_id}:{user_id}:{reminder_type.value}"


async def send_reminders(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    proposal_id: UUID,
    authorizer: Optional[Authorizer] = None,
) -> ReminderResult:
    """Notify every respondent with no answers yet.

    Notifications are keyed by a dedupe key, so repeating the call does not
    create duplicates. The audit log is best effort.
    """
    await ensure_authorized(
        session, space_id, SchedulingAction.MANAGE, actor, proposal_id, authorizer
    )
    proposal = await require_proposal(session, space_id, proposal_id)
    require_open(proposal)

    pending = await responses_repo.get_pending_respondents(session, proposal_id)
    target_user_ids = [r.user_id for r in pending]
    if not target_user_ids:
        return ReminderResult(sent_count=0)

    rows = [
        {
            "org_id": proposal.org_id,
            "space_id": space_id,
            "user_id": user_id,
            "type": NOTIFICATION_TYPE,
            "title": "Please respond to a scheduling request",
            "body": f"'{proposal.title}' is waiting for your availability.",
            "payload": {"proposal_id": str(proposal_id), "space_id": str(space_id)},
            "dedupe_key": reminder_dedupe_key(proposal_id, user_id),
        }
        for user_id in target_user_ids
    ]
    inserted = await notifications_repo.insert_notifications(session, rows)

    try:
        await notifications_repo.log_reminders(
            session, proposal_id, ReminderType.MANUAL.value, target_user_ids, actor.user_id
        )
    except SQLAlchemyError:
        logger.warning(
            "Reminder audit log failed for proposal %s", proposal_id, exc_info=True
        )

    logger.info(
        "Reminded %d respondents on proposal %s (%d new notifications)",
        len(target_user_ids),
        proposal_id,
        inserted,
    )
    return ReminderResult(
        sent_count=len(target_user_ids),
        target_user_ids=target_user_ids,
        new_notification_count=inserted,
    )
