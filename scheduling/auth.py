"""Authorization gate for scheduling operations.

Every operation asks an ``Authorizer`` whether the acting user may perform a
coarse action (read / respond / write / manage) in a space before it touches
any domain state. The default implementation checks the actor's own scope
first and then the role stored in ``core.space_memberships``.
"""
import logging
from typing import List, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import proposals as proposals_repo
from db.repositories import spaces as spaces_repo
from scheduling.errors import AuthorizationError
from schemas.scheduling import SchedulingAction

logger = logging.getLogger(__name__)

ROLE_ACTIONS = {
    "admin": {
        SchedulingAction.READ,
        SchedulingAction.RESPOND,
        SchedulingAction.WRITE,
        SchedulingAction.MANAGE,
    },
    "editor": {SchedulingAction.READ, SchedulingAction.RESPOND, SchedulingAction.WRITE},
    "member": {SchedulingAction.READ, SchedulingAction.RESPOND, SchedulingAction.WRITE},
    "client": {SchedulingAction.READ, SchedulingAction.RESPOND},
    "viewer": {SchedulingAction.READ},
}


class ActorContext(BaseModel):
    """Who is calling, and what the calling credential is scoped to.

    ``allowed_space_ids = None`` means the credential is not limited to
    particular spaces (membership still applies).
    """

    user_id: UUID
    allowed_actions: List[SchedulingAction] = Field(
        default_factory=lambda: list(SchedulingAction)
    )
    allowed_space_ids: Optional[List[UUID]] = None


class AuthorizationResult(BaseModel):
    allowed: bool
    role: Optional[str] = None
    reason: Optional[str] = None


class Authorizer(Protocol):
    """Decides whether ``actor`` may perform ``action`` in ``space_id``."""

    async def authorize(
        self,
        session: AsyncSession,
        space_id: UUID,
        action: SchedulingAction,
        actor: ActorContext,
        resource_id: Optional[UUID] = None,
    ) -> AuthorizationResult:
        ...


class SpaceMembershipAuthorizer:
    """Role-based check against the actor's membership in the space.

    ``manage`` is granted to space admins, and to the creator of the proposal
    named by ``resource_id`` as long as their role can still ``write``.
    """

    async def authorize(
        self,
        session: AsyncSession,
        space_id: UUID,
        action: SchedulingAction,
        actor: ActorContext,
        resource_id: Optional[UUID] = None,
    ) -> AuthorizationResult:
        if action not in actor.allowed_actions:
            return AuthorizationResult(
                allowed=False, reason=f"Action '{action.value}' is not permitted for this caller"
            )
        if actor.allowed_space_ids is not None and space_id not in actor.allowed_space_ids:
            return AuthorizationResult(
                allowed=False, reason="Caller is not scoped to this space"
            )

        membership = await spaces_repo.get_membership(session, space_id, actor.user_id)
        if membership is None:
            return AuthorizationResult(allowed=False, reason="Not a member of this space")

        role = membership.role
        permitted = ROLE_ACTIONS.get(role, set())
        if action in permitted:
            return AuthorizationResult(allowed=True, role=role)

        if action == SchedulingAction.MANAGE and resource_id is not None:
            if SchedulingAction.WRITE in permitted:
                proposal = await proposals_repo.get_proposal(session, resource_id, space_id)
                if proposal is not None and proposal.created_by == actor.user_id:
                    return AuthorizationResult(allowed=True, role=role)
            return AuthorizationResult(
                allowed=False,
                role=role,
                reason="Only a space admin or the proposal creator can do this",
            )

        return AuthorizationResult(
            allowed=False,
            role=role,
            reason=f"Role '{role}' cannot perform '{action.value}'",
        )


_default_authorizer = SpaceMembershipAuthorizer()


async def ensure_authorized(
    session: AsyncSession,
    space_id: UUID,
    action: SchedulingAction,
    actor: ActorContext,
    resource_id: Optional[UUID] = None,
    authorizer: Optional[Authorizer] = None,
) -> AuthorizationResult:
    """Raise AuthorizationError unless the authorizer allows the action."""
    result = await (authorizer or _default_authorizer).authorize(
        session, space_id, action, actor, resource_id
    )
    if not result.allowed:
        logger.info(
            "Denied %s on space %s for user %s: %s",
            action.value,
            space_id,
            actor.user_id,
            result.reason,
        )
        raise AuthorizationError(result.reason or "Forbidden")
    return result
