"""Slot suggestion from the participants' Google Calendar free/busy data.

Each participant is looked up independently: a missing connection, an
unusable token or a failed free/busy query only removes that participant
from the merge and is reported back. When no query succeeds at all, no
slots are suggested, since an empty busy list would make every slot look free.
"""
import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Awaitable, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import integrations as integrations_repo
from db.repositories import spaces as spaces_repo
from scheduling.auth import ActorContext, Authorizer, ensure_authorized
from scheduling.availability import compute_available_slots
from scheduling.errors import InvalidRequestError, TokenRefreshError, UpstreamError
from scheduling.state import utcnow
from schemas.availability import SuggestResult
from schemas.scheduling import SchedulingAction
from tools import calendar_tools

logger = logging.getLogger(__name__)

MAX_SUGGEST_USERS = 10
DEFAULT_FREEBUSY_TIMEOUT_SECONDS = 10.0

FreeBusyFn = Callable[[str, str, str], List[dict]]
TokenProvider = Callable[[Any], Awaitable[Optional[str]]]


async def get_valid_access_token(
    session: AsyncSession, connection: Any, now: Optional[datetime] = None
) -> Optional[str]:
    """Return a usable access token for the connection, refreshing it if needed.

    Refreshed tokens are written back to the connection. Returns None when
    the connection has no usable token.
    """
    now = now or utcnow()
    if calendar_tools.token_is_fresh(connection, now):
        return connection.access_token
    if not connection.refresh_token:
        logger.info("Connection %s has an expired token and no refresh token", connection.id)
        return None

    try:
        refreshed = await asyncio.to_thread(
            calendar_tools.refresh_access_token, connection.refresh_token
        )
    except TokenRefreshError:
        logger.warning("Refresh token rejected for connection %s", connection.id, exc_info=True)
        await integrations_repo.mark_error(session, connection.id)
        return None
    except UpstreamError:
        logger.warning("Token refresh failed for connection %s", connection.id, exc_info=True)
        return None

    await integrations_repo.update_tokens(
        session,
        connection.id,
        refreshed["access_token"],
        refreshed["expires_at"],
        now,
        refreshed.get("refresh_token"),
    )
    return refreshed["access_token"]


def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"{field} must be a YYYY-MM-DD date") from exc


def _local_midnight_utc(day: date) -> str:
    return datetime.combine(day, time()).astimezone(timezone.utc).isoformat()


async def suggest_slots(
    session: AsyncSession,
    actor: ActorContext,
    space_id: UUID,
    user_ids: List[UUID],
    start_date: str,
    end_date: str,
    duration_minutes: int,
    business_hour_start: int = 9,
    business_hour_end: int = 18,
    *,
    free_busy: Optional[FreeBusyFn] = None,
    token_provider: Optional[TokenProvider] = None,
    timeout: float = DEFAULT_FREEBUSY_TIMEOUT_SECONDS,
    authorizer: Optional[Authorizer] = None,
) -> SuggestResult:
    """Suggest weekday slots when every reachable participant is free."""
    await ensure_authorized(session, space_id, SchedulingAction.READ, actor, authorizer=authorizer)

    requested = list(dict.fromkeys(UUID(str(u)) for u in user_ids))
    if not 1 <= len(requested) <= MAX_SUGGEST_USERS:
        raise InvalidRequestError(f"Between 1 and {MAX_SUGGEST_USERS} users are required")
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    if start > end:
        raise InvalidRequestError("start_date must not be after end_date")
    if not 15 <= duration_minutes <= 480:
        raise InvalidRequestError("duration_minutes must be between 15 and 480")
    if not 0 <= business_hour_start < business_hour_end <= 24:
        raise InvalidRequestError("Business hours must satisfy 0 <= start < end <= 24")

    members = await spaces_repo.filter_member_ids(session, space_id, requested)
    rejected = [u for u in requested if u not in members]
    candidates = [u for u in requested if u in members]

    connections = await integrations_repo.get_active_calendar_connections(session, candidates)
    disconnected = [u for u in candidates if u not in connections]

    resolve_token = token_provider or (lambda conn: get_valid_access_token(session, conn))

    failed: List[UUID] = []
    queued = []
    # Sequential: token refreshes write through the shared session
    for user_id in candidates:
        connection = connections.get(user_id)
        if connection is None:
            continue
        token = await resolve_token(connection)
        if token is None:
            failed.append(user_id)
        else:
            queued.append((user_id, token))

    time_min = _local_midnight_utc(start)
    time_max = _local_midnight_utc(end + timedelta(days=1))
    query = free_busy or calendar_tools.query_free_busy

    async def _query(token: str):
        return await asyncio.wait_for(
            asyncio.to_thread(query, token, time_min, time_max), timeout=timeout
        )

    results = await asyncio.gather(
        *(_query(token) for _, token in queued), return_exceptions=True
    )

    connected: List[UUID] = []
    busy: List[Any] = []
    for (user_id, _), outcome in zip(queued, results):
        if isinstance(outcome, BaseException):
            logger.warning("Free/busy lookup failed for user %s: %r", user_id, outcome)
            failed.append(user_id)
            continue
        connected.append(user_id)
        busy.extend(outcome)

    slots = []
    if connected:
        slots = compute_available_slots(
            busy,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            duration_minutes=duration_minutes,
            business_hour_start=business_hour_start,
            business_hour_end=business_hour_end,
        )
    else:
        logger.info("No calendars could be read for space %s; suggesting nothing", space_id)

    return SuggestResult(
        slots=slots,
        connected_user_ids=connected,
        disconnected_user_ids=disconnected,
        failed_user_ids=failed,
        rejected_user_ids=rejected,
    )
