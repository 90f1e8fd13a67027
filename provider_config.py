"""Calendar and video-conference provider selection.

Providers are enabled per environment flag and only returned when their
credentials are present:
  - ZOOM_ENABLED + ZOOM_CLIENT_ID / ZOOM_CLIENT_SECRET / ZOOM_ACCOUNT_ID
  - TEAMS_ENABLED + MS_CLIENT_ID / MS_CLIENT_SECRET / MS_TENANT_ID / MS_ORGANIZER_USER_ID
  - GOOGLE_MEET_ENABLED (requires GOOGLE_CALENDAR_ENABLED; uses the confirming
    user's Google Calendar connection)

Usage:
    from provider_config import build_video_providers
    providers = build_video_providers()
"""
import os
from typing import Dict, Optional
from uuid import UUID

from db.connection import get_db
from db.repositories import integrations as integrations_repo
from scheduling.suggestions import get_valid_access_token
from schemas.scheduling import VideoProviderName
from tools.google_meet_tools import GoogleMeetProvider, TokenResolver
from tools.teams_tools import TeamsProvider
from tools.video_conference import VideoConferenceProvider
from tools.zoom_tools import ZoomProvider


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def google_calendar_enabled() -> bool:
    return _flag("GOOGLE_CALENDAR_ENABLED")


def video_timeout_seconds() -> float:
    return float(os.environ.get("VIDEO_PROVIDER_TIMEOUT_SECONDS", "15"))


def freebusy_timeout_seconds() -> float:
    return float(os.environ.get("FREEBUSY_TIMEOUT_SECONDS", "10"))


async def resolve_user_calendar_token(user_id: str) -> Optional[str]:
    """Return a valid Google Calendar token for the user, using its own session."""
    owner_id = UUID(user_id)
    async with get_db() as session:
        connections = await integrations_repo.get_active_calendar_connections(
            session, [owner_id]
        )
        connection = connections.get(owner_id)
        if connection is None:
            return None
        return await get_valid_access_token(session, connection)


def build_video_providers(
    token_resolver: Optional[TokenResolver] = None,
) -> Dict[VideoProviderName, VideoConferenceProvider]:
    """Return the configured video providers keyed by name."""
    candidates = [
        ZoomProvider(
            os.environ.get("ZOOM_CLIENT_ID"),
            os.environ.get("ZOOM_CLIENT_SECRET"),
            os.environ.get("ZOOM_ACCOUNT_ID"),
            enabled=_flag("ZOOM_ENABLED"),
        ),
        TeamsProvider(
            os.environ.get("MS_CLIENT_ID"),
            os.environ.get("MS_CLIENT_SECRET"),
            os.environ.get("MS_TENANT_ID"),
            os.environ.get("MS_ORGANIZER_USER_ID"),
            enabled=_flag("TEAMS_ENABLED"),
        ),
        GoogleMeetProvider(
            token_resolver or resolve_user_calendar_token,
            enabled=_flag("GOOGLE_MEET_ENABLED") and google_calendar_enabled(),
        ),
    ]
    return {p.name: p for p in candidates if p.is_configured()}
