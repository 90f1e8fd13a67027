"""Google Meet provisioning through Calendar events with conferenceData.

Reuses the confirming user's Google Calendar connection: the meeting is an
event on their primary calendar, and the Meet link is generated by Google.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from googleapiclient.errors import HttpError

from scheduling.errors import UpstreamError
from schemas.scheduling import VideoProviderName, ensure_utc
from schemas.video import CreateMeetingParams, VideoMeetingResult
from tools.calendar_tools import calendar_service

logger = logging.getLogger(__name__)

TokenResolver = Callable[[str], Awaitable[Optional[str]]]


class GoogleMeetProvider:
    name = VideoProviderName.GOOGLE_MEET

    def __init__(self, token_resolver: TokenResolver, enabled: bool = True):
        """token_resolver: async user_id -> access token (or None) for that user's calendar."""
        self.token_resolver = token_resolver
        self.enabled = enabled

    def is_configured(self) -> bool:
        return bool(self.enabled)

    async def _token_for(self, user_id: Optional[str]) -> str:
        if not user_id:
            raise UpstreamError("google_meet", "created_by_user_id is required")
        token = await self.token_resolver(user_id)
        if not token:
            raise UpstreamError("google_meet", "no usable Google Calendar connection for user")
        return token

    def _insert_event(self, access_token: str, params: CreateMeetingParams) -> VideoMeetingResult:
        event = {
            "summary": params.title,
            "description": params.description or "",
            "start": {"dateTime": ensure_utc(params.start_at).isoformat()},
            "end": {"dateTime": ensure_utc(params.end_at).isoformat()},
            "attendees": [
                {"email": p.email, "displayName": p.name} for p in params.participants
            ],
            "conferenceData": {
                "createRequest": {
                    "requestId": params.idempotency_key,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }
        try:
            created = (
                calendar_service(access_token)
                .events()
                .insert(
                    calendarId="primary",
                    body=event,
                    conferenceDataVersion=1,
                    sendUpdates="all",
                )
                .execute()
            )
        except HttpError as exc:
            raise UpstreamError("google_meet", f"Calendar API error ({exc.resp.status})") from exc

        entry_points = created.get("conferenceData", {}).get("entryPoints", [])
        video = next((e["uri"] for e in entry_points if e.get("entryPointType") == "video"), None)
        phone = next((e["uri"] for e in entry_points if e.get("entryPointType") == "phone"), None)
        if not video:
            raise UpstreamError("google_meet", "Meet URL not returned by Calendar API")
        return VideoMeetingResult(
            meeting_url=video,
            external_meeting_id=created["id"],
            host_url=created.get("htmlLink"),
            dial_in=phone,
        )

    def _delete_event(self, access_token: str, event_id: str) -> None:
        try:
            calendar_service(access_token).events().delete(
                calendarId="primary", eventId=event_id
            ).execute()
        except HttpError as exc:
            if exc.resp.status in (404, 410):
                return
            raise UpstreamError("google_meet", f"Calendar API error ({exc.resp.status})") from exc

    async def create_meeting(self, params: CreateMeetingParams) -> VideoMeetingResult:
        token = await self._token_for(params.created_by_user_id)
        return await asyncio.to_thread(self._insert_event, token, params)

    async def cancel_meeting(
        self, external_meeting_id: str, created_by_user_id: Optional[str] = None
    ) -> None:
        token = await self._token_for(created_by_user_id)
        await asyncio.to_thread(self._delete_event, token, external_meeting_id)
        logger.info("Cancelled Google Meet event %s", external_meeting_id)
