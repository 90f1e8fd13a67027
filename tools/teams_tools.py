"""Microsoft Teams meeting provisioning via Microsoft Graph (client credentials)."""
import asyncio
import logging
from typing import Optional, Tuple
from urllib.parse import quote

import requests

from scheduling.errors import UpstreamError
from schemas.scheduling import VideoProviderName
from schemas.video import CreateMeetingParams, VideoMeetingResult
from tools.video_conference import HTTP_TIMEOUT, CachedToken, check_response

logger = logging.getLogger(__name__)

MS_OAUTH_URL = "https://login.microsoftonline.com"
MS_GRAPH_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class TeamsProvider:
    """Creates online meetings on behalf of a fixed organizer account.

    Uses the ``createOrGet`` endpoint keyed by the idempotency key, so a
    retried confirmation returns the meeting created the first time.
    """

    name = VideoProviderName.TEAMS

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        tenant_id: Optional[str],
        organizer_user_id: Optional[str],
        enabled: bool = True,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.tenant_id = tenant_id
        self.organizer_user_id = organizer_user_id
        self.enabled = enabled
        self._token = CachedToken(self._fetch_token)

    def is_configured(self) -> bool:
        return bool(
            self.enabled
            and self.client_id
            and self.client_secret
            and self.tenant_id
            and self.organizer_user_id
        )

    def _fetch_token(self) -> Tuple[str, int]:
        try:
            resp = requests.post(
                f"{MS_OAUTH_URL}/{self.tenant_id}/oauth2/v2.0/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError("teams", f"token request failed: {exc}") from exc
        data = check_response("teams", resp).json()
        return data["access_token"], int(data.get("expires_in", 3600))

    def _meetings_url(self) -> str:
        return f"{MS_GRAPH_URL}/users/{quote(self.organizer_user_id, safe='')}/onlineMeetings"

    def _create_meeting(self, params: CreateMeetingParams) -> VideoMeetingResult:
        payload = {
            "externalId": params.idempotency_key,
            "subject": params.title,
            "startDateTime": params.start_at.isoformat(),
            "endDateTime": params.end_at.isoformat(),
            "participants": {
                "attendees": [
                    {"upn": p.email, "identity": {"user": {"displayName": p.name}}}
                    for p in params.participants
                ]
            },
        }
        try:
            resp = requests.post(
                f"{self._meetings_url()}/createOrGet",
                headers={"Authorization": f"Bearer {self._token.get()}"},
                json=payload,
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError("teams", f"meeting request failed: {exc}") from exc
        data = check_response("teams", resp).json()

        audio = data.get("audioConferencing") or {}
        dial_in = None
        if audio.get("tollNumber"):
            dial_in = f"{audio['tollNumber']} (ID: {audio.get('conferenceId', '')})"
        return VideoMeetingResult(
            meeting_url=data.get("joinWebUrl") or data.get("joinUrl"),
            external_meeting_id=data["id"],
            dial_in=dial_in,
        )

    def _cancel_meeting(self, external_meeting_id: str) -> None:
        try:
            resp = requests.delete(
                f"{self._meetings_url()}/{quote(external_meeting_id, safe='')}",
                headers={"Authorization": f"Bearer {self._token.get()}"},
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError("teams", f"cancel request failed: {exc}") from exc
        check_response("teams", resp, tolerated=(404,))

    async def create_meeting(self, params: CreateMeetingParams) -> VideoMeetingResult:
        return await asyncio.to_thread(self._create_meeting, params)

    async def cancel_meeting(
        self, external_meeting_id: str, created_by_user_id: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(self._cancel_meeting, external_meeting_id)
        logger.info("Cancelled Teams meeting %s", external_meeting_id)
