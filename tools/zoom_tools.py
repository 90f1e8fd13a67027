"""Zoom meeting provisioning via Server-to-Server OAuth.

Calls the Zoom REST API directly with requests (no official Python SDK).
"""
import asyncio
import logging
from typing import Optional, Tuple

import requests

from scheduling.errors import UpstreamError
from schemas.scheduling import VideoProviderName, ensure_utc
from schemas.video import CreateMeetingParams, VideoMeetingResult
from tools.video_conference import HTTP_TIMEOUT, CachedToken, check_response

logger = logging.getLogger(__name__)

ZOOM_OAUTH_URL = "https://zoom.us/oauth/token"
ZOOM_API_URL = "https://api.zoom.us/v2"


class ZoomProvider:
    name = VideoProviderName.ZOOM

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        account_id: Optional[str],
        enabled: bool = True,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.account_id = account_id
        self.enabled = enabled
        self._token = CachedToken(self._fetch_token)

    def is_configured(self) -> bool:
        return bool(self.enabled and self.client_id and self.client_secret and self.account_id)

    def _fetch_token(self) -> Tuple[str, int]:
        try:
            resp = requests.post(
                ZOOM_OAUTH_URL,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "account_credentials", "account_id": self.account_id},
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError("zoom", f"token request failed: {exc}") from exc
        data = check_response("zoom", resp).json()
        return data["access_token"], int(data.get("expires_in", 3600))

    def _create_meeting(self, params: CreateMeetingParams) -> VideoMeetingResult:
        payload = {
            "topic": params.title,
            "type": 2,  # scheduled meeting
            "start_time": ensure_utc(params.start_at).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": params.duration_minutes,
            "timezone": "UTC",
            "agenda": params.description or "",
            "settings": {
                "join_before_host": True,
                "waiting_room": False,
                "auto_recording": "none",
                "meeting_invitees": [{"email": p.email} for p in params.participants],
            },
        }
        try:
            resp = requests.post(
                f"{ZOOM_API_URL}/users/me/meetings",
                headers={"Authorization": f"Bearer {self._token.get()}"},
                json=payload,
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError("zoom", f"meeting request failed: {exc}") from exc
        data = check_response("zoom", resp).json()
        return VideoMeetingResult(
            meeting_url=data["join_url"],
            external_meeting_id=str(data["id"]),
            host_url=data.get("start_url"),
            dial_in=data.get("pstn_password"),
        )

    def _cancel_meeting(self, external_meeting_id: str) -> None:
        try:
            resp = requests.delete(
                f"{ZOOM_API_URL}/meetings/{external_meeting_id}",
                headers={"Authorization": f"Bearer {self._token.get()}"},
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError("zoom", f"cancel request failed: {exc}") from exc
        check_response("zoom", resp, tolerated=(404,))

    async def create_meeting(self, params: CreateMeetingParams) -> VideoMeetingResult:
        # The S2S account token acts as the host, so created_by_user_id is unused
        return await asyncio.to_thread(self._create_meeting, params)

    async def cancel_meeting(
        self, external_meeting_id: str, created_by_user_id: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(self._cancel_meeting, external_meeting_id)
        logger.info("Cancelled Zoom meeting %s", external_meeting_id)
