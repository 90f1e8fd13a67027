"""Video-conference provider interface and shared HTTP/token helpers."""
import logging
import threading
import time
from typing import Callable, Optional, Protocol, Tuple

import requests

from scheduling.errors import UpstreamError
from schemas.scheduling import VideoProviderName
from schemas.video import CreateMeetingParams, VideoMeetingResult

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 10
TOKEN_EXPIRY_SKEW = 60  # seconds


class VideoConferenceProvider(Protocol):
    """Creates and cancels external video meetings.

    ``create_meeting`` must be idempotent per ``params.idempotency_key``
    where the provider supports it.
    """

    name: VideoProviderName

    def is_configured(self) -> bool:
        ...

    async def create_meeting(self, params: CreateMeetingParams) -> VideoMeetingResult:
        ...

    async def cancel_meeting(
        self, external_meeting_id: str, created_by_user_id: Optional[str] = None
    ) -> None:
        ...


def check_response(
    provider: str, resp: requests.Response, tolerated: Tuple[int, ...] = ()
) -> requests.Response:
    """Raise UpstreamError for a non-2xx response unless its status is tolerated."""
    if resp.ok or resp.status_code in tolerated:
        return resp
    logger.error("%s API error: %s %s", provider, resp.status_code, resp.text[:500])
    raise UpstreamError(provider, f"API error ({resp.status_code})")


class CachedToken:
    """Thread-safe cache for an app-level OAuth token.

    ``fetch`` returns (access_token, expires_in_seconds) and is called when
    no token is cached or the cached one expires within a minute.
    """

    def __init__(self, fetch: Callable[[], Tuple[str, int]]):
        self._fetch = fetch
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get(self) -> str:
        with self._lock:
            if self._token and time.monotonic() < self._expires_at - TOKEN_EXPIRY_SKEW:
                return self._token
            token, expires_in = self._fetch()
            self._token = token
            self._expires_at = time.monotonic() + expires_in
            return token
