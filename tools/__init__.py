from .calendar_tools import query_free_busy, refresh_access_token, token_is_fresh
from .video_conference import VideoConferenceProvider
from .zoom_tools import ZoomProvider
from .teams_tools import TeamsProvider
from .google_meet_tools import GoogleMeetProvider

__all__ = [
    "query_free_busy", "refresh_access_token", "token_is_fresh",
    "VideoConferenceProvider", "ZoomProvider", "TeamsProvider", "GoogleMeetProvider",
]
