"""Google Calendar tools — free/busy lookup and OAuth token refresh.

All calls here are blocking (googleapiclient / google-auth); async callers
run them with ``asyncio.to_thread``.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from scheduling.errors import TokenRefreshError, UpstreamError


SCOPES = ["https://www.googleapis.com/auth/calendar"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
PROVIDER = "google_calendar"
EXPIRY_SKEW = timedelta(seconds=60)


def calendar_service(access_token: str):
    creds = Credentials(token=access_token)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def query_free_busy(
    access_token: str,
    time_min: str,
    time_max: str,
    calendar_id: str = "primary",
) -> List[Dict[str, str]]:
    """Return the busy periods of one calendar between time_min and time_max.

    Args:
        access_token: The calendar owner's OAuth access token.
        time_min: ISO 8601 lower bound (UTC).
        time_max: ISO 8601 upper bound (UTC).
        calendar_id: Calendar to query (defaults to the owner's primary).

    Returns:
        List of {'start', 'end'} ISO 8601 strings.

    Raises:
        UpstreamError: the API call failed or reported an error for the calendar.
    """
    body = {
        "timeMin": time_min,
        "timeMax": time_max,
        "items": [{"id": calendar_id}],
    }
    try:
        result = calendar_service(access_token).freebusy().query(body=body).execute()
    except Exception as exc:
        raise UpstreamError(PROVIDER, f"freebusy query failed: {exc}") from exc

    calendar = result.get("calendars", {}).get(calendar_id, {})
    errors = calendar.get("errors")
    if errors:
        reasons = ", ".join(e.get("reason", "unknown") for e in errors)
        raise UpstreamError(PROVIDER, f"freebusy error for {calendar_id}: {reasons}")
    return [{"start": b["start"], "end": b["end"]} for b in calendar.get("busy", [])]


def refresh_access_token(refresh_token: str) -> Dict[str, Any]:
    """Exchange a refresh token for a new access token.

    Returns:
        Dict with 'access_token', 'refresh_token' (possibly rotated) and
        'expires_at' (aware UTC datetime or None).

    Raises:
        TokenRefreshError: Google rejected the refresh token.
        UpstreamError: any other failure talking to the token endpoint.
    """
    creds = Credentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=TOKEN_URI,
        client_id=os.environ.get("GOOGLE_CLIENT_ID"),
        client_secret=os.environ.get("GOOGLE_CLIENT_SECRET"),
        scopes=SCOPES,
    )
    try:
        creds.refresh(Request())
    except RefreshError as exc:
        raise TokenRefreshError(PROVIDER, f"refresh token rejected: {exc}") from exc
    except Exception as exc:
        raise UpstreamError(PROVIDER, f"token refresh failed: {exc}") from exc

    expiry = creds.expiry  # google-auth keeps this naive UTC
    return {
        "access_token": creds.token,
        "refresh_token": creds.refresh_token,
        "expires_at": expiry.replace(tzinfo=timezone.utc) if expiry else None,
    }


def token_is_fresh(connection: Any, now: Optional[datetime] = None) -> bool:
    """True if the stored access token stays valid for more than a minute.

    A token stored without an expiry is assumed valid.
    """
    if not connection.access_token:
        return False
    expires_at = connection.token_expires_at
    if expires_at is None:
        return True
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at - (now or datetime.now(timezone.utc)) > EXPIRY_SKEW
