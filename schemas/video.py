"""Video-conference provisioning schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Participant(BaseModel):
    email: str
    name: str = ""


class CreateMeetingParams(BaseModel):
    title: str
    start_at: datetime
    end_at: datetime
    participants: List[Participant] = Field(default_factory=list)
    idempotency_key: str  # stable per (proposal, slot) so retries do not duplicate
    description: Optional[str] = None
    created_by_user_id: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        return round((self.end_at - self.start_at).total_seconds() / 60)


class VideoMeetingResult(BaseModel):
    meeting_url: str
    external_meeting_id: str
    host_url: Optional[str] = None
    dial_in: Optional[str] = None
