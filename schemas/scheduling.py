"""Scheduling proposal schemas — enums, request payloads, read models."""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ProposalStatus(str, Enum):
    OPEN = "open"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RespondentSide(str, Enum):
    CLIENT = "client"
    INTERNAL = "internal"


class SlotResponseType(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE_BUT_PROCEED = "unavailable_but_proceed"
    UNAVAILABLE = "unavailable"


# Responses that clear a required respondent for a slot
ACCEPTING_RESPONSES = (
    SlotResponseType.AVAILABLE,
    SlotResponseType.UNAVAILABLE_BUT_PROCEED,
)


class VideoProviderName(str, Enum):
    GOOGLE_MEET = "google_meet"
    ZOOM = "zoom"
    TEAMS = "teams"


class ReminderType(str, Enum):
    MANUAL = "manual"


class SchedulingAction(str, Enum):
    READ = "read"
    RESPOND = "respond"
    WRITE = "write"
    MANAGE = "manage"


MIN_SLOTS = 2
MAX_SLOTS = 5
MAX_RESPONDENTS = 50


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SlotInput(BaseModel):
    start_at: datetime
    end_at: datetime

    @field_validator("start_at", "end_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "SlotInput":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class RespondentInput(BaseModel):
    user_id: UUID
    side: RespondentSide
    is_required: bool = True


class ProposalCreate(BaseModel):
    """Validated input for a new proposal.

    The client-respondent rule lives here rather than in the database so it
    holds regardless of what the storage layer would accept.
    """

    space_id: UUID
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    duration_minutes: int = Field(ge=15, le=480)
    slots: List[SlotInput] = Field(min_length=MIN_SLOTS, max_length=MAX_SLOTS)
    respondents: List[RespondentInput] = Field(min_length=1, max_length=MAX_RESPONDENTS)
    expires_at: Optional[datetime] = None
    video_provider: Optional[VideoProviderName] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("expires_at")
    @classmethod
    def _expiry_in_future(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        value = ensure_utc(value)
        if value <= datetime.now(timezone.utc):
            raise ValueError("expires_at must be in the future")
        return value

    @model_validator(mode="after")
    def _aggregate_rules(self) -> "ProposalCreate":
        if not any(r.side == RespondentSide.CLIENT for r in self.respondents):
            raise ValueError("at least one client respondent is required")
        user_ids = [r.user_id for r in self.respondents]
        if len(set(user_ids)) != len(user_ids):
            raise ValueError("a user may be listed as respondent only once")
        now = datetime.now(timezone.utc)
        if any(slot.start_at <= now for slot in self.slots):
            raise ValueError("slot start times must be in the future")
        return self


class ResponseInput(BaseModel):
    slot_id: UUID
    response: SlotResponseType


class ResponseBatch(BaseModel):
    responses: List[ResponseInput] = Field(min_length=1, max_length=MAX_SLOTS)

    @model_validator(mode="after")
    def _unique_slots(self) -> "ResponseBatch":
        slot_ids = [r.slot_id for r in self.responses]
        if len(set(slot_ids)) != len(slot_ids):
            raise ValueError("duplicate slot_id in responses")
        return self


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


class SlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    start_at: datetime
    end_at: datetime
    slot_order: int


class RespondentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    side: RespondentSide
    is_required: bool


class ProposalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    space_id: UUID
    title: str
    description: Optional[str] = None
    duration_minutes: int
    status: ProposalStatus
    expires_at: Optional[datetime] = None
    video_provider: Optional[VideoProviderName] = None
    confirmed_slot_id: Optional[UUID] = None
    confirmed_meeting_id: Optional[UUID] = None
    confirmed_at: Optional[datetime] = None
    meeting_url: Optional[str] = None
    external_meeting_id: Optional[str] = None
    created_by: UUID
    created_at: Optional[datetime] = None
    slots: List[SlotOut] = Field(default_factory=list)
    respondents: List[RespondentOut] = Field(default_factory=list)


class ProposalSummaryOut(ProposalOut):
    respondent_count: int = 0
    slot_count: int = 0
    response_count: int = 0


class MyProposalOut(ProposalOut):
    """A proposal seen from one respondent's side."""

    my_respondent_id: UUID
    answered_slots: int = 0
    total_slots: int = 0
    has_responded: bool = False  # every slot answered


class SlotResponseOut(BaseModel):
    respondent_id: UUID
    user_id: UUID
    display_name: str = ""
    side: RespondentSide
    response: SlotResponseType
    responded_at: datetime


class SlotDetailOut(SlotOut):
    responses: List[SlotResponseOut] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)
    is_confirmable: bool = False


class RespondentDetailOut(RespondentOut):
    display_name: str = ""
    has_responded: bool = False


class ResponsesSummary(BaseModel):
    respondent_count: int
    responded_count: int
    pending_user_ids: List[UUID] = Field(default_factory=list)
    confirmable_slot_ids: List[UUID] = Field(default_factory=list)


class ProposalResponsesOut(BaseModel):
    proposal: ProposalOut
    summary: ResponsesSummary
    respondents: List[RespondentDetailOut]
    slots: List[SlotDetailOut]


class SubmitResponsesResult(BaseModel):
    updated_count: int


class ConfirmResult(BaseModel):
    meeting_id: UUID
    slot_start: datetime
    slot_end: datetime
    meeting_url: Optional[str] = None
    external_meeting_id: Optional[str] = None
    video_error: Optional[str] = None  # set when provisioning failed after commit


class ReminderResult(BaseModel):
    sent_count: int
    target_user_ids: List[UUID] = Field(default_factory=list)
    new_notification_count: int = 0
