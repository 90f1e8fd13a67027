from .scheduling import (
    ProposalStatus,
    RespondentSide,
    SlotResponseType,
    VideoProviderName,
    ReminderType,
    SchedulingAction,
    ProposalCreate,
    SlotInput,
    RespondentInput,
    ResponseInput,
    ResponseBatch,
    ProposalOut,
    ProposalSummaryOut,
    MyProposalOut,
    ProposalResponsesOut,
    SubmitResponsesResult,
    ConfirmResult,
    ReminderResult,
)
from .availability import BusyPeriod, AvailableSlot, SuggestResult
from .video import Participant, CreateMeetingParams, VideoMeetingResult

__all__ = [
    "ProposalStatus", "RespondentSide", "SlotResponseType", "VideoProviderName",
    "ReminderType", "SchedulingAction",
    "ProposalCreate", "SlotInput", "RespondentInput", "ResponseInput", "ResponseBatch",
    "ProposalOut", "ProposalSummaryOut", "MyProposalOut", "ProposalResponsesOut",
    "SubmitResponsesResult", "ConfirmResult", "ReminderResult",
    "BusyPeriod", "AvailableSlot", "SuggestResult",
    "Participant", "CreateMeetingParams", "VideoMeetingResult",
]
