"""Free/busy and slot suggestion schemas."""
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field


class BusyPeriod(BaseModel):
    start: str  # ISO 8601
    end: str    # ISO 8601


class AvailableSlot(BaseModel):
    start_at: str  # "YYYY-MM-DDTHH:MM", local, no offset
    end_at: str
    day_of_week: int  # 0=Sunday ... 6=Saturday
    date_key: str  # "YYYY-MM-DD", grouping only


class SuggestResult(BaseModel):
    slots: List[AvailableSlot] = Field(default_factory=list)
    connected_user_ids: List[UUID] = Field(default_factory=list)
    disconnected_user_ids: List[UUID] = Field(default_factory=list)
    failed_user_ids: List[UUID] = Field(default_factory=list)
    rejected_user_ids: List[UUID] = Field(default_factory=list)
