"""SQLAlchemy 2.0 ORM models for the scheduling proposal engine.

Covers 12 tables across 2 schemas:
  - core: organizations, spaces, profiles, space_memberships,
          integration_connections, notifications
  - scheduling: scheduling_proposals, proposal_slots, proposal_respondents,
                slot_responses, meetings, scheduling_reminder_logs
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    UUID,
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    JSON,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from schemas.scheduling import (
    ProposalStatus,
    ReminderType,
    RespondentSide,
    SlotResponseType,
    VideoProviderName,
)


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


def _in_check(column: str, values, nullable: bool = False) -> str:
    """Build a CHECK expression restricting ``column`` to enum values."""
    allowed = ", ".join(f"'{v.value if hasattr(v, 'value') else v}'" for v in values)
    expr = f"{column} IN ({allowed})"
    if nullable:
        expr = f"{column} IS NULL OR {expr}"
    return expr


MEMBERSHIP_ROLES = ("admin", "editor", "member", "client", "viewer")
CONNECTION_PROVIDERS = ("google_calendar", "zoom", "teams")
CONNECTION_STATUSES = ("active", "revoked", "error")
MEETING_STATUSES = ("scheduled", "cancelled", "completed")


# ===========================================================================
# Schema: core
# ===========================================================================


class Organization(Base):
    """core.organizations — tenant owning spaces."""

    __tablename__ = "organizations"
    __table_args__ = {"schema": "core"}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    spaces: Mapped[list["Space"]] = relationship(
        "Space", back_populates="organization", cascade="all, delete-orphan"
    )


class Space(Base):
    """core.spaces — project workspace shared between internal staff and clients."""

    __tablename__ = "spaces"
    __table_args__ = {"schema": "core"}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="spaces"
    )
    memberships: Mapped[list["SpaceMembership"]] = relationship(
        "SpaceMembership", back_populates="space", cascade="all, delete-orphan"
    )


class Profile(Base):
    """core.profiles — user identity and contact details."""

    __tablename__ = "profiles"
    __table_args__ = {"schema": "core"}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class SpaceMembership(Base):
    """core.space_memberships — a user's role within a space."""

    __tablename__ = "space_memberships"
    __table_args__ = (
        CheckConstraint(_in_check("role", MEMBERSHIP_ROLES), name="ck_membership_role"),
        UniqueConstraint("space_id", "user_id", name="uq_membership_space_user"),
        {"schema": "core"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    space_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.spaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default="member")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    space: Mapped["Space"] = relationship("Space", back_populates="memberships")


class IntegrationConnection(Base):
    """core.integration_connections — OAuth connections to calendar / video providers."""

    __tablename__ = "integration_connections"
    __table_args__ = (
        CheckConstraint(_in_check("provider", CONNECTION_PROVIDERS), name="ck_connection_provider"),
        CheckConstraint("owner_type IN ('user', 'org')", name="ck_connection_owner_type"),
        CheckConstraint(_in_check("status", CONNECTION_STATUSES), name="ck_connection_status"),
        {"schema": "core"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    provider: Mapped[str] = mapped_column(Text, nullable=False)
    owner_type: Mapped[str] = mapped_column(Text, nullable=False, server_default="user")
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="active")
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_refreshed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Notification(Base):
    """core.notifications — in-app notification inbox; dedupe_key makes inserts idempotent."""

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_notification_dedupe_key"),
        {"schema": "core"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    space_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    dedupe_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# ===========================================================================
# Schema: scheduling
# ===========================================================================


class SchedulingProposal(Base):
    """scheduling.scheduling_proposals — a meeting request with candidate slots.

    status moves only open -> confirmed | cancelled | expired. ``version`` is
    bumped by every transition so conditional writes can detect races.
    """

    __tablename__ = "scheduling_proposals"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(_in_check("status", ProposalStatus), name="ck_proposal_status"),
        CheckConstraint(
            "(status = 'confirmed') = (confirmed_slot_id IS NOT NULL)",
            name="ck_proposal_confirmed_slot",
        ),
        CheckConstraint(
            _in_check("video_provider", VideoProviderName, nullable=True),
            name="ck_proposal_video_provider",
        ),
        CheckConstraint(
            "duration_minutes BETWEEN 15 AND 480", name="ck_proposal_duration"
        ),
        {"schema": "scheduling"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    space_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.spaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=ProposalStatus.OPEN.value, server_default="open"
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    video_provider: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Plain UUIDs: the slot/meeting FKs would make the tables mutually dependent.
    confirmed_slot_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    confirmed_meeting_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    confirmed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    meeting_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_meeting_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    slots: Mapped[list["ProposalSlot"]] = relationship(
        "ProposalSlot",
        back_populates="proposal",
        cascade="all, delete-orphan",
        order_by="ProposalSlot.slot_order",
    )
    respondents: Mapped[list["ProposalRespondent"]] = relationship(
        "ProposalRespondent", back_populates="proposal", cascade="all, delete-orphan"
    )


class ProposalSlot(Base):
    """scheduling.proposal_slots — one candidate time range; immutable after creation."""

    __tablename__ = "proposal_slots"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_slot_range"),
        UniqueConstraint("proposal_id", "slot_order", name="uq_slot_proposal_order"),
        {"schema": "scheduling"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scheduling.scheduling_proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    slot_order: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    proposal: Mapped["SchedulingProposal"] = relationship(
        "SchedulingProposal", back_populates="slots"
    )
    responses: Mapped[list["SlotResponse"]] = relationship(
        "SlotResponse", back_populates="slot", cascade="all, delete-orphan"
    )


class ProposalRespondent(Base):
    """scheduling.proposal_respondents — a user invited to answer a proposal."""

    __tablename__ = "proposal_respondents"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(_in_check("side", RespondentSide), name="ck_respondent_side"),
        UniqueConstraint("proposal_id", "user_id", name="uq_respondent_proposal_user"),
        {"schema": "scheduling"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scheduling.scheduling_proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    side: Mapped[str] = mapped_column(Text, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, server_default="true", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    proposal: Mapped["SchedulingProposal"] = relationship(
        "SchedulingProposal", back_populates="respondents"
    )
    responses: Mapped[list["SlotResponse"]] = relationship(
        "SlotResponse", back_populates="respondent", cascade="all, delete-orphan"
    )


class SlotResponse(Base):
    """scheduling.slot_responses — one respondent's answer for one slot.

    Absence of a row means "pending", which is distinct from 'unavailable'.
    """

    __tablename__ = "slot_responses"
    __table_args__ = (
        CheckConstraint(_in_check("response", SlotResponseType), name="ck_slot_response"),
        UniqueConstraint("slot_id", "respondent_id", name="uq_slot_response_slot_respondent"),
        {"schema": "scheduling"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    slot_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scheduling.proposal_slots.id", ondelete="CASCADE"),
        nullable=False,
    )
    respondent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scheduling.proposal_respondents.id", ondelete="CASCADE"),
        nullable=False,
    )
    response: Mapped[str] = mapped_column(Text, nullable=False)
    responded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    slot: Mapped["ProposalSlot"] = relationship("ProposalSlot", back_populates="responses")
    respondent: Mapped["ProposalRespondent"] = relationship(
        "ProposalRespondent", back_populates="responses"
    )


class Meeting(Base):
    """scheduling.meetings — the meeting created when a proposal is confirmed."""

    __tablename__ = "meetings"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(_in_check("status", MEETING_STATUSES), name="ck_meeting_status"),
        CheckConstraint(
            _in_check("video_provider", VideoProviderName, nullable=True),
            name="ck_meeting_video_provider",
        ),
        {"schema": "scheduling"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    space_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("core.spaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    proposal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scheduling.scheduling_proposals.id", ondelete="SET NULL"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="scheduled")
    video_provider: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meeting_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_meeting_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class SchedulingReminderLog(Base):
    """scheduling.scheduling_reminder_logs — best-effort audit of reminders sent."""

    __tablename__ = "scheduling_reminder_logs"
    __table_args__ = (
        CheckConstraint(_in_check("reminder_type", ReminderType), name="ck_reminder_type"),
        UniqueConstraint(
            "proposal_id", "reminder_type", "target_user_id", name="uq_reminder_log_target"
        ),
        {"schema": "scheduling"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scheduling.scheduling_proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    reminder_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    sent_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
