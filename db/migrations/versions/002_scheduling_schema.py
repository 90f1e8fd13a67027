"""Scheduling schema: proposals, slots, respondents, responses, meetings.

Revision ID: 002
Revises: 001
Create Date: 2026-10-05
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS scheduling")

    op.create_table(
        "scheduling_proposals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("space_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="open"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("video_provider", sa.Text, nullable=True),
        sa.Column("confirmed_slot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("confirmed_meeting_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("meeting_url", sa.Text, nullable=True),
        sa.Column("external_meeting_id", sa.Text, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('open','confirmed','cancelled','expired')", name="ck_proposal_status"
        ),
        sa.CheckConstraint(
            "(status = 'confirmed') = (confirmed_slot_id IS NOT NULL)",
            name="ck_proposal_confirmed_slot",
        ),
        sa.CheckConstraint(
            "video_provider IS NULL OR video_provider IN ('google_meet','zoom','teams')",
            name="ck_proposal_video_provider",
        ),
        sa.CheckConstraint("duration_minutes BETWEEN 15 AND 480", name="ck_proposal_duration"),
        sa.ForeignKeyConstraint(["org_id"], ["core.organizations.id"], name="fk_proposal_org", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["space_id"], ["core.spaces.id"], name="fk_proposal_space", ondelete="CASCADE"),
        schema="scheduling",
    )

    op.create_table(
        "proposal_slots",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("proposal_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("slot_order", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("end_at > start_at", name="ck_slot_range"),
        sa.UniqueConstraint("proposal_id", "slot_order", name="uq_slot_proposal_order"),
        sa.ForeignKeyConstraint(
            ["proposal_id"], ["scheduling.scheduling_proposals.id"],
            name="fk_slot_proposal", ondelete="CASCADE",
        ),
        schema="scheduling",
    )

    op.create_table(
        "proposal_respondents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("proposal_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("side", sa.Text, nullable=False),
        sa.Column("is_required", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("side IN ('client','internal')", name="ck_respondent_side"),
        sa.UniqueConstraint("proposal_id", "user_id", name="uq_respondent_proposal_user"),
        sa.ForeignKeyConstraint(
            ["proposal_id"], ["scheduling.scheduling_proposals.id"],
            name="fk_respondent_proposal", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["core.profiles.id"], name="fk_respondent_user", ondelete="CASCADE"),
        schema="scheduling",
    )

    op.create_table(
        "slot_responses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("slot_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("respondent_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("response", sa.Text, nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "response IN ('available','unavailable_but_proceed','unavailable')",
            name="ck_slot_response",
        ),
        sa.UniqueConstraint("slot_id", "respondent_id", name="uq_slot_response_slot_respondent"),
        sa.ForeignKeyConstraint(
            ["slot_id"], ["scheduling.proposal_slots.id"],
            name="fk_response_slot", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["respondent_id"], ["scheduling.proposal_respondents.id"],
            name="fk_response_respondent", ondelete="CASCADE",
        ),
        schema="scheduling",
    )

    op.create_table(
        "meetings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("space_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("proposal_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="scheduled"),
        sa.Column("video_provider", sa.Text, nullable=True),
        sa.Column("meeting_url", sa.Text, nullable=True),
        sa.Column("external_meeting_id", sa.Text, nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('scheduled','cancelled','completed')", name="ck_meeting_status"
        ),
        sa.CheckConstraint(
            "video_provider IS NULL OR video_provider IN ('google_meet','zoom','teams')",
            name="ck_meeting_video_provider",
        ),
        sa.ForeignKeyConstraint(["org_id"], ["core.organizations.id"], name="fk_meeting_org", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["space_id"], ["core.spaces.id"], name="fk_meeting_space", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["proposal_id"], ["scheduling.scheduling_proposals.id"],
            name="fk_meeting_proposal", ondelete="SET NULL",
        ),
        schema="scheduling",
    )

    op.create_index(
        "ix_scheduling_proposals_space_status",
        "scheduling_proposals",
        ["space_id", "status"],
        schema="scheduling",
    )
    op.create_index(
        "ix_proposal_respondents_user_id", "proposal_respondents", ["user_id"], schema="scheduling"
    )


def downgrade() -> None:
    op.drop_index(
        "ix_proposal_respondents_user_id", table_name="proposal_respondents", schema="scheduling"
    )
    op.drop_index(
        "ix_scheduling_proposals_space_status", table_name="scheduling_proposals", schema="scheduling"
    )
    op.drop_table("meetings", schema="scheduling")
    op.drop_table("slot_responses", schema="scheduling")
    op.drop_table("proposal_respondents", schema="scheduling")
    op.drop_table("proposal_slots", schema="scheduling")
    op.drop_table("scheduling_proposals", schema="scheduling")
