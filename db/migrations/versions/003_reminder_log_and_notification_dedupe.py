"""Add reminder audit log and unique dedupe_key on notifications.

Revision ID: 003
Revises: 002
Create Date: 2026-10-12
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "scheduling_reminder_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("proposal_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reminder_type", sa.Text, nullable=False),
        sa.Column("target_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sent_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("reminder_type IN ('manual')", name="ck_reminder_type"),
        sa.UniqueConstraint(
            "proposal_id", "reminder_type", "target_user_id", name="uq_reminder_log_target"
        ),
        sa.ForeignKeyConstraint(
            ["proposal_id"], ["scheduling.scheduling_proposals.id"],
            name="fk_reminder_log_proposal", ondelete="CASCADE",
        ),
        schema="scheduling",
    )

    op.execute(
        """
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1 FROM pg_constraint
                WHERE conname = 'uq_notification_dedupe_key'
                  AND conrelid = 'core.notifications'::regclass
            ) THEN
                ALTER TABLE core.notifications
                    ADD CONSTRAINT uq_notification_dedupe_key UNIQUE (dedupe_key);
            END IF;
        END;
        $$;
        """
    )


def downgrade() -> None:
    op.execute(
        "ALTER TABLE core.notifications DROP CONSTRAINT IF EXISTS uq_notification_dedupe_key;"
    )
    op.drop_table("scheduling_reminder_logs", schema="scheduling")
