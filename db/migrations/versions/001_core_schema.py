"""Core schema: organizations, spaces, profiles, memberships, integrations, notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-05

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS core")

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        schema="core",
    )

    op.create_table(
        "spaces",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["org_id"], ["core.organizations.id"], name="fk_space_org", ondelete="CASCADE"),
        schema="core",
    )

    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("display_name", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        schema="core",
    )

    op.create_table(
        "space_memberships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("space_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.Text, nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "role IN ('admin','editor','member','client','viewer')",
            name="ck_membership_role",
        ),
        sa.UniqueConstraint("space_id", "user_id", name="uq_membership_space_user"),
        sa.ForeignKeyConstraint(["space_id"], ["core.spaces.id"], name="fk_membership_space", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["core.profiles.id"], name="fk_membership_user", ondelete="CASCADE"),
        schema="core",
    )

    op.create_table(
        "integration_connections",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider", sa.Text, nullable=False),
        sa.Column("owner_type", sa.Text, nullable=False, server_default="user"),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("access_token", sa.Text, nullable=True),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_refreshed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "provider IN ('google_calendar','zoom','teams')", name="ck_connection_provider"
        ),
        sa.CheckConstraint("owner_type IN ('user','org')", name="ck_connection_owner_type"),
        sa.CheckConstraint(
            "status IN ('active','revoked','error')", name="ck_connection_status"
        ),
        schema="core",
    )

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("space_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("dedupe_key", sa.Text, nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["core.profiles.id"], name="fk_notification_user", ondelete="CASCADE"),
        schema="core",
    )

    op.create_index(
        "ix_integration_connections_owner",
        "integration_connections",
        ["owner_id", "provider"],
        schema="core",
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], schema="core")


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications", schema="core")
    op.drop_index(
        "ix_integration_connections_owner", table_name="integration_connections", schema="core"
    )
    # Drop in reverse dependency order
    op.drop_table("notifications", schema="core")
    op.drop_table("integration_connections", schema="core")
    op.drop_table("space_memberships", schema="core")
    op.drop_table("profiles", schema="core")
    op.drop_table("spaces", schema="core")
    op.drop_table("organizations", schema="core")
