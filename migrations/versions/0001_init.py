"""Initial schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    conn = op.get_bind()
    dialect = conn.dialect.name if conn is not None else "sqlite"
    false_def = sa.text("FALSE") if dialect == "postgresql" else sa.text("0")
    true_def = sa.text("TRUE") if dialect == "postgresql" else sa.text("1")
    op.create_table(
        "feature_flags",
        sa.Column("key", sa.String(length=64), primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("toggled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "user_preferences",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "settings_audit",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_settings_audit_user_id", "settings_audit", ["user_id"])
    op.create_table(
        "consent_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("field", sa.String(length=64), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_consent_log_user_id", "consent_log", ["user_id"])
    op.create_table(
        "telemetry_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_telemetry_events_name", "telemetry_events", ["name"])
    op.create_index("idx_telemetry_events_user", "telemetry_events", ["user_id"])
    op.create_table(
        "settings_deletion_queue",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="scheduled"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "settings_export_queue",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="completed"),
        sa.Column("artifact", sa.JSON(), nullable=False),
        sa.Column("download_token", sa.String(length=128), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_settings_export_queue_user_id", "settings_export_queue", ["user_id"])
    op.create_table(
        "plugin_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("creator", sa.JSON(), nullable=False),
        sa.Column("consent_given", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("extra", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_plugin_events_tenant_id", "plugin_events", ["tenant_id"])


def downgrade() -> None:
    op.drop_index("ix_plugin_events_tenant_id", table_name="plugin_events")
    op.drop_table("plugin_events")
    op.drop_index("ix_settings_export_queue_user_id", table_name="settings_export_queue")
    op.drop_table("settings_export_queue")
    op.drop_table("settings_deletion_queue")
    op.drop_index("idx_telemetry_events_user", table_name="telemetry_events")
    op.drop_index("idx_telemetry_events_name", table_name="telemetry_events")
    op.drop_table("telemetry_events")
    op.drop_index("ix_consent_log_user_id", table_name="consent_log")
    op.drop_table("consent_log")
    op.drop_index("ix_settings_audit_user_id", table_name="settings_audit")
    op.drop_table("settings_audit")
    op.drop_table("user_preferences")
    op.drop_table("feature_flags")
