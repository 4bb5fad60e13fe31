"""create users, machines, inspections and auth tables

Revision ID: 20261019_llf_core
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "20261019_llf_core"
down_revision = None
branch_labels = None
depends_on = None


def _observation_columns(dimension: str):
    return [
        sa.Column(f"{dimension}_status", sa.String(length=16), nullable=False),
        sa.Column(f"{dimension}_notes", sa.Text(), nullable=False, server_default=""),
        sa.Column(f"{dimension}_attachment", sa.String(length=500), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("section", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("area", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "machines",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("section", sa.String(length=32), nullable=False),
        sa.Column("sub_category", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("image_ref", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("inspection_frequency", sa.String(length=16), nullable=False),
        sa.Column("last_inspection", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_inspection_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_machines_name", "machines", ["name"])
    op.create_index("ix_machines_section", "machines", ["section"])
    op.create_index("ix_machines_next_inspection_due", "machines", ["next_inspection_due"])

    op.create_table(
        "inspections",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("machine_id", sa.String(length=36), nullable=False),
        sa.Column("inspected_by", sa.String(length=36), nullable=False),
        sa.Column("inspection_date", sa.DateTime(timezone=True), nullable=False),
        *_observation_columns("look"),
        *_observation_columns("listen"),
        *_observation_columns("feel"),
        sa.Column("has_abnormality", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("abnormality_status", sa.String(length=16), nullable=False),
        sa.Column("abnormality_closed_by", sa.String(length=36), nullable=True),
        sa.Column("abnormality_closed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("abnormality_resolution_notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("abnormality_resolution_attachment", sa.String(length=500), nullable=True),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_inspections_machine_id", "inspections", ["machine_id"])
    op.create_index("ix_inspections_inspected_by", "inspections", ["inspected_by"])

    op.create_table(
        "credentials",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_table(
        "password_resets",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_password_resets_user_id", "password_resets", ["user_id"])


def downgrade() -> None:
    op.drop_table("password_resets")
    op.drop_table("sessions")
    op.drop_table("credentials")
    op.drop_table("inspections")
    op.drop_table("machines")
    op.drop_table("users")
