"""Initial schema - validators, evidence, validation_requests, validator_assignments.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "validators",
        sa.Column("validator_id", sa.Text(), primary_key=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("specializations", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("max_open_assignments", sa.Integer(), nullable=True),
        sa.Column("total_validations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("optimal_validations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("standard_validations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("delayed_validations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("timeout_validations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_response_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sla_score", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("last_activity_date", sa.TIMESTAMP(timezone=True), nullable=True),
    )

    op.create_table(
        "evidence",
        sa.Column("evidence_id", sa.Text(), primary_key=True),
        sa.Column("challenge_id", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("required_specialization", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(20), nullable=False, server_default="STANDARD"),
    )

    op.create_table(
        "validation_requests",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("evidence_id", sa.Text(), nullable=False, unique=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("challenge_id", sa.Text(), nullable=False),
        sa.Column("required_specialization", sa.Text(), nullable=True),
        sa.Column("declared_priority", sa.String(20), nullable=False),
        sa.Column("request_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("assigned_validator_id", sa.Text(), nullable=True),
        sa.Column("original_validator_id", sa.Text(), nullable=True),
        sa.Column("backup_validator_ids", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("backup_cursor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_sla_level", sa.String(20), nullable=False),
        sa.Column("escalation_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_redistributed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("urgency_boost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("escalated_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("verdict", sa.String(40), nullable=True),
        sa.Column("completed_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("actual_response_hours", sa.Float(), nullable=True),
        sa.Column("failed_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("requeue_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_validation_requests_status", "validation_requests", ["status"])

    op.create_table(
        "validator_assignments",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column(
            "request_id", sa.UUID(), sa.ForeignKey("validation_requests.id"), nullable=False
        ),
        sa.Column("validator_id", sa.Text(), nullable=False),
        sa.Column("evidence_id", sa.Text(), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False),
        sa.Column("sla_level", sa.String(20), nullable=False),
        sa.Column("assigned_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("deadline_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("verdict", sa.String(40), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("completed_date", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_validator_assignments_request_id", "validator_assignments", ["request_id"]
    )
    op.create_index(
        "ix_validator_assignments_validator_id", "validator_assignments", ["validator_id"]
    )
    # At most one OPEN assignment per request
    op.create_index(
        "uq_validator_assignments_one_open",
        "validator_assignments",
        ["request_id"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
    )
    # Sweep scan: OPEN assignments by deadline
    op.create_index(
        "ix_validator_assignments_open_deadline",
        "validator_assignments",
        ["deadline_at"],
        postgresql_where=sa.text("status = 'OPEN'"),
    )


def downgrade() -> None:
    op.drop_table("validator_assignments")
    op.drop_table("validation_requests")
    op.drop_table("evidence")
    op.drop_table("validators")
