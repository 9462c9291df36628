"""capacity schema

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role = postgresql.ENUM("manager", "team_leader", "team_member", name="user_role", create_type=False)
project_status = postgresql.ENUM(
    "planned", "in_progress", "on_hold", "cancelled", "complete", name="project_status", create_type=False
)
phase_status = postgresql.ENUM(
    "planned", "in_progress", "on_hold", "cancelled", "complete", name="phase_status", create_type=False
)
task_status = postgresql.ENUM("todo", "in_progress", "complete", name="task_status", create_type=False)
assignment_role = postgresql.ENUM("team_leader", "team_member", name="assignment_role", create_type=False)
audit_action = postgresql.ENUM(
    "CREATE", "UPDATE", "DELETE", "STATUS_CHANGE", name="audit_action", create_type=False
)

ENUM_TYPES = (user_role, project_status, phase_status, task_status, assignment_role, audit_action)


def upgrade() -> None:
    for enum_type in ENUM_TYPES:
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "team_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("estimated_end_date", sa.Date(), nullable=False),
        sa.Column("actual_end_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_projects_start_date", "projects", ["start_date"])

    op.create_table(
        "phases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phase_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", phase_status, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("estimated_end_date", sa.Date(), nullable=True),
        sa.Column("actual_end_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("duration >= 0", name="ck_phases_duration_non_negative"),
    )
    op.create_index("ix_phases_project_id", "phases", ["project_id"])

    op.create_table(
        "tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("phase_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("phases.id"), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", task_status, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column(
            "assigned_to_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("team_members.id"),
            nullable=True,
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
    )
    op.create_index("ix_tasks_phase_id", "tasks", ["phase_id"])
    op.create_index("ix_tasks_assigned_to_id", "tasks", ["assigned_to_id"])

    op.create_table(
        "assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("phase_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("phases.id"), nullable=False),
        sa.Column(
            "team_member_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("team_members.id"),
            nullable=False,
        ),
        sa.Column("role", assignment_role, nullable=False),
        sa.Column("working_percentage", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "working_percentage >= 0 AND working_percentage <= 100",
            name="ck_assignments_working_percentage_range",
        ),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_assignments_date_order"),
        sa.UniqueConstraint("phase_id", "team_member_id", "role", name="uq_assignments_phase_member_role"),
    )
    op.create_index("ix_assignments_phase_id", "assignments", ["phase_id"])
    op.create_index("ix_assignments_team_member_id", "assignments", ["team_member_id"])

    op.create_table(
        "audit_log_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("action", audit_action, nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column("actor_role", sa.String(length=32), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_log_entries_entity", "audit_log_entries", ["entity_type", "entity_id"])
    op.create_index("ix_audit_log_entries_actor_id", "audit_log_entries", ["actor_id"])
    op.create_index("ix_audit_log_entries_created_at", "audit_log_entries", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_log_entries_created_at", table_name="audit_log_entries")
    op.drop_index("ix_audit_log_entries_actor_id", table_name="audit_log_entries")
    op.drop_index("ix_audit_log_entries_entity", table_name="audit_log_entries")
    op.drop_table("audit_log_entries")

    op.drop_index("ix_assignments_team_member_id", table_name="assignments")
    op.drop_index("ix_assignments_phase_id", table_name="assignments")
    op.drop_table("assignments")

    op.drop_index("ix_tasks_assigned_to_id", table_name="tasks")
    op.drop_index("ix_tasks_phase_id", table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_phases_project_id", table_name="phases")
    op.drop_table("phases")

    op.drop_index("ix_projects_start_date", table_name="projects")
    op.drop_table("projects")

    op.drop_table("team_members")

    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(op.get_bind(), checkfirst=True)
