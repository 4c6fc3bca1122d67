"""create phase engine tables

Revision ID: c4e2a9b17d03
Revises:
Create Date: 2026-10-17 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c4e2a9b17d03'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create identity mirror, work item, phase assignment, history, access request and workload tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("display_name", sa.String(255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "teams" not in existing_tables:
        op.create_table(
            "teams",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "team_members" not in existing_tables:
        op.create_table(
            "team_members",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("role", sa.String(16), nullable=False, server_default="member"),
            sa.Column("joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("team_id", "user_id", name="uq_team_member"),
        )
        op.create_index("idx_team_members_user", "team_members", ["user_id"])

    if "workspaces" not in existing_tables:
        op.create_table(
            "workspaces",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_workspaces_team", "workspaces", ["team_id"])

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=True),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=True),
            sa.Column("phase", sa.String(32), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        op.create_index("idx_audit_entity", "audit_events", ["entity_type", "entity_id"])
        op.create_index("idx_audit_workspace_created", "audit_events", ["workspace_id", "created_at"])

    if "work_items" not in existing_tables:
        op.create_table(
            "work_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(32), nullable=False),
            sa.Column("phase", sa.String(32), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="not_started"),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("archived_at", sa.DateTime(), nullable=True),
            sa.Column("archived_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        )
        op.create_index("idx_work_items_workspace_phase", "work_items", ["workspace_id", "phase"])
        op.create_index("idx_work_items_workspace_phase_status", "work_items", ["workspace_id", "phase", "status"])
        op.create_index("idx_work_items_team_phase", "work_items", ["team_id", "phase"])
        op.create_index("idx_work_items_type_phase", "work_items", ["type", "phase"])

    if "user_phase_assignments" not in existing_tables:
        op.create_table(
            "user_phase_assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("phase", sa.String(32), nullable=False),
            sa.Column("can_edit", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_lead", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("assigned_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("assigned_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.UniqueConstraint("workspace_id", "user_id", "phase", name="uq_phase_assignment"),
        )
        op.create_index("idx_user_phase_permission", "user_phase_assignments", ["user_id", "workspace_id", "phase", "can_edit"])
        op.create_index("idx_user_phase_leads", "user_phase_assignments", ["workspace_id", "phase", "is_lead"])

    if "phase_assignment_history" not in existing_tables:
        op.create_table(
            "phase_assignment_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("work_item_id", sa.Integer(), sa.ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
            sa.Column("from_phase", sa.String(32), nullable=True),
            sa.Column("to_phase", sa.String(32), nullable=False),
            sa.Column("changed_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("changed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        op.create_index("idx_phase_history_work_item", "phase_assignment_history", ["work_item_id", "changed_at"])
        op.create_index("idx_phase_history_workspace", "phase_assignment_history", ["workspace_id", "changed_at"])
        op.create_index("idx_phase_history_user", "phase_assignment_history", ["changed_by_user_id", "changed_at"])

    if "phase_access_requests" not in existing_tables:
        op.create_table(
            "phase_access_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
            sa.Column("phase", sa.String(32), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("urgency", sa.String(16), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
            sa.Column("expected_duration", sa.String(64), nullable=True),
            sa.Column("requested_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("reviewed_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column("reviewer_notes", sa.Text(), nullable=True),
        )
        op.create_index("idx_access_requests_user", "phase_access_requests", ["user_id", "status"])
        op.create_index("idx_access_requests_workspace", "phase_access_requests", ["workspace_id", "status", "requested_at"])

    if "phase_workload_cache" not in existing_tables:
        op.create_table(
            "phase_workload_cache",
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("phase", sa.String(32), primary_key=True),
            sa.Column("status", sa.String(32), primary_key=True),
            sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
            sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("refreshed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_workload_cache_team", "phase_workload_cache", ["team_id", "phase"])


def downgrade() -> None:
    """Drop all phase engine tables (dependents first)."""
    op.drop_table("phase_workload_cache")
    op.drop_table("phase_access_requests")
    op.drop_table("phase_assignment_history")
    op.drop_table("user_phase_assignments")
    op.drop_table("work_items")
    op.drop_table("audit_events")
    op.drop_table("workspaces")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("users")
