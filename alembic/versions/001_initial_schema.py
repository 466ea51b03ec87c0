"""Initial schema — users, groups, group_members, group_member_history, watches, watch_groups

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18

Enum columns are stored as VARCHAR (native_enum=False on the models), so no
Postgres enum types are created here.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, comment="Primary key"),
        sa.Column("username", sa.String(64), nullable=False, comment="Display name"),
        sa.Column("email", sa.String(255), nullable=True, comment="Email address"),
        sa.Column("password_hash", sa.String(128), nullable=True, comment="bcrypt hash checked before deletion requests"),
        sa.Column("is_premium", sa.BOOLEAN(), server_default="false", nullable=False),
        sa.Column("share_watches", sa.BOOLEAN(), server_default="true", nullable=False),
        sa.Column("share_ratings", sa.BOOLEAN(), server_default="true", nullable=False),
        sa.Column("share_notes", sa.BOOLEAN(), server_default="false", nullable=False),
        sa.Column(
            "account_status",
            sa.String(32),
            server_default="active",
            nullable=False,
            comment="active | deactivated | pending_deletion | deleted",
        ),
        sa.Column("deactivated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("deletion_requested_at", sa.TIMESTAMP(timezone=True), nullable=True, comment="Grace period anchor"),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("pending_group_actions", sa.JSON(), nullable=True, comment="Ordered disposition directives"),
        sa.Column("row_version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_account_status", "users", ["account_status"])

    # --- groups ---
    op.create_table(
        "groups",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False, comment="Current owner"),
        sa.Column("is_deleted", sa.BOOLEAN(), server_default="false", nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_groups_created_by_id", "groups", ["created_by_id"])

    # --- group_members ---
    op.create_table(
        "group_members",
        sa.Column("group_id", sa.Uuid(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(32), server_default="member", nullable=False, comment="member | admin | creator"),
        sa.Column("joined_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("group_id", "user_id"),
    )
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])

    # --- group_member_history (append-only) ---
    op.create_table(
        "group_member_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("group_id", sa.Uuid(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.String(32), nullable=False, comment="added | removed | role_changed | left"),
        sa.Column("actor_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True, comment="NULL for system actions"),
        sa.Column("previous_role", sa.String(32), nullable=True),
        sa.Column("new_role", sa.String(32), nullable=True),
        sa.Column("timestamp", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_group_member_history_group_id", "group_member_history", ["group_id"])

    # --- watches ---
    op.create_table(
        "watches",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("movie_id", sa.INTEGER(), nullable=False),
        sa.Column("watched_date", sa.DATE(), nullable=False),
        sa.Column("rating", sa.INTEGER(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_private", sa.BOOLEAN(), server_default="false", nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("rating IS NULL OR (rating BETWEEN 1 AND 10)", name="ck_watches_rating_range"),
    )
    op.create_index("ix_watches_user_id_watched_date", "watches", ["user_id", "watched_date"])

    # --- watch_groups ---
    op.create_table(
        "watch_groups",
        sa.Column("watch_id", sa.Uuid(), sa.ForeignKey("watches.id"), nullable=False),
        sa.Column("group_id", sa.Uuid(), sa.ForeignKey("groups.id"), nullable=False),
        sa.PrimaryKeyConstraint("watch_id", "group_id"),
    )
    op.create_index("ix_watch_groups_group_id", "watch_groups", ["group_id"])


def downgrade() -> None:
    op.drop_index("ix_watch_groups_group_id", table_name="watch_groups")
    op.drop_table("watch_groups")
    op.drop_index("ix_watches_user_id_watched_date", table_name="watches")
    op.drop_table("watches")
    op.drop_index("ix_group_member_history_group_id", table_name="group_member_history")
    op.drop_table("group_member_history")
    op.drop_index("ix_group_members_user_id", table_name="group_members")
    op.drop_table("group_members")
    op.drop_index("ix_groups_created_by_id", table_name="groups")
    op.drop_table("groups")
    op.drop_index("ix_users_account_status", table_name="users")
    op.drop_table("users")
