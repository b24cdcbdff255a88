"""Create users, friends, friend requests and escalation tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=False),
        sa.Column("phone_number_hash", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("profile_image_url", sa.String(length=2048), nullable=True),
        sa.Column("push_token", sa.String(length=4096), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phone_number"),
    )
    op.create_index(
        op.f("ix_users_phone_number_hash"), "users", ["phone_number_hash"], unique=True
    )

    op.create_table(
        "friends",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("edge_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("friend_user_id", sa.Uuid(), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("profile_image_url", sa.String(length=2048), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["friend_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "friend_user_id", name="uq_friend_pair"),
        sa.UniqueConstraint("edge_id", "user_id", name="uq_friend_edge_side"),
        sa.CheckConstraint("user_id != friend_user_id", name="ck_no_self_friend"),
    )
    op.create_index(op.f("ix_friends_edge_id"), "friends", ["edge_id"])
    op.create_index(op.f("ix_friends_user_id"), "friends", ["user_id"])
    op.create_index(op.f("ix_friends_friend_user_id"), "friends", ["friend_user_id"])

    op.create_table(
        "friend_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("from_user_id", sa.Uuid(), nullable=False),
        sa.Column("to_user_id", sa.Uuid(), nullable=False),
        sa.Column("from_display_name", sa.String(length=100), nullable=False),
        sa.Column("from_profile_image_url", sa.String(length=2048), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["from_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_friend_requests_to_status", "friend_requests", ["to_user_id", "status"]
    )
    op.create_index(
        "ix_friend_requests_from_status", "friend_requests", ["from_user_id", "status"]
    )

    op.create_table(
        "escalation_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("alarm_id", sa.String(length=128), nullable=False),
        sa.Column("trigger_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("escalation_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_escalation_events_user_id"), "escalation_events", ["user_id"])
    op.create_index(
        op.f("ix_escalation_events_escalated_at"), "escalation_events", ["escalated_at"]
    )
    # Sweep due-set scan
    op.create_index(
        "ix_escalation_events_status_deadline",
        "escalation_events",
        ["status", "escalation_time"],
    )
    op.create_index(
        "ix_escalation_events_user_trigger",
        "escalation_events",
        ["user_id", "trigger_time"],
    )

    op.create_table(
        "escalation_recipients",
        sa.Column("event_id", sa.Uuid(), nullable=False),
        sa.Column("friend_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["event_id"], ["escalation_events.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("event_id", "friend_id"),
    )
    # Per-friend rate limit lookups
    op.create_index(
        "ix_escalation_recipients_friend",
        "escalation_recipients",
        ["friend_id", "event_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_escalation_recipients_friend", table_name="escalation_recipients")
    op.drop_table("escalation_recipients")
    op.drop_index("ix_escalation_events_user_trigger", table_name="escalation_events")
    op.drop_index("ix_escalation_events_status_deadline", table_name="escalation_events")
    op.drop_index(op.f("ix_escalation_events_escalated_at"), table_name="escalation_events")
    op.drop_index(op.f("ix_escalation_events_user_id"), table_name="escalation_events")
    op.drop_table("escalation_events")
    op.drop_index("ix_friend_requests_from_status", table_name="friend_requests")
    op.drop_index("ix_friend_requests_to_status", table_name="friend_requests")
    op.drop_table("friend_requests")
    op.drop_index(op.f("ix_friends_friend_user_id"), table_name="friends")
    op.drop_index(op.f("ix_friends_user_id"), table_name="friends")
    op.drop_index(op.f("ix_friends_edge_id"), table_name="friends")
    op.drop_table("friends")
    op.drop_index(op.f("ix_users_phone_number_hash"), table_name="users")
    op.drop_table("users")
