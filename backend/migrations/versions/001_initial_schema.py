"""Initial schema — users and subscriptions.

Revision: 001_initial_schema
Created:  2026-10-18

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

ON DELETE policies:
  subscriptions.subscriber_id → CASCADE
  subscriptions.channel_id    → CASCADE
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=False),
        sa.Column("avatar", sa.String(length=500), nullable=True),
        sa.Column("cover_image", sa.String(length=500), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
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
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )
    op.create_index("idx_users_username", "users", ["username"])
    op.create_index("idx_users_full_name", "users", ["full_name"])

    # ── subscriptions ──────────────────────────────────────────────────────
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subscriber_id", sa.Integer(), nullable=False),
        sa.Column("channel_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_subscriptions"),
        sa.ForeignKeyConstraint(
            ["subscriber_id"],
            ["users.id"],
            name="fk_subscriptions_subscriber",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["channel_id"],
            ["users.id"],
            name="fk_subscriptions_channel",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "subscriber_id",
            "channel_id",
            name="uq_subscriptions_subscriber_channel",
        ),
        sa.CheckConstraint(
            "subscriber_id <> channel_id",
            name="ck_subscriptions_not_self",
        ),
    )
    op.create_index("idx_subscriptions_subscriber", "subscriptions", ["subscriber_id"])
    op.create_index("idx_subscriptions_channel", "subscriptions", ["channel_id"])


def downgrade() -> None:
    op.drop_index("idx_subscriptions_channel", table_name="subscriptions")
    op.drop_index("idx_subscriptions_subscriber", table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_index("idx_users_full_name", table_name="users")
    op.drop_index("idx_users_username", table_name="users")
    op.drop_table("users")
