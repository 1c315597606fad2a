"""Create users and auth_providers tables.

Revision ID: 001_users_auth_providers
Revises:
Create Date: 2026-10-18

users: one local account per distinct email (real or placeholder).
auth_providers: one token record per (provider, provider_id).
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_users_auth_providers"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_user_email", "users", ["email"], unique=True)

    op.create_table(
        "auth_providers",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("provider_id", sa.String(255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("advertising_account_id", sa.String(255), nullable=True),
        sa.Column("business_accounts", postgresql.JSONB(), nullable=True),
        sa.Column("ad_accounts", postgresql.JSONB(), nullable=True),
        sa.Column("config_id", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "provider", "provider_id", name="uq_auth_providers_provider_id"
        ),
    )
    op.create_index(
        "ix_auth_providers_user_id", "auth_providers", ["user_id"], unique=False
    )
    # list_active filters by user and expiry
    op.create_index(
        "idx_auth_providers_user_expires",
        "auth_providers",
        ["user_id", "expires_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_auth_providers_user_expires", table_name="auth_providers")
    op.drop_index("ix_auth_providers_user_id", table_name="auth_providers")
    op.drop_table("auth_providers")
    op.drop_index("idx_user_email", table_name="users")
    op.drop_table("users")
