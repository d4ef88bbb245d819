"""Create users and trusted_contacts tables.

Revision ID: 001_trusted_contacts
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_trusted_contacts"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "trusted_contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("relationship", sa.String(50), nullable=True),
        sa.Column("tier", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "notify_on_high_threat", sa.Boolean(), nullable=False, server_default="true"
        ),
        sa.Column(
            "notify_on_incident", sa.Boolean(), nullable=False, server_default="true"
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("tier BETWEEN 1 AND 3", name="ck_trusted_contacts_tier_range"),
        sa.CheckConstraint(
            "phone IS NOT NULL OR email IS NOT NULL",
            name="ck_trusted_contacts_reachable",
        ),
    )

    # Tier lookups always filter by owner first
    op.create_index(
        "ix_trusted_contacts_user_tier",
        "trusted_contacts",
        ["user_id", "tier"],
    )


def downgrade() -> None:
    op.drop_index("ix_trusted_contacts_user_tier", table_name="trusted_contacts")
    op.drop_table("trusted_contacts")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
