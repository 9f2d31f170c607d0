"""Initial schema: users, api_credentials, campaigns, generated_scripts.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    existing = set(insp.get_table_names())

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("email", sa.String(255), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("full_name", sa.String(255), nullable=True),
            sa.Column("avatar_url", sa.String(1024), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "api_credentials" not in existing:
        op.create_table(
            "api_credentials",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("api_key_encrypted", sa.Text(), nullable=False),
            sa.Column("publisher_id", sa.String(255), nullable=False),
            sa.Column("endpoint", sa.String(1024), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_api_credentials_user_active", "api_credentials", ["user_id", "is_active"], unique=False)

    if "campaigns" not in existing:
        op.create_table(
            "campaigns",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("campaign_id", sa.String(255), nullable=False),
            sa.Column("name", sa.String(512), nullable=False),
            sa.Column("url", sa.Text(), nullable=False),
            sa.Column("cpm", sa.Float(), nullable=False, server_default="0"),
            sa.Column("country", sa.String(16), nullable=False, server_default="ALL"),
            sa.Column("device", sa.String(16), nullable=False, server_default="all"),
            sa.Column("category", sa.String(255), nullable=True),
            sa.Column("status", sa.String(16), nullable=False, server_default="active"),
            sa.Column("impressions", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("revenue", sa.Float(), nullable=False, server_default="0"),
            sa.Column("is_selected", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("synced_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "campaign_id", name="uq_campaign_per_user"),
        )
        op.create_index("ix_campaigns_user_id", "campaigns", ["user_id"], unique=False)
        op.create_index("ix_campaigns_cpm", "campaigns", ["cpm"], unique=False)

    if "generated_scripts" not in existing:
        op.create_table(
            "generated_scripts",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("script_code", sa.Text(), nullable=False),
            sa.Column("config", sa.JSON(), nullable=False),
            sa.Column("campaign_ids", sa.JSON(), nullable=False),
            sa.Column("script_type", sa.String(16), nullable=False, server_default="production"),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_generated_scripts_user_created", "generated_scripts", ["user_id", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_generated_scripts_user_created", table_name="generated_scripts")
    op.drop_table("generated_scripts")
    op.drop_index("ix_campaigns_cpm", table_name="campaigns")
    op.drop_index("ix_campaigns_user_id", table_name="campaigns")
    op.drop_table("campaigns")
    op.drop_index("ix_api_credentials_user_active", table_name="api_credentials")
    op.drop_table("api_credentials")
    op.drop_table("users")
