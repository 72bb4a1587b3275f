"""users and magic links

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

magic_link_intent = postgresql.ENUM("login", "register", name="magic_link_intent", create_type=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    magic_link_intent.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "magic_links",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("token_hash", sa.String(length=128), nullable=False),
        sa.Column("intent", magic_link_intent, nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_magic_links_email", "magic_links", ["email"], unique=False)
    op.create_index("ix_magic_links_token_hash", "magic_links", ["token_hash"], unique=True)
    op.create_index("ix_magic_links_expires_at", "magic_links", ["expires_at"], unique=False)
    op.create_index("ix_magic_links_email_consumed", "magic_links", ["email", "consumed"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_magic_links_email_consumed", table_name="magic_links")
    op.drop_index("ix_magic_links_expires_at", table_name="magic_links")
    op.drop_index("ix_magic_links_token_hash", table_name="magic_links")
    op.drop_index("ix_magic_links_email", table_name="magic_links")
    op.drop_table("magic_links")
    magic_link_intent.drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
