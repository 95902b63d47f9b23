"""Create users, resources and messages tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Initial messaging schema.
How:   users and resources carry only the columns messaging reads; messages
       stores the encrypted body and the two soft-delete flags.

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("organization_name", sa.String(150), nullable=True),
        sa.Column(
            "role",
            sa.Enum("USER", "ADMIN", "MODERATOR", name="user_role", native_enum=False, length=20),
            nullable=False,
            server_default=sa.text("'USER'"),
        ),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "ACTIVE", "INACTIVE", "PENDING", "REJECTED",
                name="resource_status", native_enum=False, length=20,
            ),
            nullable=False,
            server_default=sa.text("'PENDING'"),
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_resources_user_id", "resources", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("resource_id", sa.Integer(), nullable=True),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column(
            "encrypted_content",
            sa.Text(),
            nullable=False,
            comment="Base64 AES token of the message body",
        ),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "priority",
            sa.Enum("NORMAL", "HIGH", "URGENT", name="message_priority", native_enum=False, length=20),
            nullable=False,
            server_default=sa.text("'NORMAL'"),
        ),
        sa.Column("contact_method", sa.String(50), nullable=True),
        sa.Column("sender_phone", sa.String(30), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("read_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("deleted_by_sender", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_by_recipient", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint("sender_id <> recipient_id", name="ck_messages_not_self"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["resource_id"], ["resources.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )

    # Inbox and sent views: WHERE <party>_id = :me ORDER BY created_at DESC
    op.create_index(
        "idx_messages_recipient_created", "messages", ["recipient_id", "created_at"]
    )
    op.create_index(
        "idx_messages_sender_created", "messages", ["sender_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("idx_messages_sender_created", table_name="messages")
    op.drop_index("idx_messages_recipient_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_resources_user_id", table_name="resources")
    op.drop_table("resources")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
