"""
NeighborHelp Backend: Message SQLAlchemy Model
===============================================

What:  ORM model representing the `messages` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Used exclusively by MessageService.

Table Design:
    - encrypted_content: base64 AES token; the plaintext body is never stored
    - subject: stored in plain text (shown in inbox lists and email subjects)
    - deleted_by_sender / deleted_by_recipient: independent soft-delete flags;
      the row is physically removed once both are true
    - created_at: UTC with timezone

Lifecycle:
    1. Created on send (body encrypted before the row is built), unread,
       both deletion flags false
    2. Recipient reads → is_read=True, read_at set once
    3. Sender deletes → both flags true → row removed
       Recipient deletes → deleted_by_recipient only; sender still sees it
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, UTCDateTime
from app.models.resource import Resource
from app.models.user import User


class MessagePriority(str, enum.Enum):
    """Closed set of priorities. Unknown values are rejected by the request schema."""

    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Message(Base):
    """
    One directed message from a sender account to a recipient account.

    Query Patterns:
        - Inbox:  recipient_id = :me AND deleted_by_recipient = false
        - Sent:   sender_id = :me AND deleted_by_sender = false
        - Unread: inbox filter AND is_read = false
        All ordered by created_at DESC.
    """

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    resource_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("resources.id", ondelete="SET NULL"), nullable=True
    )

    subject: Mapped[str] = mapped_column(String(255), nullable=False)

    encrypted_content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Base64 AES token of the message body",
    )

    is_read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    priority: Mapped[MessagePriority] = mapped_column(
        Enum(MessagePriority, name="message_priority", native_enum=False, length=20),
        nullable=False,
        default=MessagePriority.NORMAL,
        server_default=text("'NORMAL'"),
    )

    contact_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sender_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    read_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )

    deleted_by_sender: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    deleted_by_recipient: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    # selectin: every select(Message) loads the parties and resource up front,
    # since async sessions cannot lazy-load during response mapping
    sender: Mapped[User] = relationship(User, foreign_keys=[sender_id], lazy="selectin")
    recipient: Mapped[User] = relationship(User, foreign_keys=[recipient_id], lazy="selectin")
    resource: Mapped[Optional[Resource]] = relationship(Resource, lazy="selectin")

    __table_args__ = (
        CheckConstraint("sender_id <> recipient_id", name="ck_messages_not_self"),
        Index("idx_messages_recipient_created", "recipient_id", "created_at"),
        Index("idx_messages_sender_created", "sender_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, sender_id={self.sender_id}, "
            f"recipient_id={self.recipient_id}, is_read={self.is_read})>"
        )
