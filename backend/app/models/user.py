"""
NeighborHelp Backend: Account Model
====================================

What:  ORM model for the `users` table (accounts that send and receive messages).
Who:   Looked up by the identity dependency (by email) and by MessageService
       (recipient by id, available recipients by role).

Only the columns the messaging slice reads are mapped here. Registration,
password and OAuth columns belong to the account service.
"""

import enum
from typing import Optional

from sqlalchemy import Boolean, Enum, Integer, String, false, text
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.database import Base


class UserRole(str, enum.Enum):
    """Closed set of account roles. ADMIN and MODERATOR are privileged."""

    USER = "USER"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"


class User(Base):
    """
    An account on the platform.

    Display name:
        Organizations are shown by organization name, individuals by
        username. Used as sender/recipient name in responses and emails.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    # Normalised by _normalize_email; the identity dependency matches on it
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    organization_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", native_enum=False, length=20),
        nullable=False,
        default=UserRole.USER,
        server_default=text("'USER'"),
    )

    enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    # Avatar for individuals, logo for organizations
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        return value.strip().lower()

    @property
    def display_name(self) -> str:
        return self.organization_name or self.username

    @property
    def is_active(self) -> bool:
        return self.enabled and not self.deleted

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
