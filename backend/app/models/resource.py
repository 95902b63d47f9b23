"""
NeighborHelp Backend: Resource Model
=====================================

What:  ORM model for the `resources` table (published aid listings).
Who:   MessageService checks that a referenced resource exists and is
       publicly visible; the notifier includes its title and city.

The full listing (description, category, cost, geo location, moderation
fields) is owned by the resource service. This mapping covers the columns
messaging needs.
"""

import enum
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.user import User


class ResourceStatus(str, enum.Enum):
    """Moderation state of a listing. Only ACTIVE listings are public."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


class Resource(Base):
    """A published resource listing that messages may reference."""

    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[ResourceStatus] = mapped_column(
        Enum(ResourceStatus, name="resource_status", native_enum=False, length=20),
        nullable=False,
        default=ResourceStatus.PENDING,
        server_default=text("'PENDING'"),
    )

    # selectin: async sessions cannot lazy-load on attribute access
    owner: Mapped[User] = relationship(User, lazy="selectin")

    @property
    def is_publicly_visible(self) -> bool:
        return self.status == ResourceStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, title='{self.title}', status='{self.status.value}')>"
