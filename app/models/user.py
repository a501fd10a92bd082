"""
User Model

Represents a reader who can submit reviews. Authentication is handled
outside this service, so the table only carries what review ownership
needs: an identity and a contact address.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.review import Review


class User(Base):
    """
    User model.

    Table: users

    Relationships:
    - reviews: One-to-Many relationship with Review model
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
        comment="User email address (unique)",
    )

    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Display name",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        back_populates="user",
    )

    def __repr__(self) -> str:
        return f"User(id={self.id}, email='{self.email}')"
